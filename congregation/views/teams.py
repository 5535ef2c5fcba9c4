"""Team list and per-team chat channel"""

from typing import List, Optional

from tinydb import Query

from ..auth import rules
from ..errors import InvalidCommand, SubscriptionError
from .base import Notice, View, error_notice, sweep_notice


class TeamsView(View):
    name = "teams"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.selected: Optional[str] = None

    def mount(self) -> List[Notice]:
        notices = sweep_notice(self.sweeper.sweep_stale_messages())
        self.open_profile()
        self.subscriptions.open("teams", "teams", order_by="name")
        return notices

    def handle_command(self, command: dict) -> List[Notice]:
        kind = command.get("type")
        if kind == "select_team":
            team_id = command.get("team_id")
            if not team_id:
                raise InvalidCommand("select_team needs a team_id")
            self.select_team(team_id)
            return []
        if kind == "leave_team":
            self.leave_team()
            return []
        return super().handle_command(command)

    def select_team(self, team_id: str):
        rules.require(
            rules.can_view_channel(self.identity, team_id, self.profile),
            "You are not a member of this team",
        )
        self.subscriptions.open("channel", "messages", Query().team_id == team_id, order_by="timestamp")
        self.selected = team_id

    def leave_team(self):
        self.subscriptions.close("channel")
        self.selected = None

    def on_snapshot(self, key: str) -> List[Notice]:
        if self.selected is None or key not in ("profile", "teams"):
            return []
        still_member = self.selected in self.my_teams and self.selected in self.team_names()
        if still_member:
            return []
        self.leave_team()
        error = SubscriptionError("You no longer have access to this team's channel")
        return [error_notice(error.code, error.message)]

    def render(self) -> dict:
        names = self.team_names()
        uid = self.identity.id
        teams = [
            {"id": team_id, "name": names[team_id], "selected": team_id == self.selected}
            for team_id in self.my_teams
            if team_id in names
        ]

        messages = []
        if self.selected is not None:
            messages = [
                {
                    "id": message["id"],
                    "text": message.get("text"),
                    "sender": message.get("sender"),
                    "timestamp": message.get("timestamp"),
                    "mine": message.get("sender_id") == uid,
                }
                for message in self.subscriptions.documents("channel")
            ]

        return {"teams": teams, "selected_team": self.selected, "messages": messages}
