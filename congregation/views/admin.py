"""Admin panel: users, teams and role restrictions"""

from typing import List

from ..auth import rules
from .base import Notice, View


class AdminView(View):
    name = "admin"

    def mount(self) -> List[Notice]:
        rules.require(rules.can_manage_users(self.identity), "Only an administrator can open the admin panel")
        self.subscriptions.open("users", "users", order_by="email")
        self.subscriptions.open("teams", "teams", order_by="name")
        self.subscriptions.open("restrictions", "role_restrictions", order_by="role")
        return []

    def render(self) -> dict:
        names = self.team_names()
        users = self.subscriptions.documents("users")

        members = {team_id: 0 for team_id in names}
        for user in users:
            for team_id in user.get("teams") or []:
                if team_id in members:
                    members[team_id] += 1

        return {
            "users": [
                {
                    "id": user["id"],
                    "email": user.get("email"),
                    "display_name": user.get("display_name", ""),
                    "role": user.get("role", "member"),
                    "teams": [{"id": t, "name": names[t]} for t in user.get("teams") or [] if t in names],
                }
                for user in users
            ],
            "teams": [
                {"id": team_id, "name": name, "member_count": members[team_id]}
                for team_id, name in names.items()
            ],
            "restrictions": [
                {"role": doc["role"], "team_id": doc["team_id"], "team_name": names.get(doc["team_id"])}
                for doc in self.subscriptions.documents("restrictions")
            ],
        }
