"""Member dashboard view"""

from typing import List

from ..services.timeutil import parse_timestamp, utcnow
from .base import Notice, View


def is_upcoming(event: dict) -> bool:
    starts = parse_timestamp(event.get("date"))
    return starts is not None and starts >= utcnow()


class DashboardView(View):
    name = "dashboard"

    def mount(self) -> List[Notice]:
        self.open_profile()
        self.subscriptions.open("teams", "teams", order_by="name")
        self.subscriptions.open("events", "events", order_by="date")
        self.subscriptions.open("services", "services", order_by="date")
        return []

    def render(self) -> dict:
        uid = self.identity.id
        names = self.team_names()

        serving = []
        for service in self.subscriptions.documents("services"):
            for role, occupant in (service.get("roles") or {}).items():
                if occupant == uid:
                    serving.append({
                        "service_id": service["id"],
                        "date": service.get("date"),
                        "type": service.get("type"),
                        "role": role,
                    })

        events = [event for event in self.subscriptions.documents("events") if is_upcoming(event)]
        return {
            "greeting": f"Welcome, {self.identity.display_name or 'Member'}",
            "user": self.identity.to_dict(),
            "teams": [{"id": team_id, "name": names.get(team_id, "")} for team_id in self.my_teams if team_id in names],
            "upcoming_events": [
                {
                    "id": event["id"],
                    "title": event.get("title"),
                    "date": event.get("date"),
                    "attending": uid in (event.get("attendees") or []),
                }
                for event in events[:3]
            ],
            "serving": serving,
        }
