"""Weekly service roster"""

from typing import List

from ..auth import rules
from ..errors import CongregationError
from ..services.gateway import MutationGateway
from .base import Notice, View, error_notice


class RosterView(View):
    name = "roster"

    def mount(self) -> List[Notice]:
        notices = []
        try:
            MutationGateway(self.store, self.session, self.settings).ensure_upcoming_service()
        except CongregationError as e:
            notices.append(error_notice(e.code, e.message))

        self.open_profile()
        self.subscriptions.open("services", "services", order_by="date")
        self.subscriptions.open("restrictions", "role_restrictions")
        self.subscriptions.open("teams", "teams")
        self.subscriptions.open("users", "users")
        return notices

    def render(self) -> dict:
        uid = self.identity.id
        profile = self.profile
        names = self.team_names()
        restrictions = {
            doc["role"]: doc["team_id"]
            for doc in self.subscriptions.documents("restrictions")
            if doc.get("team_id")
        }
        people = {
            user["id"]: user.get("display_name") or user.get("email", "")
            for user in self.subscriptions.documents("users")
        }

        services = []
        for service in self.subscriptions.documents("services"):
            roles = []
            for role, occupant in (service.get("roles") or {}).items():
                if occupant is None:
                    status = "open"
                elif occupant == uid:
                    status = "you"
                else:
                    status = "assigned"
                roles.append({
                    "role": role,
                    "status": status,
                    "volunteer": people.get(occupant) if occupant else None,
                    "required_team": names.get(restrictions[role]) if role in restrictions else None,
                    "can_volunteer": occupant is None and rules.can_volunteer(self.identity, role, profile, restrictions),
                    "can_cancel": occupant is not None and rules.can_cancel_role(self.identity, service, role),
                })
            services.append({
                "id": service["id"],
                "date": service.get("date"),
                "type": service.get("type"),
                "roles": roles,
            })

        return {"services": services, "can_manage": rules.can_manage_teams(self.identity)}
