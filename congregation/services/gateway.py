"""Mutation gateway

Every state-changing action goes through here. Each operation checks the
relevant authorization rule first, then writes with field-level operations
(ArrayUnion / ArrayRemove for sets, SetIfAbsent / SetIfEquals for role slots)
so concurrent editors touching different elements never overwrite each other.
The gateway keeps no local state; after a failure the subscribed state is
still the source of truth.
"""

import logging
from datetime import date, timedelta
from typing import Dict, Optional

from tinydb import Query

from ..auth import rules
from ..auth.identity import IdentityProvider, is_admin_email
from ..auth.session import SessionContext
from ..config import Settings
from ..errors import AuthorizationDenied, NotFound, RoleAlreadyFilled, TeamNameTaken, WriteFailure
from ..models import EventCreate, ServiceCreate
from .document_store import (
    ArrayRemove,
    ArrayUnion,
    ConditionFailed,
    DocumentNotFound,
    DocumentStore,
    SetIfAbsent,
    SetIfEquals,
    StoreError,
)
from .timeutil import isoformat, utcnow

logger = logging.getLogger(__name__)

Q = Query()


def load_role_restrictions(store: DocumentStore) -> Dict[str, str]:
    """RoleRestrictions as {role name: required team id}"""
    return {doc["role"]: doc["team_id"] for doc in store.get("role_restrictions") if doc.get("team_id")}


def upcoming_sunday(today: date) -> date:
    return today + timedelta(days=(6 - today.weekday()) % 7)


def find_team_by_name(store: DocumentStore, name: str) -> Optional[dict]:
    wanted = name.strip().lower()
    for team in store.get("teams"):
        if team.get("name", "").strip().lower() == wanted:
            return team
    return None


def apply_default_restrictions(store: DocumentStore, defaults: Dict[str, str], team: dict) -> int:
    """Create the configured restrictions (role -> team name) that name this team"""
    name = team.get("name", "").strip().lower()
    created = 0
    for role, team_name in defaults.items():
        if team_name.strip().lower() != name:
            continue
        if store.count("role_restrictions", Q.role == role):
            continue
        store.create("role_restrictions", {"role": role, "team_id": team["id"]})
        created += 1
    return created


class MutationGateway:
    """State-changing actions on behalf of one session"""

    def __init__(
        self,
        store: DocumentStore,
        session: SessionContext,
        settings: Settings,
        identity_provider: Optional[IdentityProvider] = None,
    ):
        self.store = store
        self.session = session
        self.identity = session.identity
        self.settings = settings
        self.identity_provider = identity_provider

    # =========================================================================
    # Teams
    # =========================================================================

    def create_team(self, name: str) -> dict:
        rules.require(rules.can_manage_teams(self.identity), "Only an administrator can create teams")

        # Existence check then write; two simultaneous creations can both pass
        if find_team_by_name(self.store, name):
            raise TeamNameTaken(f"A team named '{name}' already exists")

        def create():
            with self.store.atomic():
                created = self.store.create("teams", {
                    "name": name,
                    "created_at": self.store.timestamp(),
                    "created_by": self.identity.id,
                })
                restricted = apply_default_restrictions(self.store, self.settings.default_role_restrictions, created)
            return created, restricted

        team, restricted = self._write(create)
        logger.info(f"Team created: {team['id']} ({name})")
        if restricted:
            logger.info(f"Applied {restricted} configured role restrictions to team {team['id']}")
        return team

    def rename_team(self, team_id: str, name: str) -> dict:
        rules.require(rules.can_manage_teams(self.identity), "Only an administrator can rename teams")
        self._get("teams", team_id, "Team")

        existing = find_team_by_name(self.store, name)
        if existing and existing["id"] != team_id:
            raise TeamNameTaken(f"A team named '{name}' already exists")

        return self._update("teams", team_id, {"name": name}, "Team")

    def delete_team(self, team_id: str) -> dict:
        """Delete a team and every reference to it"""
        rules.require(rules.can_manage_teams(self.identity), "Only an administrator can delete teams")
        team = self._get("teams", team_id, "Team")

        # Batch deletes run before memberships change so a failed cascade
        # leaves every member still in the team
        def cascade():
            with self.store.atomic():
                restrictions = self.store.get("role_restrictions", Q.team_id == team_id)
                self.store.batch_delete("role_restrictions", [doc["id"] for doc in restrictions])
                messages = self.store.get("messages", Q.team_id == team_id)
                self.store.batch_delete("messages", [doc["id"] for doc in messages])
                self.store.update_where("users", Q.teams.any([team_id]), {"teams": ArrayRemove(team_id)})
                self.store.delete("teams", team_id)

        self._write(cascade)
        logger.info(f"Team deleted: {team_id} ({team.get('name')})")
        return {"deleted": True, "id": team_id}

    # =========================================================================
    # Users
    # =========================================================================

    def add_team_member(self, user_id: str, team_id: str) -> dict:
        rules.require(rules.can_manage_users(self.identity), "Only an administrator can change team membership")
        self._get("teams", team_id, "Team")
        profile = self._update("users", user_id, {"teams": ArrayUnion(team_id)}, "User")
        logger.info(f"User {user_id} added to team {team_id}")
        return profile

    def remove_team_member(self, user_id: str, team_id: str) -> dict:
        rules.require(rules.can_manage_users(self.identity), "Only an administrator can change team membership")
        profile = self._update("users", user_id, {"teams": ArrayRemove(team_id)}, "User")
        logger.info(f"User {user_id} removed from team {team_id}")
        return profile

    def delete_user(self, user_id: str) -> dict:
        """Remove a member's profile and account and release what they held"""
        rules.require(rules.can_manage_users(self.identity), "Only an administrator can remove users")
        profile = self._get("users", user_id, "User")
        if is_admin_email(profile.get("email", ""), self.settings.admin_email):
            raise AuthorizationDenied("The administrator account cannot be removed")

        def release():
            with self.store.atomic():
                for service in self.store.get("services"):
                    held = [role for role, occupant in (service.get("roles") or {}).items() if occupant == user_id]
                    if held:
                        self.store.update(
                            "services",
                            service["id"],
                            {("roles", role): SetIfEquals(user_id, None) for role in held},
                        )
                self.store.update_where(
                    "events",
                    Q.attendees.any([user_id]) | Q.declined.any([user_id]),
                    {"attendees": ArrayRemove(user_id), "declined": ArrayRemove(user_id)},
                )
                self.store.delete("users", user_id)

        self._write(release)
        if self.identity_provider is not None:
            self.identity_provider.delete_account(user_id)
        logger.info(f"User deleted: {user_id}")
        return {"deleted": True, "id": user_id}

    def update_display_name(self, display_name: str) -> dict:
        return self._update("users", self.identity.id, {"display_name": display_name.strip()}, "User")

    # =========================================================================
    # Events
    # =========================================================================

    def create_event(self, data: EventCreate) -> dict:
        rules.require(rules.can_create_event(self.identity), "Only an administrator can create events")

        expiry = data.expiry_date or data.date + timedelta(hours=self.settings.event_expiry_grace_hours)
        event = self._write(lambda: self.store.create("events", {
            "title": data.title.strip(),
            "date": isoformat(data.date),
            "description": data.description,
            "expiry_date": isoformat(expiry),
            "locations": [
                {"name": location.name, "coordinates": list(location.coordinates)}
                for location in data.locations
            ],
            "attendees": [],
            "declined": [],
            "created_by": self.identity.id,
            "created_at": self.store.timestamp(),
        }))
        logger.info(f"Event created: {event['id']} ({event['title']})")
        return event

    def delete_event(self, event_id: str) -> dict:
        rules.require(rules.can_create_event(self.identity), "Only an administrator can delete events")
        self._get("events", event_id, "Event")
        self._write(lambda: self.store.delete("events", event_id))
        logger.info(f"Event deleted: {event_id}")
        return {"deleted": True, "id": event_id}

    def rsvp_join(self, event_id: str) -> dict:
        uid = self.identity.id
        return self._update("events", event_id, {"attendees": ArrayUnion(uid), "declined": ArrayRemove(uid)}, "Event")

    def rsvp_decline(self, event_id: str) -> dict:
        uid = self.identity.id
        return self._update("events", event_id, {"declined": ArrayUnion(uid), "attendees": ArrayRemove(uid)}, "Event")

    def rsvp_leave(self, event_id: str) -> dict:
        uid = self.identity.id
        return self._update("events", event_id, {"attendees": ArrayRemove(uid), "declined": ArrayRemove(uid)}, "Event")

    # =========================================================================
    # Roster
    # =========================================================================

    def create_service(self, data: ServiceCreate) -> dict:
        rules.require(rules.can_manage_teams(self.identity), "Only an administrator can schedule services")
        roles = data.roles if data.roles is not None else self.settings.default_service_roles
        service = self._write(lambda: self.store.create("services", {
            "date": data.date.isoformat(),
            "type": data.type.strip(),
            "roles": {role: None for role in roles},
            "created_at": self.store.timestamp(),
        }))
        logger.info(f"Service scheduled: {service['id']} ({service['type']} on {service['date']})")
        return service

    def delete_service(self, service_id: str) -> dict:
        rules.require(rules.can_manage_teams(self.identity), "Only an administrator can remove services")
        self._get("services", service_id, "Service")
        self._write(lambda: self.store.delete("services", service_id))
        return {"deleted": True, "id": service_id}

    def ensure_upcoming_service(self, today: Optional[date] = None) -> Optional[dict]:
        """Seed the default service for the coming Sunday when none exist"""
        today = today or utcnow().date()

        def seed():
            with self.store.atomic():
                if self.store.count("services"):
                    return None
                return self.store.create("services", {
                    "date": upcoming_sunday(today).isoformat(),
                    "type": self.settings.default_service_type,
                    "roles": {role: None for role in self.settings.default_service_roles},
                    "created_at": self.store.timestamp(),
                })

        service = self._write(seed)
        if service:
            logger.info(f"Seeded default service {service['id']} for {service['date']}")
        return service

    def volunteer(self, service_id: str, role: str) -> dict:
        """Take an open role slot; an occupied slot is never overwritten"""
        service = self._get("services", service_id, "Service")
        roles = service.get("roles") or {}
        if role not in roles:
            raise NotFound(f"'{role}' is not a role in this service")
        if roles[role] == self.identity.id:
            return service

        profile = self._profile()
        restrictions = load_role_restrictions(self.store)
        if not rules.can_volunteer(self.identity, role, profile, restrictions):
            team = self.store.get_document("teams", restrictions[role])
            team_name = team["name"] if team else "the required team"
            logger.warning(f"User {self.identity.id} denied role '{role}' (needs {team_name})")
            raise AuthorizationDenied(f"Only members of {team_name} can serve as {role}")

        try:
            updated = self.store.update("services", service_id, {("roles", role): SetIfAbsent(self.identity.id)})
        except ConditionFailed:
            raise RoleAlreadyFilled(f"Someone is already serving as {role}")
        except DocumentNotFound:
            raise NotFound("Service not found")
        except StoreError as e:
            logger.error(f"Volunteer write failed for {service_id}/{role}: {e}")
            raise WriteFailure() from e

        logger.info(f"User {self.identity.id} volunteered as {role} for service {service_id}")
        return updated

    def cancel_role(self, service_id: str, role: str) -> dict:
        """Clear a role slot; only its occupant or an administrator may"""
        service = self._get("services", service_id, "Service")
        roles = service.get("roles") or {}
        if role not in roles:
            raise NotFound(f"'{role}' is not a role in this service")
        if roles[role] is None:
            return service

        rules.require(
            rules.can_cancel_role(self.identity, service, role),
            "Only the volunteer or an administrator can cancel this role",
        )
        change = None if self.identity.is_admin else SetIfEquals(self.identity.id, None)
        try:
            updated = self.store.update("services", service_id, {("roles", role): change})
        except ConditionFailed:
            raise WriteFailure(f"{role} changed before it could be cancelled")
        except DocumentNotFound:
            raise NotFound("Service not found")
        except StoreError as e:
            raise WriteFailure() from e

        logger.info(f"Role {role} on service {service_id} cleared by {self.identity.id}")
        return updated

    def set_role_restriction(self, role: str, team_id: Optional[str]) -> Optional[dict]:
        """Require membership of team_id for role, or lift the restriction"""
        rules.require(rules.can_manage_teams(self.identity), "Only an administrator can restrict roles")
        role = role.strip()
        existing = self.store.get("role_restrictions", Q.role == role)

        if team_id is None:
            self._write(lambda: self.store.batch_delete("role_restrictions", [doc["id"] for doc in existing]))
            return None

        self._get("teams", team_id, "Team")
        if existing:
            return self._update("role_restrictions", existing[0]["id"], {"team_id": team_id}, "Restriction")
        return self._write(lambda: self.store.create("role_restrictions", {"role": role, "team_id": team_id}))

    # =========================================================================
    # Chat
    # =========================================================================

    def send_message(self, team_id: str, text: str) -> dict:
        self._get("teams", team_id, "Team")
        rules.require(
            rules.can_view_channel(self.identity, team_id, self._profile()),
            "You are not a member of this team",
        )
        message = self._write(lambda: self.store.create("messages", {
            "text": text,
            "sender": self.identity.display_name or self.identity.email,
            "sender_id": self.identity.id,
            "team_id": team_id,
            "timestamp": self.store.timestamp(),
        }))
        return message

    # =========================================================================
    # Helpers
    # =========================================================================

    def _profile(self) -> dict:
        profile = self.store.get_document("users", self.identity.id)
        if profile is None:
            raise NotFound("Your profile could not be found")
        return profile

    def _get(self, collection: str, doc_id: str, label: str) -> dict:
        try:
            doc = self.store.get_document(collection, doc_id)
        except StoreError as e:
            raise WriteFailure() from e
        if doc is None:
            raise NotFound(f"{label} not found")
        return doc

    def _update(self, collection: str, doc_id: str, changes: dict, label: str) -> dict:
        try:
            return self.store.update(collection, doc_id, changes)
        except DocumentNotFound:
            raise NotFound(f"{label} not found")
        except StoreError as e:
            logger.error(f"Update of {collection}/{doc_id} failed: {e}")
            raise WriteFailure() from e

    def _write(self, operation):
        try:
            return operation()
        except StoreError as e:
            logger.error(f"Write failed: {e}")
            raise WriteFailure() from e
