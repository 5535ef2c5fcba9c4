"""Mutation gateway tests against an in-memory store"""

from datetime import date, datetime, timezone

import pytest

from congregation.auth.identity import IdentityProvider
from congregation.auth.session import SessionStore
from congregation.config import Settings
from congregation.errors import (
    AuthorizationDenied,
    NotFound,
    RoleAlreadyFilled,
    TeamNameTaken,
    WriteFailure,
)
from congregation.models import EventCreate, ServiceCreate
from congregation.services.document_store import StoreUnavailable
from congregation.services.gateway import MutationGateway, load_role_restrictions, upcoming_sunday

from tests.factories import ADMIN_EMAIL, PASSWORD


@pytest.fixture
def gateway_settings() -> Settings:
    return Settings(_env_file=None, database_path=":memory:", admin_email=ADMIN_EMAIL)


@pytest.fixture
def provider(memory_store):
    return IdentityProvider(memory_store, ADMIN_EMAIL)


@pytest.fixture
def sessions(provider, memory_store):
    return SessionStore(provider, memory_store, "unit-test-secret")


@pytest.fixture
def gateway_for(memory_store, sessions, provider, gateway_settings):
    def build(context):
        return MutationGateway(memory_store, context, gateway_settings, provider)
    return build


@pytest.fixture
def admin_gw(sessions, gateway_for):
    return gateway_for(sessions.sign_up(ADMIN_EMAIL, PASSWORD, "Pastor"))


@pytest.fixture
def alice_gw(sessions, gateway_for):
    return gateway_for(sessions.sign_up("alice@example.com", PASSWORD, "Alice"))


@pytest.fixture
def bob_gw(sessions, gateway_for):
    return gateway_for(sessions.sign_up("bob@example.com", PASSWORD, "Bob"))


def profile(store, gateway):
    return store.get_document("users", gateway.identity.id)


class TestTeams:

    def test_create_team(self, admin_gw, memory_store):
        team = admin_gw.create_team("Worship")
        assert memory_store.get_document("teams", team["id"])["name"] == "Worship"

    def test_member_cannot_create_team(self, alice_gw, memory_store):
        with pytest.raises(AuthorizationDenied):
            alice_gw.create_team("Worship")
        assert memory_store.get("teams") == []

    def test_duplicate_name_is_case_insensitive(self, admin_gw):
        admin_gw.create_team("Worship")
        with pytest.raises(TeamNameTaken):
            admin_gw.create_team("worship")

    def test_rename_keeps_membership(self, admin_gw, alice_gw, memory_store):
        team = admin_gw.create_team("Youth")
        admin_gw.add_team_member(alice_gw.identity.id, team["id"])

        admin_gw.rename_team(team["id"], "Youth Group")

        assert memory_store.get_document("teams", team["id"])["name"] == "Youth Group"
        assert profile(memory_store, alice_gw)["teams"] == [team["id"]]

    def test_rename_to_taken_name(self, admin_gw):
        admin_gw.create_team("Youth")
        team = admin_gw.create_team("Worship")
        with pytest.raises(TeamNameTaken):
            admin_gw.rename_team(team["id"], "YOUTH")

    def test_delete_team_cascades(self, admin_gw, alice_gw, memory_store):
        team = admin_gw.create_team("Security")
        admin_gw.add_team_member(alice_gw.identity.id, team["id"])
        admin_gw.set_role_restriction("Sound", team["id"])
        alice_gw.send_message(team["id"], "hello")

        admin_gw.delete_team(team["id"])

        assert memory_store.get_document("teams", team["id"]) is None
        assert profile(memory_store, alice_gw)["teams"] == []
        assert load_role_restrictions(memory_store) == {}
        assert memory_store.get("messages") == []

    def test_delete_missing_team(self, admin_gw):
        with pytest.raises(NotFound):
            admin_gw.delete_team("missing")


class TestMembership:

    def test_add_is_idempotent(self, admin_gw, alice_gw, memory_store):
        team = admin_gw.create_team("Youth")
        admin_gw.add_team_member(alice_gw.identity.id, team["id"])
        admin_gw.add_team_member(alice_gw.identity.id, team["id"])
        assert profile(memory_store, alice_gw)["teams"] == [team["id"]]

    def test_remove(self, admin_gw, alice_gw, memory_store):
        team = admin_gw.create_team("Youth")
        admin_gw.add_team_member(alice_gw.identity.id, team["id"])
        admin_gw.remove_team_member(alice_gw.identity.id, team["id"])
        assert profile(memory_store, alice_gw)["teams"] == []

    def test_member_cannot_change_membership(self, admin_gw, alice_gw):
        team = admin_gw.create_team("Youth")
        with pytest.raises(AuthorizationDenied):
            alice_gw.add_team_member(alice_gw.identity.id, team["id"])

    def test_add_to_unknown_team(self, admin_gw, alice_gw):
        with pytest.raises(NotFound):
            admin_gw.add_team_member(alice_gw.identity.id, "missing")

    def test_delete_user_releases_roles_and_rsvps(self, admin_gw, alice_gw, memory_store):
        service = admin_gw.create_service(ServiceCreate(date=date(2099, 1, 4), type="Sunday Service", roles=["Sound"]))
        event = admin_gw.create_event(EventCreate(title="Picnic", date=datetime(2099, 6, 1, tzinfo=timezone.utc)))
        alice_gw.volunteer(service["id"], "Sound")
        alice_gw.rsvp_join(event["id"])

        admin_gw.delete_user(alice_gw.identity.id)

        assert memory_store.get_document("users", alice_gw.identity.id) is None
        assert memory_store.get_document("accounts", alice_gw.identity.id) is None
        assert memory_store.get_document("services", service["id"])["roles"] == {"Sound": None}
        assert memory_store.get_document("events", event["id"])["attendees"] == []

    def test_admin_cannot_be_deleted(self, admin_gw):
        with pytest.raises(AuthorizationDenied):
            admin_gw.delete_user(admin_gw.identity.id)


class TestEvents:

    def test_create_event_defaults_expiry(self, admin_gw):
        event = admin_gw.create_event(EventCreate(title="Picnic", date=datetime(2099, 6, 1, 12, tzinfo=timezone.utc)))
        assert event["expiry_date"] == "2099-06-02T12:00:00+00:00"
        assert event["attendees"] == [] and event["declined"] == []

    def test_member_cannot_create_event(self, alice_gw):
        with pytest.raises(AuthorizationDenied):
            alice_gw.create_event(EventCreate(title="Picnic", date=datetime(2099, 6, 1)))

    def test_rsvp_join_is_idempotent(self, admin_gw, alice_gw):
        event = admin_gw.create_event(EventCreate(title="Picnic", date=datetime(2099, 6, 1)))
        alice_gw.rsvp_join(event["id"])
        updated = alice_gw.rsvp_join(event["id"])
        assert updated["attendees"] == [alice_gw.identity.id]

    def test_rsvp_sets_stay_disjoint(self, admin_gw, alice_gw):
        event = admin_gw.create_event(EventCreate(title="Picnic", date=datetime(2099, 6, 1)))
        alice_gw.rsvp_join(event["id"])
        declined = alice_gw.rsvp_decline(event["id"])
        assert declined["attendees"] == []
        assert declined["declined"] == [alice_gw.identity.id]

        left = alice_gw.rsvp_leave(event["id"])
        assert left["attendees"] == [] and left["declined"] == []

    def test_concurrent_rsvps_do_not_overwrite(self, admin_gw, alice_gw, bob_gw):
        event = admin_gw.create_event(EventCreate(title="Picnic", date=datetime(2099, 6, 1)))
        alice_gw.rsvp_join(event["id"])
        updated = bob_gw.rsvp_join(event["id"])
        assert set(updated["attendees"]) == {alice_gw.identity.id, bob_gw.identity.id}

    def test_rsvp_missing_event(self, alice_gw):
        with pytest.raises(NotFound):
            alice_gw.rsvp_join("missing")


class TestRoster:

    @pytest.fixture
    def service(self, admin_gw):
        return admin_gw.create_service(ServiceCreate(date=date(2099, 1, 4), type="Sunday Service"))

    def test_default_roles(self, service, gateway_settings):
        assert service["roles"] == {role: None for role in gateway_settings.default_service_roles}

    def test_volunteer_for_open_role(self, service, alice_gw):
        updated = alice_gw.volunteer(service["id"], "Keys")
        assert updated["roles"]["Keys"] == alice_gw.identity.id

    def test_occupied_slot_is_never_overwritten(self, service, alice_gw, bob_gw, memory_store):
        alice_gw.volunteer(service["id"], "Keys")
        with pytest.raises(RoleAlreadyFilled):
            bob_gw.volunteer(service["id"], "Keys")
        assert memory_store.get_document("services", service["id"])["roles"]["Keys"] == alice_gw.identity.id

    def test_volunteer_again_is_noop(self, service, alice_gw):
        alice_gw.volunteer(service["id"], "Keys")
        assert alice_gw.volunteer(service["id"], "Keys")["roles"]["Keys"] == alice_gw.identity.id

    def test_role_with_slash(self, service, alice_gw):
        updated = alice_gw.volunteer(service["id"], "Media/ProPresenter")
        assert updated["roles"]["Media/ProPresenter"] == alice_gw.identity.id

    def test_unknown_role(self, service, alice_gw):
        with pytest.raises(NotFound):
            alice_gw.volunteer(service["id"], "Tuba")

    def test_restricted_role_scenario(self, service, admin_gw, alice_gw, memory_store):
        security = admin_gw.create_team("Security")
        admin_gw.set_role_restriction("Media/ProPresenter", security["id"])

        with pytest.raises(AuthorizationDenied) as exc_info:
            alice_gw.volunteer(service["id"], "Media/ProPresenter")
        assert "Security" in exc_info.value.message
        assert memory_store.get_document("services", service["id"])["roles"]["Media/ProPresenter"] is None

        admin_gw.add_team_member(alice_gw.identity.id, security["id"])
        updated = alice_gw.volunteer(service["id"], "Media/ProPresenter")
        assert updated["roles"]["Media/ProPresenter"] == alice_gw.identity.id

    def test_lift_restriction(self, service, admin_gw, alice_gw):
        security = admin_gw.create_team("Security")
        admin_gw.set_role_restriction("Sound", security["id"])
        assert admin_gw.set_role_restriction("Sound", None) is None
        alice_gw.volunteer(service["id"], "Sound")

    def test_member_cannot_set_restriction(self, admin_gw, alice_gw):
        team = admin_gw.create_team("Security")
        with pytest.raises(AuthorizationDenied):
            alice_gw.set_role_restriction("Sound", team["id"])

    def test_occupant_cancels(self, service, alice_gw):
        alice_gw.volunteer(service["id"], "Drums")
        assert alice_gw.cancel_role(service["id"], "Drums")["roles"]["Drums"] is None

    def test_other_member_cannot_cancel(self, service, alice_gw, bob_gw):
        alice_gw.volunteer(service["id"], "Drums")
        with pytest.raises(AuthorizationDenied):
            bob_gw.cancel_role(service["id"], "Drums")

    def test_admin_cancels_anyone(self, service, admin_gw, alice_gw):
        alice_gw.volunteer(service["id"], "Drums")
        assert admin_gw.cancel_role(service["id"], "Drums")["roles"]["Drums"] is None

    def test_cancel_open_slot_is_noop(self, service, bob_gw):
        assert bob_gw.cancel_role(service["id"], "Drums")["roles"]["Drums"] is None

    def test_member_cannot_create_service(self, alice_gw):
        with pytest.raises(AuthorizationDenied):
            alice_gw.create_service(ServiceCreate(date=date(2099, 1, 4), type="Sunday Service"))

    def test_ensure_upcoming_service_seeds_once(self, alice_gw, memory_store, gateway_settings):
        seeded = alice_gw.ensure_upcoming_service(today=date(2025, 1, 1))
        again = alice_gw.ensure_upcoming_service(today=date(2025, 1, 1))

        assert seeded["date"] == "2025-01-05"
        assert seeded["type"] == gateway_settings.default_service_type
        assert again is None
        assert memory_store.count("services") == 1

    def test_upcoming_sunday(self):
        assert upcoming_sunday(date(2025, 1, 5)) == date(2025, 1, 5)
        assert upcoming_sunday(date(2025, 1, 6)) == date(2025, 1, 12)


class TestChat:

    def test_member_posts_to_own_team(self, admin_gw, alice_gw):
        team = admin_gw.create_team("Youth")
        admin_gw.add_team_member(alice_gw.identity.id, team["id"])

        message = alice_gw.send_message(team["id"], "See you Friday")

        assert message["sender"] == "Alice"
        assert message["sender_id"] == alice_gw.identity.id
        assert message["team_id"] == team["id"]

    def test_non_member_cannot_post(self, admin_gw, bob_gw, memory_store):
        team = admin_gw.create_team("Youth")
        with pytest.raises(AuthorizationDenied):
            bob_gw.send_message(team["id"], "let me in")
        assert memory_store.get("messages") == []


class TestFailures:

    def test_store_failure_becomes_write_failure(self, admin_gw, alice_gw, memory_store, monkeypatch):
        event = admin_gw.create_event(EventCreate(title="Picnic", date=datetime(2099, 6, 1)))

        def unavailable(*args, **kwargs):
            raise StoreUnavailable("network down")

        monkeypatch.setattr(memory_store, "update", unavailable)

        with pytest.raises(WriteFailure):
            alice_gw.rsvp_join(event["id"])

    def test_failed_team_delete_keeps_memberships(self, admin_gw, alice_gw, memory_store, monkeypatch):
        team = admin_gw.create_team("Security")
        admin_gw.add_team_member(alice_gw.identity.id, team["id"])
        alice_gw.send_message(team["id"], "hello")
        batch_delete = memory_store.batch_delete

        def messages_unavailable(collection, doc_ids):
            if collection == "messages":
                raise StoreUnavailable("network down")
            return batch_delete(collection, doc_ids)

        monkeypatch.setattr(memory_store, "batch_delete", messages_unavailable)

        with pytest.raises(WriteFailure):
            admin_gw.delete_team(team["id"])

        assert profile(memory_store, alice_gw)["teams"] == [team["id"]]
        assert memory_store.get_document("teams", team["id"]) is not None
        assert memory_store.count("messages") == 1


class TestDefaultRestrictions:

    @pytest.fixture
    def gateway_settings(self) -> Settings:
        return Settings(
            _env_file=None,
            database_path=":memory:",
            admin_email=ADMIN_EMAIL,
            default_role_restrictions={"Media/ProPresenter": "Security"},
        )

    def test_created_team_picks_up_configured_restriction(self, admin_gw, memory_store):
        assert load_role_restrictions(memory_store) == {}

        team = admin_gw.create_team("security")

        assert load_role_restrictions(memory_store) == {"Media/ProPresenter": team["id"]}

    def test_unrelated_team_gets_no_restriction(self, admin_gw, memory_store):
        admin_gw.create_team("Worship")
        assert load_role_restrictions(memory_store) == {}

    def test_existing_restriction_is_kept(self, admin_gw, memory_store):
        worship = admin_gw.create_team("Worship")
        admin_gw.set_role_restriction("Media/ProPresenter", worship["id"])

        admin_gw.create_team("Security")

        assert load_role_restrictions(memory_store) == {"Media/ProPresenter": worship["id"]}
