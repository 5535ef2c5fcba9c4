"""Base class for live views

A view owns a :class:`ViewSubscriptions` group for its lifetime. ``mount``
opens the queries it needs, ``render`` turns the merged subscription state
into the JSON pushed to the client, and ``handle_command`` reacts to client
messages. All three run on the view's single consumer task.
"""

import logging
from typing import List, Optional

from tinydb import Query

from ..auth.session import SessionContext
from ..config import Settings
from ..errors import InvalidCommand
from ..services.document_store import DocumentStore
from ..services.subscriptions import ViewSubscriptions
from ..services.sweeper import RetentionSweeper, SweepResult

logger = logging.getLogger(__name__)

Notice = dict


def error_notice(kind: str, detail: str) -> Notice:
    return {"type": "error", "kind": kind, "detail": detail}


def sweep_notice(result: SweepResult) -> List[Notice]:
    if result.ok:
        return []
    return [error_notice("sweep-failed", f"Cleanup of old {result.collection} did not complete")]


class View:
    name = ""

    def __init__(
        self,
        store: DocumentStore,
        session: SessionContext,
        settings: Settings,
        sweeper: RetentionSweeper,
        subscriptions: ViewSubscriptions,
    ):
        self.store = store
        self.session = session
        self.identity = session.identity
        self.settings = settings
        self.sweeper = sweeper
        self.subscriptions = subscriptions

    def mount(self) -> List[Notice]:
        """Open this view's subscriptions; returns notices for the client"""
        raise NotImplementedError

    def render(self) -> dict:
        raise NotImplementedError

    def on_snapshot(self, key: str) -> List[Notice]:
        """Called after a snapshot for ``key`` was merged into state"""
        return []

    def handle_command(self, command: dict) -> List[Notice]:
        raise InvalidCommand(f"Unknown command: {command.get('type')!r}")

    # Shared subscriptions

    def open_profile(self):
        self.subscriptions.open("profile", "users", Query().id == self.identity.id)

    @property
    def profile(self) -> Optional[dict]:
        return self.subscriptions.document("profile", self.identity.id)

    @property
    def my_teams(self) -> List[str]:
        profile = self.profile
        return list(profile.get("teams") or []) if profile else []

    def team_names(self) -> dict:
        return {team["id"]: team.get("name", "") for team in self.subscriptions.documents("teams")}
