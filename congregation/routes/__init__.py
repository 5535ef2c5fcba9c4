"""API routes"""

from . import auth, events, roster, teams, users, websocket

__all__ = ["auth", "events", "roster", "teams", "users", "websocket"]
