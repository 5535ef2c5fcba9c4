"""Live views pushed over WebSockets"""

from .admin import AdminView
from .base import View
from .dashboard import DashboardView
from .events import EventsView
from .roster import RosterView
from .teams import TeamsView

VIEWS = {
    view.name: view
    for view in (DashboardView, EventsView, RosterView, TeamsView, AdminView)
}

__all__ = ["View", "VIEWS", "DashboardView", "EventsView", "RosterView", "TeamsView", "AdminView"]
