"""Models package - Pydantic models for API request/response"""

from .event import Event, EventCreate, Location, RsvpRequest
from .message import Message, MessageCreate
from .service import RoleRequest, RoleRestrictionUpdate, Service, ServiceCreate
from .team import Team, TeamCreate, TeamUpdate
from .user import (
    DisplayNameUpdate,
    IdentityResponse,
    LoginRequest,
    SessionResponse,
    SignUpRequest,
    TeamMembershipRequest,
    UserProfile,
)

__all__ = [
    # Users
    "SignUpRequest",
    "LoginRequest",
    "DisplayNameUpdate",
    "TeamMembershipRequest",
    "IdentityResponse",
    "SessionResponse",
    "UserProfile",
    # Teams
    "Team",
    "TeamCreate",
    "TeamUpdate",
    # Events
    "Event",
    "EventCreate",
    "Location",
    "RsvpRequest",
    # Roster
    "Service",
    "ServiceCreate",
    "RoleRequest",
    "RoleRestrictionUpdate",
    # Chat
    "Message",
    "MessageCreate",
]
