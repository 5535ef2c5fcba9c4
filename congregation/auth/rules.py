"""Authorization rules

Pure predicates over the caller's identity and the documents involved. They
never touch the store; callers load the profile, service or restrictions and
check the relevant rule before any write.
"""

from typing import Mapping, Optional

from ..errors import AuthorizationDenied
from .identity import Identity


def can_manage_users(identity: Identity) -> bool:
    return identity.is_admin


def can_manage_teams(identity: Identity) -> bool:
    return identity.is_admin


def can_create_event(identity: Identity) -> bool:
    return identity.is_admin


def can_volunteer(
    identity: Identity,
    role: str,
    profile: Optional[Mapping],
    restrictions: Mapping[str, str],
) -> bool:
    """Unrestricted roles are open to everyone; restricted ones need the team"""
    required_team = restrictions.get(role)
    if required_team is None:
        return True
    return required_team in _teams(profile)


def can_view_channel(identity: Identity, team_id: str, profile: Optional[Mapping]) -> bool:
    return team_id in _teams(profile)


def can_cancel_role(identity: Identity, service: Mapping, role: str) -> bool:
    occupant = (service.get("roles") or {}).get(role)
    return occupant == identity.id or identity.is_admin


def require(allowed: bool, message: str = "You are not allowed to do that"):
    """Turn a failed predicate into a user-visible rejection"""
    if not allowed:
        raise AuthorizationDenied(message)


def _teams(profile: Optional[Mapping]) -> list:
    if not profile:
        return []
    return list(profile.get("teams") or [])
