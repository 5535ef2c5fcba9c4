"""Startup data bootstrap"""

import logging
from typing import Dict

from ..auth.identity import is_admin_email
from .document_store import DocumentStore
from .gateway import apply_default_restrictions, find_team_by_name

logger = logging.getLogger(__name__)


def bootstrap_admin_roles(store: DocumentStore, admin_email: str) -> int:
    """Write the stored role onto every profile so data agrees with config.

    The stored role is informational; admin rights always come from the
    configured address.
    """
    updated = 0
    for profile in store.get("users"):
        role = "admin" if is_admin_email(profile.get("email", ""), admin_email) else "member"
        if profile.get("role") != role:
            store.update("users", profile["id"], {"role": role})
            updated += 1
    if updated:
        logger.info(f"Bootstrap: updated role on {updated} profiles")
    return updated


def bootstrap_role_restrictions(store: DocumentStore, defaults: Dict[str, str]) -> int:
    """Create configured restrictions (role -> team name) that do not exist yet.

    Roles whose team does not exist yet are picked up when the team is created.
    """
    created = 0
    for role, team_name in defaults.items():
        team = find_team_by_name(store, team_name)
        if team is None:
            logger.warning(f"Bootstrap: no team named '{team_name}' for restricted role '{role}' yet")
            continue
        created += apply_default_restrictions(store, {role: team_name}, team)
    if created:
        logger.info(f"Bootstrap: created {created} role restrictions")
    return created
