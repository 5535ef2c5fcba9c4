"""User management routes (admin)"""

import logging
from typing import List

from fastapi import APIRouter, Depends

from ..auth import rules
from ..auth.session import SessionContext
from ..dependencies import get_gateway, get_session, get_store
from ..models import TeamMembershipRequest, UserProfile
from ..services.document_store import DocumentStore
from ..services.gateway import MutationGateway

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[UserProfile])
async def list_users(
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
):
    """List every member profile"""
    rules.require(rules.can_manage_users(session.identity), "Only an administrator can list users")
    return store.get("users", order_by="email")


@router.delete("/{user_id}")
async def delete_user(user_id: str, gateway: MutationGateway = Depends(get_gateway)):
    return gateway.delete_user(user_id)


@router.post("/{user_id}/teams", response_model=UserProfile)
async def add_team_member(
    user_id: str,
    request: TeamMembershipRequest,
    gateway: MutationGateway = Depends(get_gateway),
):
    return gateway.add_team_member(user_id, request.team_id)


@router.delete("/{user_id}/teams/{team_id}", response_model=UserProfile)
async def remove_team_member(
    user_id: str,
    team_id: str,
    gateway: MutationGateway = Depends(get_gateway),
):
    return gateway.remove_team_member(user_id, team_id)
