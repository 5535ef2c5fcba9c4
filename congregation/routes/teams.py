"""Team and team chat routes"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from tinydb import Query

from ..auth import rules
from ..auth.session import SessionContext
from ..dependencies import get_gateway, get_session, get_store
from ..errors import NotFound
from ..models import Message, MessageCreate, Team, TeamCreate, TeamUpdate
from ..services.document_store import DocumentStore
from ..services.gateway import MutationGateway

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[Team])
async def list_teams(
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
):
    """All teams for administrators, otherwise the caller's own teams"""
    teams = store.get("teams", order_by="name")
    if rules.can_manage_teams(session.identity):
        return teams
    profile = store.get_document("users", session.user_id) or {}
    mine = set(profile.get("teams") or [])
    return [team for team in teams if team["id"] in mine]


@router.post("", response_model=Team, status_code=201)
async def create_team(request: TeamCreate, gateway: MutationGateway = Depends(get_gateway)):
    return gateway.create_team(request.name)


@router.patch("/{team_id}", response_model=Team)
async def rename_team(
    team_id: str,
    request: TeamUpdate,
    gateway: MutationGateway = Depends(get_gateway),
):
    return gateway.rename_team(team_id, request.name)


@router.delete("/{team_id}")
async def delete_team(team_id: str, gateway: MutationGateway = Depends(get_gateway)):
    return gateway.delete_team(team_id)


# Chat


@router.get("/{team_id}/messages", response_model=List[Message])
async def list_messages(
    team_id: str,
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
):
    """Channel history, oldest first; members only"""
    if store.get_document("teams", team_id) is None:
        raise NotFound("Team not found")
    profile = store.get_document("users", session.user_id)
    rules.require(
        rules.can_view_channel(session.identity, team_id, profile),
        "You are not a member of this team",
    )
    return store.get("messages", Query().team_id == team_id, order_by="timestamp")


@router.post("/{team_id}/messages", response_model=Message, status_code=201)
async def send_message(
    team_id: str,
    request: MessageCreate,
    gateway: MutationGateway = Depends(get_gateway),
):
    return gateway.send_message(team_id, request.text)
