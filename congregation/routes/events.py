"""Event and RSVP routes"""

import logging
from typing import List

from fastapi import APIRouter, Depends

from ..auth.session import SessionContext
from ..dependencies import get_gateway, get_session, get_store
from ..models import Event, EventCreate, RsvpRequest
from ..services.document_store import DocumentStore
from ..services.gateway import MutationGateway

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("", response_model=List[Event])
async def list_events(
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
):
    return store.get("events", order_by="date")


@router.post("", response_model=Event, status_code=201)
async def create_event(request: EventCreate, gateway: MutationGateway = Depends(get_gateway)):
    return gateway.create_event(request)


@router.delete("/{event_id}")
async def delete_event(event_id: str, gateway: MutationGateway = Depends(get_gateway)):
    return gateway.delete_event(event_id)


@router.post("/{event_id}/rsvp", response_model=Event)
async def rsvp(
    event_id: str,
    request: RsvpRequest,
    gateway: MutationGateway = Depends(get_gateway),
):
    """Attend ("yes") or decline ("no"); switching moves the caller between lists"""
    if request.response == "yes":
        return gateway.rsvp_join(event_id)
    return gateway.rsvp_decline(event_id)


@router.delete("/{event_id}/rsvp", response_model=Event)
async def leave_event(event_id: str, gateway: MutationGateway = Depends(get_gateway)):
    return gateway.rsvp_leave(event_id)
