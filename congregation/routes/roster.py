"""Service roster routes"""

import logging
from typing import List

from fastapi import APIRouter, Depends

from ..auth.session import SessionContext
from ..dependencies import get_gateway, get_session, get_store
from ..models import RoleRequest, RoleRestrictionUpdate, Service, ServiceCreate
from ..services.document_store import DocumentStore
from ..services.gateway import MutationGateway

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/services", response_model=List[Service])
async def list_services(
    gateway: MutationGateway = Depends(get_gateway),
    store: DocumentStore = Depends(get_store),
):
    """Upcoming services; seeds the default one when the roster is empty"""
    gateway.ensure_upcoming_service()
    return store.get("services", order_by="date")


@router.post("/services", response_model=Service, status_code=201)
async def create_service(request: ServiceCreate, gateway: MutationGateway = Depends(get_gateway)):
    return gateway.create_service(request)


@router.delete("/services/{service_id}")
async def delete_service(service_id: str, gateway: MutationGateway = Depends(get_gateway)):
    return gateway.delete_service(service_id)


@router.post("/services/{service_id}/volunteer", response_model=Service)
async def volunteer(
    service_id: str,
    request: RoleRequest,
    gateway: MutationGateway = Depends(get_gateway),
):
    return gateway.volunteer(service_id, request.role)


@router.post("/services/{service_id}/cancel", response_model=Service)
async def cancel_role(
    service_id: str,
    request: RoleRequest,
    gateway: MutationGateway = Depends(get_gateway),
):
    return gateway.cancel_role(service_id, request.role)


@router.get("/restrictions")
async def list_restrictions(
    session: SessionContext = Depends(get_session),
    store: DocumentStore = Depends(get_store),
):
    """Configured role restrictions, one document per restricted role"""
    return store.get("role_restrictions", order_by="role")


@router.put("/restrictions")
async def set_restriction(
    request: RoleRestrictionUpdate,
    gateway: MutationGateway = Depends(get_gateway),
):
    restriction = gateway.set_role_restriction(request.role, request.team_id)
    return restriction or {"role": request.role, "team_id": None}
