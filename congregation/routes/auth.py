"""Authentication routes"""

import logging

from fastapi import APIRouter, Depends

from ..auth.session import SessionContext, SessionStore
from ..dependencies import get_session, get_session_store
from ..models import DisplayNameUpdate, IdentityResponse, LoginRequest, SessionResponse, SignUpRequest

logger = logging.getLogger(__name__)
router = APIRouter()


def session_response(context: SessionContext) -> SessionResponse:
    return SessionResponse(
        access_token=context.token,
        expires_at=context.expires_at.isoformat(),
        user=IdentityResponse(**context.identity.to_dict()),
    )


@router.post("/signup", response_model=SessionResponse, status_code=201)
async def signup(
    request: SignUpRequest,
    session_store: SessionStore = Depends(get_session_store),
):
    """Create an account and its member profile, then sign in"""
    context = session_store.sign_up(request.email, request.password, request.display_name)
    return session_response(context)


@router.post("/login", response_model=SessionResponse)
async def login(
    request: LoginRequest,
    session_store: SessionStore = Depends(get_session_store),
):
    context = session_store.sign_in(request.email, request.password)
    return session_response(context)


@router.post("/logout")
async def logout(
    session: SessionContext = Depends(get_session),
    session_store: SessionStore = Depends(get_session_store),
):
    """Revoke the current token"""
    session_store.sign_out(session)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=IdentityResponse)
async def get_me(session: SessionContext = Depends(get_session)):
    return IdentityResponse(**session.identity.to_dict())


@router.patch("/me", response_model=IdentityResponse)
async def update_me(
    request: DisplayNameUpdate,
    session: SessionContext = Depends(get_session),
    session_store: SessionStore = Depends(get_session_store),
):
    """Update the display name; the only identity field members can change"""
    context = session_store.update_display_name(session, request.display_name)
    return IdentityResponse(**context.identity.to_dict())
