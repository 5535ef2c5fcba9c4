"""FastAPI dependencies: application services and the request's session"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .auth.session import SessionContext, SessionStore
from .config import Settings
from .services.document_store import DocumentStore
from .services.gateway import MutationGateway
from .services.sweeper import RetentionSweeper

security = HTTPBearer(auto_error=False)


def get_store(request: Request) -> DocumentStore:
    return request.app.state.store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_sweeper(request: Request) -> RetentionSweeper:
    return request.app.state.sweeper


async def get_session(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session_store: SessionStore = Depends(get_session_store),
) -> SessionContext:
    """Resolve the bearer token into a session context"""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not credentials:
        raise credentials_exception

    context = session_store.resolve(credentials.credentials)
    if context is None:
        raise credentials_exception
    return context


async def get_gateway(
    request: Request,
    session: SessionContext = Depends(get_session),
) -> MutationGateway:
    return MutationGateway(
        request.app.state.store,
        session,
        request.app.state.settings,
        request.app.state.identity_provider,
    )
