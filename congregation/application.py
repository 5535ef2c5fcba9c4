"""Application factory"""

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth.identity import IdentityProvider
from .auth.session import SessionStore
from .config import Settings, get_settings
from .errors import CongregationError
from .routes import auth, events, roster, teams, users, websocket
from .services.bootstrap import bootstrap_admin_roles, bootstrap_role_restrictions
from .services.document_store import DocumentStore
from .services.sweeper import RetentionSweeper

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    store = DocumentStore(settings.database_path)
    store.initialize()
    identity_provider = IdentityProvider(store, settings.admin_email, settings.min_password_length)
    session_store = SessionStore(
        identity_provider,
        store,
        settings.secret_key,
        token_ttl=timedelta(minutes=settings.access_token_expire_minutes),
    )
    sweeper = RetentionSweeper(store, message_retention=timedelta(hours=settings.message_retention_hours))

    bootstrap_admin_roles(store, settings.admin_email)
    bootstrap_role_restrictions(store, settings.default_role_restrictions)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        logger.info(f"Starting {settings.app_name}...")
        yield
        logger.info(f"Shutting down {settings.app_name}...")
        store.close()

    app = FastAPI(
        title=settings.app_name,
        description="Church community API - events, roster, team chat and administration",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.identity_provider = identity_provider
    app.state.session_store = session_store
    app.state.sweeper = sweeper

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(CongregationError)
    async def congregation_exception_handler(request: Request, exc: CongregationError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Global exception handler"""
        logger.error(f"Unhandled exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    # Include routers
    app.include_router(auth.router, prefix="/auth", tags=["Authentication"])
    app.include_router(users.router, prefix="/users", tags=["Users"])
    app.include_router(teams.router, prefix="/teams", tags=["Teams"])
    app.include_router(events.router, prefix="/events", tags=["Events"])
    app.include_router(roster.router, prefix="/roster", tags=["Roster"])
    app.include_router(websocket.router, tags=["Views"])

    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "congregation-hub",
            "version": VERSION,
        }

    return app
