"""Session store: sign-up, sign-in, sign-out and the explicit session context

There is no process-wide "current user". A :class:`SessionContext` is created
when someone signs in or signs up, resolved again from its bearer token on
every request, and torn down on sign-out by revoking the token id.
"""

import logging
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from ..errors import WriteFailure
from ..services.document_store import DocumentStore, StoreError
from .identity import Identity, IdentityProvider
from .jwt import create_access_token, verify_token

logger = logging.getLogger(__name__)

AuthStateListener = Callable[[Optional[Identity]], None]


@dataclass(frozen=True)
class SessionContext:
    identity: Identity
    token: str
    token_id: str
    expires_at: datetime

    @property
    def user_id(self) -> str:
        return self.identity.id

    @property
    def is_admin(self) -> bool:
        return self.identity.is_admin


class SessionStore:
    """Wraps the identity provider and owns session lifetimes"""

    def __init__(
        self,
        identity_provider: IdentityProvider,
        store: DocumentStore,
        secret_key: str,
        token_ttl: timedelta = timedelta(hours=24),
    ):
        self.identity_provider = identity_provider
        self.store = store
        self._secret_key = secret_key
        self._token_ttl = token_ttl
        self._revoked: Dict[str, datetime] = {}
        self._listeners: List[AuthStateListener] = []
        self._lock = threading.Lock()

    # =========================================================================
    # Operations
    # =========================================================================

    def sign_up(self, email: str, password: str, display_name: str) -> SessionContext:
        """Create the account and its empty profile, then open a session"""
        identity = self.identity_provider.create_account(email, password, display_name)

        profile = {
            "id": identity.id,
            "email": identity.email,
            "display_name": identity.display_name,
            "teams": [],
            "role": "admin" if identity.is_admin else "member",
            "created_at": self.store.timestamp(),
        }
        try:
            self.store.create("users", profile)
        except StoreError as e:
            logger.error(f"Profile creation failed for {identity.id}, rolling back account: {e}")
            self.identity_provider.delete_account(identity.id)
            raise WriteFailure("Your account could not be set up. Please try again.") from e

        logger.info(f"User signed up: {identity.id}")
        return self._open(identity)

    def sign_in(self, email: str, password: str) -> SessionContext:
        identity = self.identity_provider.sign_in(email, password)
        logger.info(f"User signed in: {identity.id}")
        return self._open(identity)

    def sign_out(self, context: SessionContext):
        now = datetime.now(timezone.utc)
        with self._lock:
            self._revoked = {jti: exp for jti, exp in self._revoked.items() if exp > now}
            self._revoked[context.token_id] = context.expires_at
        logger.info(f"User signed out: {context.user_id}")
        self._notify(None)

    def resolve(self, token: str) -> Optional[SessionContext]:
        """Rebuild the session context for a bearer token, or None"""
        payload = verify_token(token, self._secret_key)
        if payload is None:
            return None

        token_id = payload.get("jti")
        user_id = payload.get("sub")
        if not token_id or not user_id:
            return None
        with self._lock:
            if token_id in self._revoked:
                return None

        identity = self.identity_provider.get_identity(user_id)
        if identity is None:
            return None

        expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc)
        return SessionContext(identity=identity, token=token, token_id=token_id, expires_at=expires_at)

    def current_identity(self, token: Optional[str]) -> Optional[Identity]:
        if not token:
            return None
        context = self.resolve(token)
        return context.identity if context else None

    def update_display_name(self, context: SessionContext, display_name: str) -> SessionContext:
        """Display name is the only identity field the application may change"""
        identity = self.identity_provider.update_display_name(context.user_id, display_name)
        try:
            self.store.update("users", identity.id, {"display_name": identity.display_name})
        except StoreError as e:
            raise WriteFailure("Your profile could not be updated") from e
        updated = replace(context, identity=identity)
        self._notify(identity)
        return updated

    # =========================================================================
    # Auth state stream
    # =========================================================================

    def on_auth_state_changed(self, callback: AuthStateListener) -> Callable[[], None]:
        """Register a listener; returns the function that unregisters it"""
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, identity: Optional[Identity]):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener(identity)

    def _open(self, identity: Identity) -> SessionContext:
        token = create_access_token(
            data={"sub": identity.id, "email": identity.email},
            secret_key=self._secret_key,
            expires_delta=self._token_ttl,
        )
        payload = verify_token(token, self._secret_key)
        context = SessionContext(
            identity=identity,
            token=token,
            token_id=payload["jti"],
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )
        self._notify(identity)
        return context
