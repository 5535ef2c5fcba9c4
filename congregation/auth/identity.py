"""Email/password identity provider backed by the accounts collection"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from passlib.context import CryptContext
from tinydb import Query

from ..errors import EmailAlreadyInUse, InvalidCredentials, NetworkUnavailable, NotFound, WeakPassword
from ..services.document_store import (
    DocumentExists,
    DocumentNotFound,
    DocumentStore,
    StoreError,
    StoreUnavailable,
)

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")


@dataclass(frozen=True)
class Identity:
    """The signed-in person as issued by the identity provider"""

    id: str
    email: str
    display_name: str
    is_admin: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def is_admin_email(email: str, admin_email: str) -> bool:
    """Admin is a pure function of the email address, not of stored data"""
    email = normalize_email(email)
    return bool(email) and email == normalize_email(admin_email)


class IdentityProvider:
    """Creates accounts and checks credentials"""

    def __init__(self, store: DocumentStore, admin_email: str, min_password_length: int = 6):
        self.store = store
        self.admin_email = admin_email
        self.min_password_length = min_password_length

    def identity_for(self, account: dict) -> Identity:
        return Identity(
            id=account["id"],
            email=account["email"],
            display_name=account.get("display_name") or "",
            is_admin=is_admin_email(account["email"], self.admin_email),
        )

    def create_account(self, email: str, password: str, display_name: str = "") -> Identity:
        email = normalize_email(email)
        if len(password or "") < self.min_password_length:
            raise WeakPassword(f"Password should be at least {self.min_password_length} characters")

        account = {
            "id": self.store.generate_id(),
            "email": email,
            "display_name": display_name.strip(),
            "password_hash": pwd_context.hash(password),
            "created_at": self.store.timestamp(),
        }
        try:
            self.store.create("accounts", account, unique_on="email")
        except DocumentExists:
            raise EmailAlreadyInUse()
        except StoreError as e:
            logger.error(f"Account creation failed for {email}: {e}")
            raise NetworkUnavailable() from e

        logger.info(f"Account created: {account['id']}")
        return self.identity_for(account)

    def sign_in(self, email: str, password: str) -> Identity:
        account = self._find_by_email(email)
        if account is None or not _verify(password, account.get("password_hash", "")):
            logger.warning(f"Failed sign-in for {normalize_email(email)}")
            raise InvalidCredentials()
        return self.identity_for(account)

    def get_identity(self, account_id: str) -> Optional[Identity]:
        try:
            account = self.store.get_document("accounts", account_id)
        except StoreUnavailable as e:
            raise NetworkUnavailable() from e
        return self.identity_for(account) if account else None

    def update_display_name(self, account_id: str, display_name: str) -> Identity:
        try:
            account = self.store.update("accounts", account_id, {"display_name": display_name.strip()})
        except DocumentNotFound:
            raise NotFound("Account not found")
        except StoreError as e:
            raise NetworkUnavailable() from e
        return self.identity_for(account)

    def delete_account(self, account_id: str) -> bool:
        try:
            return self.store.delete("accounts", account_id)
        except StoreError as e:
            raise NetworkUnavailable() from e

    def _find_by_email(self, email: str) -> Optional[dict]:
        Account = Query()
        try:
            matches = self.store.get("accounts", Account.email == normalize_email(email))
        except StoreUnavailable as e:
            raise NetworkUnavailable() from e
        return matches[0] if matches else None


def _verify(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return pwd_context.verify(password or "", password_hash)
    except ValueError:
        return False
