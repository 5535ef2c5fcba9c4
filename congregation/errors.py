"""Error taxonomy shared by the session store, gateway and views"""

from typing import Optional


class CongregationError(Exception):
    """Base class for user-facing failures scoped to a single action"""

    status_code: int = 500
    code: str = "error"
    default_message: str = "Something went wrong"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "code": self.code}


# =============================================================================
# Authentication
# =============================================================================

class AuthError(CongregationError):
    status_code = 401
    code = "auth/error"
    default_message = "Authentication failed"


class InvalidCredentials(AuthError):
    status_code = 401
    code = "auth/invalid-credential"
    default_message = "Invalid email or password"


class EmailAlreadyInUse(AuthError):
    status_code = 409
    code = "auth/email-already-in-use"
    default_message = "An account with this email already exists"


class WeakPassword(AuthError):
    status_code = 400
    code = "auth/weak-password"
    default_message = "Password is too weak"


class NetworkUnavailable(AuthError):
    status_code = 503
    code = "auth/network-request-failed"
    default_message = "The identity service is unavailable"


# =============================================================================
# Authorization and writes
# =============================================================================

class AuthorizationDenied(CongregationError):
    status_code = 403
    code = "permission-denied"
    default_message = "You are not allowed to do that"


class NotFound(CongregationError):
    status_code = 404
    code = "not-found"
    default_message = "Not found"


class WriteFailure(CongregationError):
    status_code = 503
    code = "write-failed"
    default_message = "The change could not be saved"


class RoleAlreadyFilled(WriteFailure):
    status_code = 409
    code = "role-already-filled"
    default_message = "Someone is already serving in this role"


class TeamNameTaken(WriteFailure):
    status_code = 409
    code = "team-name-taken"
    default_message = "A team with this name already exists"


# =============================================================================
# Subscriptions
# =============================================================================

class SubscriptionError(CongregationError):
    status_code = 410
    code = "subscription-dropped"
    default_message = "Live updates stopped"


class InvalidCommand(CongregationError):
    status_code = 400
    code = "invalid-command"
    default_message = "Unknown command"
