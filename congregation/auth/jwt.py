"""JWT token handling"""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

logger = logging.getLogger(__name__)

# JWT Configuration
ALGORITHM = "HS256"


def create_access_token(data: dict, secret_key: str, expires_delta: timedelta) -> str:
    """Create JWT access token with a unique token id (jti)"""
    to_encode = data.copy()
    to_encode.setdefault("jti", uuid.uuid4().hex)
    to_encode.update({"exp": datetime.now(timezone.utc) + expires_delta})

    encoded_jwt = jwt.encode(
        to_encode,
        secret_key,
        algorithm=ALGORITHM
    )
    return encoded_jwt


def verify_token(token: str, secret_key: str) -> Optional[dict]:
    """Verify and decode JWT token"""
    try:
        payload = jwt.decode(
            token,
            secret_key,
            algorithms=[ALGORITHM]
        )
        return payload
    except JWTError as e:
        logger.warning(f"JWT verification failed: {e}")
        return None
