"""
Token verification for the external identity provider.

Tokens are HS256 JWTs carrying the user id in `sub` and the role in `role`.
Issuing tokens belongs to the identity provider; `create_access_token` exists
for it and for tests.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from ems.core.config import settings

logger = logging.getLogger(__name__)


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    payload = dict(data)
    now = datetime.now(timezone.utc)
    payload["iat"] = now
    payload["exp"] = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload.setdefault("type", "access")
    return jwt.encode(payload, settings.secret_key, algorithm=settings.token_algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a token.
    Returns the payload, {"error": "TOKEN_EXPIRED"} for expired tokens, or None if invalid.
    """
    if not token or not isinstance(token, str):
        return None
    try:
        return jwt.decode(token.strip(), settings.secret_key, algorithms=[settings.token_algorithm])
    except jwt.ExpiredSignatureError:
        return {"error": "TOKEN_EXPIRED"}
    except jwt.InvalidTokenError as e:
        logger.debug(f"Token rejected: {e}")
        return None
