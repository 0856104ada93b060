"""
Caller resolution for FastAPI endpoints.

The identity provider issues bearer tokens; this module only verifies them and
turns the claims into a `Caller`. Capability checks live in the services.
"""
import logging

from fastapi import Depends
from fastapi.security import OAuth2PasswordBearer

from ems.core.exceptions import AuthenticationError
from ems.core.permissions import Caller
from ems.core.security import decode_access_token
from ems.models.user import UserRole

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")


def get_current_caller(token: str = Depends(oauth2_scheme)) -> Caller:
    """
    Extracts and validates the current caller from the JWT token.
    """
    payload = decode_access_token(token)

    if payload is None:
        logger.warning("Authentication failed: Invalid token")
        raise AuthenticationError()

    if payload.get("error") == "TOKEN_EXPIRED":
        logger.info("Authentication failed: Token expired")
        raise AuthenticationError("TOKEN_EXPIRED")

    if payload.get("type") != "access":
        logger.warning("Authentication failed: Invalid token type")
        raise AuthenticationError("Invalid token type")

    subject = payload.get("sub")
    if subject is None:
        logger.warning("Authentication failed: Missing subject in token")
        raise AuthenticationError("Missing subject in token")

    try:
        return Caller(user_id=int(subject), role=UserRole(payload.get("role")))
    except (TypeError, ValueError):
        logger.warning(f"Authentication failed: Malformed claims for subject {subject}")
        raise AuthenticationError("Malformed token claims")
