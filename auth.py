"""
Bearer token verification. Tokens are issued by the identity provider;
this service only checks them and derives the caller's identity.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from config import Settings
from errors import Unauthenticated

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CallerContext:
    """Verified identity of the caller; the only source of "who is calling"."""
    email: str
    uid: Optional[str] = None
    name: Optional[str] = None


def decode_jwt(settings: Settings, token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
    except JWTError as e:
        logger.info("Rejected bearer token: %s", e)
        raise Unauthenticated("Unauthorized Access!", error=str(e))


def verify_caller(settings: Settings, creds: Optional[HTTPAuthorizationCredentials]) -> CallerContext:
    if not creds or creds.scheme.lower() != "bearer" or not creds.credentials:
        raise Unauthenticated("Unauthorized Access!")
    claims = decode_jwt(settings, creds.credentials)
    email = claims.get("email")
    if not email:
        raise Unauthenticated("Unauthorized Access!", error="token carries no email")
    return CallerContext(email=email, uid=claims.get("sub"), name=claims.get("name"))


bearer_scheme = HTTPBearer(auto_error=False)


def get_current_caller(
    request: Request,
    creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> CallerContext:
    return verify_caller(request.app.state.settings, creds)
