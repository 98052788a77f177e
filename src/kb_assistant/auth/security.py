"""
JWT Verification

Verifies bearer tokens issued by the identity provider in front of this
service and produces a validated `UserContext` for downstream routes.

Security Model
--------------
- HMAC-signed tokens (algorithm from settings, HS256 by default).
- Tokens must carry `sub`, `iat` and `exp`, and the configured audience.
- Every verification failure is a 401; nothing about the token is echoed.
"""

from __future__ import annotations

import jwt

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..config import settings
from .models import UserContext


# ---------------------------------------------------------------------
# Security Scheme
# ---------------------------------------------------------------------

security = HTTPBearer(auto_error=True)


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------

def _decode_token(token: str) -> dict:
    return jwt.decode(
        token,
        settings.jwt_secret.get_secret_value(),
        algorithms=[settings.jwt_algo],
        audience=settings.jwt_audience,
        options={"require": ["sub", "iat", "exp"]},
    )


# ---------------------------------------------------------------------
# Public Authentication Dependency
# ---------------------------------------------------------------------

def get_current_user(
    creds: HTTPAuthorizationCredentials = Depends(security),
) -> UserContext:
    """
    Verify the bearer JWT and construct a UserContext.

    Raises
    ------
    HTTPException(401) for invalid or expired tokens.
    """
    try:
        payload = _decode_token(creds.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired.",
        )
    except jwt.InvalidAudienceError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token audience.",
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or malformed token.",
        )

    roles = payload.get("roles", [])
    if not isinstance(roles, list):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="'roles' claim must be a list.",
        )

    return UserContext(
        user_id=str(payload["sub"]),
        email=payload.get("email"),
        roles=roles,
    )
