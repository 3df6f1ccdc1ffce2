"""
JWT Verification

This module is responsible for:

1. Verifying bearer tokens issued by the external identity provider.
2. Producing a validated `UserContext` object for downstream routes.

Security Model
--------------
- Tokens are signed with a shared secret (HS256 by default).
- They must be short-lived and include issuer, audience and subject claims.
- Any verification failure is an UnauthorizedError (401); no route reveals
  why beyond a short message.
"""

from __future__ import annotations

import jwt

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..config import settings
from ..core.errors import UnauthorizedError
from .models import UserContext


# ---------------------------------------------------------------------
# Security Scheme
# ---------------------------------------------------------------------

security = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class JWTVerificationError(RuntimeError):
    """Raised internally when token verification cannot be attempted."""


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------

def _validate_jwt_config() -> None:
    if not settings.jwt_secret.get_secret_value():
        raise JWTVerificationError("Missing jwt_secret in configuration.")
    if not settings.jwt_algo:
        raise JWTVerificationError("Missing jwt_algo in configuration.")


def decode_token(token: str) -> dict:
    """
    Decode and validate a user access token.

    Raises
    ------
    Various JWT-related exceptions, which the public wrapper handles.
    """
    _validate_jwt_config()

    return jwt.decode(
        token,
        settings.jwt_secret.get_secret_value(),
        algorithms=[settings.jwt_algo],
        audience=settings.jwt_audience,
        issuer=settings.jwt_issuer,
        options={
            "require": ["iss", "aud", "iat", "exp", "sub"],
        },
    )


# ---------------------------------------------------------------------
# Public Authentication Dependency
# ---------------------------------------------------------------------

def get_current_user(
    creds: HTTPAuthorizationCredentials | None = Depends(security),
) -> UserContext:
    """
    Verify the bearer token and construct a UserContext.

    Expected claims:
      - iss: configured issuer
      - aud: configured audience
      - sub: user id
      - email: optional

    Raises
    ------
    UnauthorizedError
        Missing, invalid or expired token (401 with WWW-Authenticate).
    HTTPException
        500 when verification is misconfigured.
    """
    if creds is None or not creds.credentials:
        raise UnauthorizedError("Missing bearer token.")

    try:
        payload = decode_token(creds.credentials)
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired.")
    except jwt.InvalidAudienceError:
        raise UnauthorizedError("Invalid token audience.")
    except jwt.InvalidIssuerError:
        raise UnauthorizedError("Invalid token issuer.")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid or malformed token.")
    except JWTVerificationError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="JWT verification configuration error.",
        )

    user_id = payload.get("sub")
    if not isinstance(user_id, str) or not user_id or len(user_id) > 128:
        raise UnauthorizedError("Token has an invalid 'sub' claim.")

    email = payload.get("email")
    return UserContext(
        user_id=user_id,
        email=email if isinstance(email, str) else None,
    )
