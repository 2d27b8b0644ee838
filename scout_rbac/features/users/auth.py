"""
Authentication utilities for bearer JWT verification.
"""
import jwt
from fastapi import HTTPException, status

from scout_rbac.core import config
from scout_rbac.utils import get_logger


log = get_logger(__name__)


def create_access_token(user_id: str, extra_claims: dict | None = None) -> str:
    """
    Issue a signed token for a local user.

    Used by the seed script and tests; production tokens are issued by the
    login service sharing JWT_SECRET_KEY.
    """
    if not config.JWT_SECRET_KEY:
        raise RuntimeError("JWT_SECRET_KEY is not set")
    payload = {"sub": user_id}
    if extra_claims:
        payload.update(extra_claims)
    return jwt.encode(payload, config.JWT_SECRET_KEY, algorithm=config.JWT_ALGORITHM)


def verify_jwt_token(token: str) -> dict:
    """
    Verify a bearer JWT and return its payload.

    Args:
        token: JWT token from Authorization header

    Returns:
        Decoded JWT payload containing the user id in "sub" (or legacy "user_id")

    Raises:
        HTTPException: If token is invalid or expired
    """
    if not config.JWT_SECRET_KEY:
        log.error("JWT_SECRET_KEY is not set; rejecting bearer token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token verification is not configured",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = jwt.decode(
            token,
            config.JWT_SECRET_KEY,
            algorithms=[config.JWT_ALGORITHM],
            options={"verify_exp": True}
        )

        return payload

    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
