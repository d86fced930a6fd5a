from __future__ import annotations

from fastapi import HTTPException, status
from jose import JWTError, jwt
from starlette.requests import Request

from sharpcrm.context import get_correlation_id
from sharpcrm.core.config import get_settings
from sharpcrm.platform.security.context import Identity
from sharpcrm.platform.security.errors import AuthenticationError


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    return auth_header.replace("Bearer ", "", 1).strip() if auth_header.startswith("Bearer ") else ""


def decode_identity(token: str, *, correlation_id: str | None = None) -> Identity:
    if not token:
        raise AuthenticationError("Missing bearer token")

    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise AuthenticationError("Invalid bearer token") from None

    identity = Identity.from_claims(claims, correlation_id=correlation_id)
    if not identity.user_id:
        raise AuthenticationError("Token has no subject")
    return identity


async def get_current_identity(request: Request) -> Identity:
    """Verify the bearer token and map its claims onto an :class:`Identity`."""

    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    try:
        return decode_identity(_bearer_token(request), correlation_id=correlation_id)
    except AuthenticationError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from None
