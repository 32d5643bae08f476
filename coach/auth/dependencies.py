"""Auth dependencies for FastAPI route injection."""

import logging
from dataclasses import dataclass

import jwt
from fastapi import Request

from coach.auth.jwt import verify_token
from coach.config.settings import get_settings
from coach.relay.errors import RelayError

logger = logging.getLogger(__name__)


@dataclass
class CurrentUser:
    id: str
    email: str
    name: str = ""


ANONYMOUS = CurrentUser(id="anonymous", email="")


def _extract_bearer_token(request: Request) -> str | None:
    auth = request.headers.get("Authorization")
    if auth and auth.startswith("Bearer "):
        return auth[7:]
    return None


async def get_relay_user(request: Request) -> CurrentUser:
    """FastAPI dependency: authenticate the relay caller with an identity provider token."""
    if not get_settings().RELAY_REQUIRE_AUTH:
        return ANONYMOUS

    token = _extract_bearer_token(request)
    if not token:
        raise RelayError(401, "Unauthorized: No token provided.")

    try:
        payload = verify_token(token)
    except (jwt.PyJWTError, RuntimeError) as e:
        logger.warning("Token validation error: %s", e)
        raise RelayError(401, f"Unauthorized: {e}")

    return CurrentUser(
        id=payload.get("oid") or payload["sub"],
        email=payload.get("preferred_username") or payload.get("upn") or payload.get("email", ""),
        name=payload.get("name", ""),
    )
