"""Bearer-token authentication for the HTTP API."""

from __future__ import annotations

import hmac
import logging
from typing import TYPE_CHECKING

from src.config import settings
from src.errors import Unauthenticated

if TYPE_CHECKING:
    from aiohttp import web

logger = logging.getLogger(__name__)


def user_for_token(token: str) -> str | None:
    """Return the user id mapped to *token* in API_TOKENS, if any."""
    for known, user_id in settings.get_api_tokens().items():
        if hmac.compare_digest(known.encode(), token.encode()):
            return user_id
    return None


def authenticate(request: web.Request) -> str:
    """Resolve the calling user from the Authorization header.

    Raises ``Unauthenticated`` when the header is missing or the token is
    unknown.
    """
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        msg = "Missing bearer token"
        raise Unauthenticated(msg)

    user_id = user_for_token(token.strip())
    if user_id is None:
        logger.warning("Rejected request to %s: unknown token", request.path)
        msg = "Invalid token"
        raise Unauthenticated(msg)
    return user_id
