"""Static API key check shared by all /api routes."""
import hmac
import logging

from fastapi import Request

from .errors import AuthError

logger = logging.getLogger(__name__)


async def require_api_key(request: Request) -> None:
    """FastAPI dependency: reject requests without the dispatcher's API key."""
    settings = request.app.state.settings
    api_key = request.headers.get(settings.api_key_header)

    if not api_key:
        logger.warning(f"Missing API key in request to {request.url.path}")
        raise AuthError("API key required", missing=True)

    expected = settings.dispatcher_api_key
    if not expected or not hmac.compare_digest(api_key.encode("utf-8"), expected.encode("utf-8")):
        logger.warning(f"Invalid API key provided for {request.url.path}")
        raise AuthError("Invalid API key")
