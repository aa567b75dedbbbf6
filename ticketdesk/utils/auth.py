"""
API key authentication for the tickets API

The assistant backend calls `/api/v1/tickets` with a shared key in the
X-API-Key header. Keys come from ALLOWED_API_KEYS (comma-separated).
"""
import hmac
from typing import List, Optional

from fastapi import Header, HTTPException, status

from ticketdesk.config import get_settings
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

MIN_API_KEY_LENGTH = 32


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def is_allowed_key(api_key: str, allowed_keys: List[str]) -> bool:
    """Constant-time membership check against the configured keys"""
    return any(hmac.compare_digest(api_key, allowed) for allowed in allowed_keys)


async def verify_api_key(
    x_api_key: Optional[str] = Header(None, description="Shared key of the calling service")
) -> str:
    """
    FastAPI dependency guarding the tickets API.

    Raises:
        HTTPException 401: Key missing, shorter than MIN_API_KEY_LENGTH, or
            not one of the configured keys
    """
    if not x_api_key:
        logger.warning("Tickets API called without X-API-Key")
        raise _unauthorized("Missing API key. Provide X-API-Key header.")

    if len(x_api_key) < MIN_API_KEY_LENGTH:
        logger.warning("Rejected API key: shorter than %d characters", MIN_API_KEY_LENGTH)
        raise _unauthorized("Invalid API key format")

    allowed_keys = get_settings().api_keys
    if not allowed_keys:
        logger.warning("ALLOWED_API_KEYS not configured; accepting any well-formed key")
        return x_api_key

    if not is_allowed_key(x_api_key, allowed_keys):
        logger.warning(f"Rejected API key {x_api_key[:8]}...")
        raise _unauthorized("Invalid API key")

    return x_api_key
