"""
Interaction relay authentication

The gateway process that holds the Discord websocket forwards every ticket
interaction to this service. Each forwarded request is signed with a shared
secret so nothing else can drive ticket transitions:

    X-Timestamp: Unix timestamp (seconds)
    X-Signature: hex HMAC-SHA256(secret, b"{timestamp}." + raw_body)

Requests older than the replay window are refused even when correctly signed.
"""
import hashlib
import hmac
import time
from typing import Dict, Optional, Union

from fastapi import HTTPException, Request, status

from ticketdesk.config import get_settings
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

TIMESTAMP_HEADER = "X-Timestamp"
SIGNATURE_HEADER = "X-Signature"


def sign(body: Union[str, bytes], timestamp: Union[str, int], secret_key: Union[str, bytes]) -> str:
    """Signature the relay attaches to a request body"""
    if isinstance(body, str):
        body = body.encode("utf-8")
    if isinstance(secret_key, str):
        secret_key = secret_key.encode("utf-8")
    message = f"{timestamp}.".encode("utf-8") + body
    return hmac.new(secret_key, message, hashlib.sha256).hexdigest()


class HMACVerifier:
    """Checks relay signatures and the replay window"""

    def __init__(self, secret_key: str, replay_window_seconds: int = 300):
        self.secret_key = secret_key.encode("utf-8")
        self.replay_window = replay_window_seconds

    async def verify(self, request: Request) -> None:
        """
        Raises:
            HTTPException: 400 for a malformed timestamp, 401 when a header is
                missing or the request is outside the replay window, 403 when
                the signature does not match
        """
        timestamp = request.headers.get(TIMESTAMP_HEADER)
        signature = request.headers.get(SIGNATURE_HEADER)
        if not timestamp or not signature:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Missing authentication headers ({TIMESTAMP_HEADER}, {SIGNATURE_HEADER})"
            )

        self.check_freshness(timestamp)

        body = await request.body()
        if not hmac.compare_digest(sign(body, timestamp, self.secret_key), signature):
            client_host = request.client.host if request.client else "unknown"
            logger.warning(f"Invalid relay signature for {request.url.path} from {client_host}")
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Invalid request signature"
            )

    def check_freshness(self, timestamp: str, now: Optional[float] = None) -> None:
        try:
            sent_at = int(timestamp)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid timestamp format"
            )

        age = abs(int(now if now is not None else time.time()) - sent_at)
        if age > self.replay_window:
            logger.warning(f"Relay request expired: {age}s old (max: {self.replay_window}s)")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Request expired (age: {age}s)"
            )


async def verify_interaction_signature(request: Request) -> None:
    """
    FastAPI dependency guarding the interactions endpoint.

    Without INTERACTION_SIGNING_SECRET the check is skipped with a warning,
    which is only meant for local development.
    """
    settings = get_settings()
    if not settings.interaction_signing_secret:
        logger.warning("INTERACTION_SIGNING_SECRET not set! Relay signatures are not checked.")
        return

    verifier = HMACVerifier(
        secret_key=settings.interaction_signing_secret,
        replay_window_seconds=settings.interaction_replay_window
    )
    await verifier.verify(request)


def create_signed_headers(body: str, secret_key: str) -> Dict[str, str]:
    """Headers the relay sends with `body` (used by tests and local tooling)"""
    timestamp = int(time.time())
    return {
        TIMESTAMP_HEADER: str(timestamp),
        SIGNATURE_HEADER: sign(body, timestamp, secret_key),
        "Content-Type": "application/json",
    }
