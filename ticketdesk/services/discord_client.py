"""
Discord REST API Client

Thin async wrapper around the Discord HTTP API used by the channel
provisioner and the notifier:
- Bot token authentication
- JSON request/response handling
- Retry with exponential backoff on rate limits and server errors
"""
import asyncio
from typing import Any, Dict, Optional

import httpx

from ticketdesk.config import get_settings
from ticketdesk.utils.logger import get_logger

settings = get_settings()
logger = get_logger(__name__)

RETRYABLE_STATUS = (429, 500, 502, 503, 504)


class DiscordAPIError(Exception):
    """Non-successful Discord API response"""

    def __init__(self, status_code: int, message: str, body: Any = None):
        super().__init__(f"Discord API error {status_code}: {message}")
        self.status_code = status_code
        self.body = body

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class DiscordRestClient:
    """
    Discord API integration with retry logic and error handling
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None
    ):
        self.base_url = (base_url or settings.discord_api_base).rstrip("/")
        self.token = token if token is not None else settings.discord_bot_token
        self.headers = {
            "Authorization": f"Bot {self.token}",
            "Content-Type": "application/json",
        }
        self.timeout = timeout or settings.discord_timeout
        self.max_retries = max_retries or settings.discord_max_retries

    @staticmethod
    def _retry_after(response: httpx.Response, attempt: int) -> float:
        """Seconds to wait before retrying; honours Discord's Retry-After"""
        header = response.headers.get("Retry-After") if response is not None else None
        if header:
            try:
                return float(header)
            except ValueError:
                pass
        return float(2 ** attempt)

    async def request(
        self,
        method: str,
        endpoint: str,
        **kwargs
    ) -> Optional[Dict[str, Any]]:
        """
        Make HTTP request with retry logic

        Args:
            method: HTTP method (GET, POST, PATCH, PUT, DELETE)
            endpoint: API endpoint relative to the API base
            **kwargs: Additional arguments for httpx

        Returns:
            Response JSON, or None for empty (204) responses

        Raises:
            DiscordAPIError: On HTTP errors after retries
            httpx.HTTPError: On transport errors
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        for attempt in range(self.max_retries):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method=method,
                        url=url,
                        headers=self.headers,
                        **kwargs
                    )
                    response.raise_for_status()
                    if response.status_code == 204 or not response.content:
                        return None
                    return response.json()

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code in RETRYABLE_STATUS and attempt < self.max_retries - 1:
                    wait_time = self._retry_after(e.response, attempt)
                    logger.warning(
                        f"Discord request {method} {endpoint} failed "
                        f"(attempt {attempt + 1}/{self.max_retries}), retrying in {wait_time}s: {e}"
                    )
                    await asyncio.sleep(wait_time)
                    continue
                body = None
                try:
                    body = e.response.json()
                except Exception:
                    body = getattr(e.response, "text", None)
                raise DiscordAPIError(status_code, str(e), body) from e
            except httpx.HTTPError as e:
                logger.error(f"Discord request {method} {endpoint} failed: {e}")
                raise

    async def get(self, endpoint: str, **kwargs):
        return await self.request("GET", endpoint, **kwargs)

    async def post(self, endpoint: str, json: Optional[Dict[str, Any]] = None, **kwargs):
        return await self.request("POST", endpoint, json=json, **kwargs)

    async def patch(self, endpoint: str, json: Optional[Dict[str, Any]] = None, **kwargs):
        return await self.request("PATCH", endpoint, json=json, **kwargs)

    async def put(self, endpoint: str, json: Optional[Dict[str, Any]] = None, **kwargs):
        return await self.request("PUT", endpoint, json=json, **kwargs)

    async def delete(self, endpoint: str, **kwargs):
        return await self.request("DELETE", endpoint, **kwargs)
