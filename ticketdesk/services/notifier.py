"""
Notifier

Delivers structured messages to ticket channels and direct messages.
Delivery can fail independently of ticket state, so failures are logged
and returned as DeliveryResult instead of raised.
"""
from typing import Optional

import httpx

from ticketdesk.models.messages import StructuredMessage
from ticketdesk.models.schemas import DeliveryResult
from ticketdesk.services.discord_client import DiscordAPIError, DiscordRestClient
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)


class DiscordNotifier:
    """Message delivery through the Discord REST API"""

    def __init__(self, client: Optional[DiscordRestClient] = None):
        self.client = client or DiscordRestClient()

    async def send(self, channel_id: str, message: StructuredMessage) -> DeliveryResult:
        try:
            data = await self.client.post(
                f"channels/{channel_id}/messages",
                json=message.to_payload()
            )
        except (DiscordAPIError, httpx.HTTPError) as e:
            logger.warning(f"[NOTIFIER] Could not send message to channel {channel_id}: {e}")
            return DeliveryResult(delivered=False, channel_id=channel_id, error=str(e))
        return DeliveryResult(
            delivered=True,
            channel_id=channel_id,
            message_id=str(data["id"]) if data else None
        )

    async def edit(self, channel_id: str, message_id: str, message: StructuredMessage) -> DeliveryResult:
        try:
            await self.client.patch(
                f"channels/{channel_id}/messages/{message_id}",
                json=message.to_payload()
            )
        except (DiscordAPIError, httpx.HTTPError) as e:
            logger.warning(f"[NOTIFIER] Could not edit message {message_id}: {e}")
            return DeliveryResult(delivered=False, channel_id=channel_id, message_id=message_id, error=str(e))
        return DeliveryResult(delivered=True, channel_id=channel_id, message_id=message_id)

    async def direct_message(self, principal_id: str, message: StructuredMessage) -> DeliveryResult:
        try:
            dm_channel = await self.client.post("users/@me/channels", json={"recipient_id": principal_id})
        except (DiscordAPIError, httpx.HTTPError) as e:
            logger.debug(f"[NOTIFIER] Could not open DM with {principal_id}: {e}")
            return DeliveryResult(delivered=False, error=str(e))
        return await self.send(str(dm_channel["id"]), message)


async def deliver_with_fallback(
    notifier,
    channel_id: str,
    message: StructuredMessage,
    fallback_principal_id: Optional[str] = None
) -> DeliveryResult:
    """
    Send to a channel; if that fails, retry once as a DM to the fallback principal.

    Returns the primary delivery result, so callers can tell the notice
    did not land where it was meant to.
    """
    result = await notifier.send(channel_id, message)
    if result.delivered or not fallback_principal_id:
        return result

    fallback = await notifier.direct_message(fallback_principal_id, message)
    if not fallback.delivered:
        logger.warning(f"[NOTIFIER] Fallback DM to {fallback_principal_id} also failed: {fallback.error}")
    return result
