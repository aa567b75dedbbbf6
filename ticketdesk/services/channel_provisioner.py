"""
Channel Provisioner

Creates, resolves, renames, re-permissions and deletes ticket channels
through the Discord REST API. Whether a channel exists is Discord's truth;
the ticket record only points at it.
"""
from typing import List, Optional

from ticketdesk.models.schemas import ChannelHandle, VisibilityRule
from ticketdesk.services.discord_client import DiscordAPIError, DiscordRestClient
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

GUILD_TEXT = 0


def _rule_payload(rule: VisibilityRule) -> dict:
    return {
        "id": rule.target_id,
        "type": rule.target_type.value,
        "allow": str(rule.allow),
        "deny": str(rule.deny),
    }


def _handle_from_payload(data: dict) -> ChannelHandle:
    return ChannelHandle(
        id=str(data["id"]),
        guild_id=data.get("guild_id"),
        name=data.get("name"),
        parent_id=data.get("parent_id"),
    )


class DiscordChannelProvisioner:
    """Ticket channel lifecycle on Discord"""

    def __init__(self, client: Optional[DiscordRestClient] = None):
        self.client = client or DiscordRestClient()

    async def get(self, channel_id: str) -> Optional[ChannelHandle]:
        """Resolve a channel; None when Discord reports it missing"""
        try:
            data = await self.client.get(f"channels/{channel_id}")
        except DiscordAPIError as e:
            if e.not_found:
                return None
            raise
        return _handle_from_payload(data)

    async def create(
        self,
        guild_id: str,
        parent_group: Optional[str],
        name: str,
        visibility_rules: List[VisibilityRule]
    ) -> ChannelHandle:
        payload = {
            "name": name,
            "type": GUILD_TEXT,
            "permission_overwrites": [_rule_payload(rule) for rule in visibility_rules],
        }
        if parent_group:
            payload["parent_id"] = parent_group

        data = await self.client.post(f"guilds/{guild_id}/channels", json=payload)
        channel = _handle_from_payload(data)
        logger.info(f"Created channel {channel.id} ({name}) in guild {guild_id}")
        return channel

    async def rename(self, channel: ChannelHandle, name: str) -> ChannelHandle:
        data = await self.client.patch(f"channels/{channel.id}", json={"name": name})
        return _handle_from_payload(data) if data else channel.model_copy(update={"name": name})

    async def set_visibility(self, channel: ChannelHandle, rule: VisibilityRule) -> None:
        await self.client.put(
            f"channels/{channel.id}/permissions/{rule.target_id}",
            json={
                "type": rule.target_type.value,
                "allow": str(rule.allow),
                "deny": str(rule.deny),
            }
        )

    async def delete(self, channel: ChannelHandle) -> None:
        await self.client.delete(f"channels/{channel.id}")
        logger.info(f"Deleted channel {channel.id}")
