"""
Service context

Everything the ticket core needs is handed to it through one ServiceContext:
the record store, the Discord collaborators, settings, the bot's own user
id, and the registries of in-flight confirmations and scheduled channel
removals. Nothing in the core reaches for a module-level client.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol

from ticketdesk.config import Settings, get_settings
from ticketdesk.models.messages import StructuredMessage
from ticketdesk.models.schemas import ChannelHandle, DeliveryResult, VisibilityRule
from ticketdesk.repositories.base_repository import TicketStore
from ticketdesk.services.confirmation_gate import ConfirmationRegistry
from ticketdesk.utils.deadline import Deadline, SleepFunc


class ChannelProvisioner(Protocol):
    async def get(self, channel_id: str) -> Optional[ChannelHandle]: ...

    async def create(
        self,
        guild_id: str,
        parent_group: Optional[str],
        name: str,
        visibility_rules: List[VisibilityRule]
    ) -> ChannelHandle: ...

    async def rename(self, channel: ChannelHandle, name: str) -> ChannelHandle: ...

    async def set_visibility(self, channel: ChannelHandle, rule: VisibilityRule) -> None: ...

    async def delete(self, channel: ChannelHandle) -> None: ...


class Notifier(Protocol):
    async def send(self, channel_id: str, message: StructuredMessage) -> DeliveryResult: ...

    async def edit(self, channel_id: str, message_id: str, message: StructuredMessage) -> DeliveryResult: ...

    async def direct_message(self, principal_id: str, message: StructuredMessage) -> DeliveryResult: ...


@dataclass
class ServiceContext:
    store: TicketStore
    provisioner: ChannelProvisioner
    notifier: Notifier
    bot_user_id: str
    settings: Settings = field(default_factory=get_settings)
    sleep: SleepFunc = asyncio.sleep
    confirmations: ConfirmationRegistry = field(default_factory=ConfirmationRegistry)
    # Keyed by ticket id
    removals: Dict[str, Deadline] = field(default_factory=dict)

    def channel_name(self, ticket_number: int) -> str:
        return f"ticket-{str(ticket_number).zfill(self.settings.ticket_number_padding)}"
