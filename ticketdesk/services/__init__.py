"""
Business Logic Services
"""
from .context import ServiceContext
from .ticket_service import TicketService
from .discord_client import DiscordRestClient, DiscordAPIError
from .channel_provisioner import DiscordChannelProvisioner
from .notifier import DiscordNotifier

__all__ = [
    "ServiceContext",
    "TicketService",
    "DiscordRestClient",
    "DiscordAPIError",
    "DiscordChannelProvisioner",
    "DiscordNotifier",
]
