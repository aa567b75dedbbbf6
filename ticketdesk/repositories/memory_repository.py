"""
In-memory record store

Implements the TicketStore contract without a database. Ticket-number
assignment and the one-open-ticket check are serialized per workspace with
an asyncio.Lock, which gives the same guarantees as the Supabase
`create_ticket` function within a single process.
"""
import asyncio
from collections import defaultdict
from typing import Dict, List, Optional
from uuid import UUID

from ticketdesk.models.schemas import (
    Ticket,
    TicketCategory,
    TicketStatus,
    WorkspaceConfig,
    utcnow,
)
from ticketdesk.repositories.base_repository import (
    ClaimConflict,
    OpenTicketExists,
    TicketNotFound,
)
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)


class InMemoryTicketRepository:
    """TicketStore kept in process memory"""

    def __init__(self):
        self.tickets: Dict[UUID, Ticket] = {}
        self.categories: Dict[str, TicketCategory] = {}
        self.configs: Dict[str, WorkspaceConfig] = {}
        self.counters: Dict[str, int] = defaultdict(int)
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        logger.info("InMemoryTicketRepository initialized")

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------
    def add_workspace(self, config: WorkspaceConfig) -> WorkspaceConfig:
        self.configs[config.guild_id] = config
        for category in config.categories:
            self.categories[category.id] = category
        return config

    def add_category(self, category: TicketCategory) -> TicketCategory:
        self.categories[category.id] = category
        config = self.configs.get(category.guild_id)
        if config is not None:
            config.categories = [c for c in config.categories if c.id != category.id] + [category]
        return category

    def add_ticket(self, ticket: Ticket) -> Ticket:
        """Insert an existing record as-is (numbers are not reassigned)"""
        self.tickets[ticket.id] = ticket
        self.counters[ticket.guild_id] = max(self.counters[ticket.guild_id], ticket.ticket_number)
        return ticket

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    async def get_ticket(self, ticket_id: UUID) -> Optional[Ticket]:
        ticket = self.tickets.get(ticket_id)
        return ticket.model_copy() if ticket else None

    async def get_ticket_by_channel(self, channel_id: str) -> Optional[Ticket]:
        for ticket in self.tickets.values():
            if ticket.channel_id == channel_id:
                return ticket.model_copy()
        return None

    async def get_open_tickets_by_creator(self, guild_id: str, creator_id: str) -> List[Ticket]:
        return [
            ticket.model_copy()
            for ticket in self.tickets.values()
            if ticket.guild_id == guild_id
            and ticket.creator_id == creator_id
            and ticket.status == TicketStatus.OPEN
        ]

    async def get_category(self, category_id: str) -> Optional[TicketCategory]:
        return self.categories.get(category_id)

    async def get_categories(self, guild_id: str) -> List[TicketCategory]:
        categories = [c for c in self.categories.values() if c.guild_id == guild_id]
        return sorted(categories, key=lambda c: c.position)

    async def get_workspace_config(self, guild_id: str) -> Optional[WorkspaceConfig]:
        return self.configs.get(guild_id)

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------
    async def create_ticket(
        self,
        guild_id: str,
        creator_id: str,
        channel_id: str,
        category_id: str
    ) -> Ticket:
        async with self._locks[guild_id]:
            existing = await self.get_open_tickets_by_creator(guild_id, creator_id)
            if existing:
                raise OpenTicketExists(existing[0])

            self.counters[guild_id] += 1
            ticket = Ticket(
                guild_id=guild_id,
                ticket_number=self.counters[guild_id],
                creator_id=creator_id,
                channel_id=channel_id,
                category_id=category_id,
            )
            self.tickets[ticket.id] = ticket
            logger.info(f"Created ticket #{ticket.ticket_number} in guild {guild_id}")
            return ticket.model_copy()

    async def update_status(
        self,
        ticket_id: UUID,
        status: TicketStatus,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Ticket:
        ticket = self.tickets.get(ticket_id)
        if ticket is None:
            raise TicketNotFound(ticket_id)

        async with self._locks[ticket.guild_id]:
            ticket = self.tickets[ticket_id]
            if status == TicketStatus.OPEN and ticket.status != TicketStatus.OPEN:
                others = await self.get_open_tickets_by_creator(ticket.guild_id, ticket.creator_id)
                others = [other for other in others if other.id != ticket_id]
                if others:
                    raise OpenTicketExists(others[0])

            now = utcnow()
            updates = {"status": status, "updated_at": now}
            if status == TicketStatus.OPEN:
                updates.update(closed_at=None, closed_by_id=None, close_reason=None)
            else:
                updates.update(closed_at=now, closed_by_id=actor_id, close_reason=reason)

            ticket = ticket.model_copy(update=updates)
            self.tickets[ticket_id] = ticket
            return ticket.model_copy()

    async def set_claimant(
        self,
        ticket_id: UUID,
        actor_id: Optional[str],
        expected: Optional[str] = None
    ) -> Ticket:
        ticket = self.tickets.get(ticket_id)
        if ticket is None:
            raise TicketNotFound(ticket_id)
        if ticket.claimed_by_id != expected:
            raise ClaimConflict(ticket.claimed_by_id)

        ticket = ticket.model_copy(update={"claimed_by_id": actor_id, "updated_at": utcnow()})
        self.tickets[ticket_id] = ticket
        return ticket.model_copy()
