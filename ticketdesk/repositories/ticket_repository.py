"""
Ticket Repository

Supabase-backed implementation of the TicketStore contract for the
`tickets`, `ticket_categories` and `ticket_guild_configs` tables.

supabase-py is synchronous, so every query runs in a worker thread via
asyncio.to_thread and the public methods stay awaitable.

Atomic ticket numbering is delegated to the `create_ticket` Postgres
function (see scripts/init_supabase_schema.py), which bumps the
per-guild counter and inserts the row in one transaction. The partial
unique index on (guild_id, creator_id) WHERE status = 'open' turns a
second concurrent open ticket into a unique violation.
"""
from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional
from uuid import UUID

from ticketdesk.config import get_settings
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
    StoreError,
    TicketNotFound,
)
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)
settings = get_settings()

UNIQUE_VIOLATION = "23505"


class SupabaseTicketRepository:
    """Repository for ticket system tables"""

    def __init__(self, supabase_client=None) -> None:
        if supabase_client is None:
            from supabase import create_client  # Lazy import for tests

            self.client = create_client(
                settings.supabase_url,
                settings.supabase_service_role_key
            )
        else:
            self.client = supabase_client

        self.tickets_table = "tickets"
        self.categories_table = "ticket_categories"
        self.configs_table = "ticket_guild_configs"
        logger.info("SupabaseTicketRepository initialized for table: %s", self.tickets_table)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _deserialize_ticket(row: Dict[str, Any]) -> Ticket:
        return Ticket(**row)

    @staticmethod
    def _deserialize_category(row: Dict[str, Any]) -> TicketCategory:
        row = dict(row)
        if not row.get("ticket_message"):
            row["ticket_message"] = None
        return TicketCategory(**row)

    def _select_tickets(self, **filters: str) -> List[Ticket]:
        query = self.client.table(self.tickets_table).select("*")
        for column, value in filters.items():
            query = query.eq(column, value)
        response = query.execute()
        return [self._deserialize_ticket(row) for row in response.data or []]

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def _get_ticket(self, ticket_id: UUID) -> Optional[Ticket]:
        try:
            tickets = self._select_tickets(id=str(ticket_id))
            return tickets[0] if tickets else None
        except Exception as exc:
            logger.error("Failed to fetch ticket %s: %s", ticket_id, exc)
            raise StoreError(str(exc)) from exc

    async def get_ticket(self, ticket_id: UUID) -> Optional[Ticket]:
        return await asyncio.to_thread(self._get_ticket, ticket_id)

    def _get_ticket_by_channel(self, channel_id: str) -> Optional[Ticket]:
        try:
            tickets = self._select_tickets(channel_id=channel_id)
            return tickets[0] if tickets else None
        except Exception as exc:
            logger.error("Failed to fetch ticket for channel %s: %s", channel_id, exc)
            raise StoreError(str(exc)) from exc

    async def get_ticket_by_channel(self, channel_id: str) -> Optional[Ticket]:
        return await asyncio.to_thread(self._get_ticket_by_channel, channel_id)

    def _get_open_tickets_by_creator(self, guild_id: str, creator_id: str) -> List[Ticket]:
        try:
            return self._select_tickets(
                guild_id=guild_id,
                creator_id=creator_id,
                status=TicketStatus.OPEN.value
            )
        except Exception as exc:
            logger.error("Failed to fetch open tickets for %s in %s: %s", creator_id, guild_id, exc)
            raise StoreError(str(exc)) from exc

    async def get_open_tickets_by_creator(self, guild_id: str, creator_id: str) -> List[Ticket]:
        return await asyncio.to_thread(self._get_open_tickets_by_creator, guild_id, creator_id)

    def _other_open_ticket(self, ticket_id: UUID) -> Optional[Ticket]:
        """The creator's open ticket that blocks reopening `ticket_id`"""
        ticket = self._get_ticket(ticket_id)
        if ticket is None:
            return None
        others = self._get_open_tickets_by_creator(ticket.guild_id, ticket.creator_id)
        return next((other for other in others if other.id != ticket.id), None)

    def _get_category(self, category_id: str) -> Optional[TicketCategory]:
        try:
            response = self.client.table(self.categories_table) \
                .select("*") \
                .eq("id", category_id) \
                .execute()
            if not response.data:
                return None
            return self._deserialize_category(response.data[0])
        except Exception as exc:
            logger.error("Failed to fetch category %s: %s", category_id, exc)
            raise StoreError(str(exc)) from exc

    async def get_category(self, category_id: str) -> Optional[TicketCategory]:
        return await asyncio.to_thread(self._get_category, category_id)

    def _get_categories(self, guild_id: str) -> List[TicketCategory]:
        try:
            response = self.client.table(self.categories_table) \
                .select("*") \
                .eq("guild_id", guild_id) \
                .order("position") \
                .execute()
            return [self._deserialize_category(row) for row in response.data or []]
        except Exception as exc:
            logger.error("Failed to fetch categories for guild %s: %s", guild_id, exc)
            raise StoreError(str(exc)) from exc

    async def get_categories(self, guild_id: str) -> List[TicketCategory]:
        return await asyncio.to_thread(self._get_categories, guild_id)

    def _get_workspace_config(self, guild_id: str) -> Optional[WorkspaceConfig]:
        try:
            response = self.client.table(self.configs_table) \
                .select("*") \
                .eq("guild_id", guild_id) \
                .execute()
            if not response.data:
                return None
            row = response.data[0]
            return WorkspaceConfig(
                guild_id=row["guild_id"],
                is_enabled=row.get("is_enabled", False),
                categories=self._get_categories(guild_id),
            )
        except StoreError:
            raise
        except Exception as exc:
            logger.error("Failed to fetch guild config %s: %s", guild_id, exc)
            raise StoreError(str(exc)) from exc

    async def get_workspace_config(self, guild_id: str) -> Optional[WorkspaceConfig]:
        return await asyncio.to_thread(self._get_workspace_config, guild_id)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    def _create_ticket(
        self,
        guild_id: str,
        creator_id: str,
        channel_id: str,
        category_id: str
    ) -> Ticket:
        try:
            response = self.client.rpc("create_ticket", {
                "p_guild_id": guild_id,
                "p_creator_id": creator_id,
                "p_channel_id": channel_id,
                "p_category_id": category_id,
            }).execute()
        except Exception as exc:
            if getattr(exc, "code", None) == UNIQUE_VIOLATION:
                logger.warning("Open ticket already exists for %s in guild %s", creator_id, guild_id)
                existing = self._get_open_tickets_by_creator(guild_id, creator_id)
                raise OpenTicketExists(existing[0] if existing else None) from exc
            logger.error("Failed to create ticket: %s", exc)
            raise StoreError(str(exc)) from exc

        data = response.data
        if isinstance(data, list):
            data = data[0] if data else None
        if not data:
            raise StoreError("Supabase create_ticket returned no data")

        ticket = self._deserialize_ticket(data)
        logger.info("Created ticket #%s (%s)", ticket.ticket_number, ticket.id)
        return ticket

    async def create_ticket(
        self,
        guild_id: str,
        creator_id: str,
        channel_id: str,
        category_id: str
    ) -> Ticket:
        return await asyncio.to_thread(
            self._create_ticket, guild_id, creator_id, channel_id, category_id
        )

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------
    def _update_status(
        self,
        ticket_id: UUID,
        status: TicketStatus,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Ticket:
        now = utcnow().isoformat()
        updates: Dict[str, Any] = {"status": status.value, "updated_at": now}
        if status == TicketStatus.OPEN:
            updates.update(closed_at=None, closed_by_id=None, close_reason=None)
        else:
            updates.update(closed_at=now, closed_by_id=actor_id, close_reason=reason)

        try:
            response = self.client.table(self.tickets_table) \
                .update(updates) \
                .eq("id", str(ticket_id)) \
                .execute()
        except Exception as exc:
            if getattr(exc, "code", None) == UNIQUE_VIOLATION:
                logger.warning("Ticket %s cannot be reopened: creator has another open ticket", ticket_id)
                raise OpenTicketExists(self._other_open_ticket(ticket_id)) from exc
            logger.error("Failed to update ticket %s status: %s", ticket_id, exc)
            raise StoreError(str(exc)) from exc

        if not response.data:
            raise TicketNotFound(ticket_id)
        return self._deserialize_ticket(response.data[0])

    async def update_status(
        self,
        ticket_id: UUID,
        status: TicketStatus,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Ticket:
        return await asyncio.to_thread(self._update_status, ticket_id, status, actor_id, reason)

    def _set_claimant(
        self,
        ticket_id: UUID,
        actor_id: Optional[str],
        expected: Optional[str] = None
    ) -> Ticket:
        try:
            query = self.client.table(self.tickets_table) \
                .update({"claimed_by_id": actor_id, "updated_at": utcnow().isoformat()}) \
                .eq("id", str(ticket_id))
            if expected is None:
                query = query.is_("claimed_by_id", "null")
            else:
                query = query.eq("claimed_by_id", expected)
            response = query.execute()
        except Exception as exc:
            logger.error("Failed to set claimant on ticket %s: %s", ticket_id, exc)
            raise StoreError(str(exc)) from exc

        if response.data:
            return self._deserialize_ticket(response.data[0])

        # Nothing matched: either the ticket is gone or the claimant moved.
        current = self._get_ticket(ticket_id)
        if current is None:
            raise TicketNotFound(ticket_id)
        raise ClaimConflict(current.claimed_by_id)

    async def set_claimant(
        self,
        ticket_id: UUID,
        actor_id: Optional[str],
        expected: Optional[str] = None
    ) -> Ticket:
        return await asyncio.to_thread(self._set_claimant, ticket_id, actor_id, expected)
