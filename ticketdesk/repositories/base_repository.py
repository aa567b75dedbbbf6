"""
Record store contract for the ticket core

The core never talks to a database directly. It depends on this protocol,
implemented by SupabaseTicketRepository (production) and
InMemoryTicketRepository (local development and tests).

Two operations carry the store's concurrency guarantees:
- create_ticket assigns the ticket number atomically with the insert and
  refuses a second open ticket for the same creator in the same workspace.
- set_claimant is a compare-and-set on the claimant column.
"""
from typing import Protocol, Optional, List, runtime_checkable
from uuid import UUID

from ticketdesk.models.schemas import (
    Ticket,
    TicketCategory,
    TicketStatus,
    WorkspaceConfig,
)


class StoreError(Exception):
    """Any failure reported by a record store"""


class TicketNotFound(StoreError):
    def __init__(self, ticket_id):
        super().__init__(f"Ticket {ticket_id} not found")
        self.ticket_id = ticket_id


class OpenTicketExists(StoreError):
    """The creator already holds an open ticket in this workspace"""

    def __init__(self, ticket: Optional[Ticket] = None):
        super().__init__("Creator already has an open ticket")
        self.ticket = ticket


class ClaimConflict(StoreError):
    """set_claimant found a different claimant than expected"""

    def __init__(self, current: Optional[str]):
        super().__init__(f"Claimant changed concurrently (current: {current})")
        self.current = current


@runtime_checkable
class TicketStore(Protocol):
    """Async record store used by the ticket core"""

    async def get_ticket(self, ticket_id: UUID) -> Optional[Ticket]: ...

    async def get_ticket_by_channel(self, channel_id: str) -> Optional[Ticket]: ...

    async def get_open_tickets_by_creator(self, guild_id: str, creator_id: str) -> List[Ticket]: ...

    async def create_ticket(
        self,
        guild_id: str,
        creator_id: str,
        channel_id: str,
        category_id: str
    ) -> Ticket: ...

    async def update_status(
        self,
        ticket_id: UUID,
        status: TicketStatus,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None
    ) -> Ticket: ...

    async def set_claimant(
        self,
        ticket_id: UUID,
        actor_id: Optional[str],
        expected: Optional[str] = None
    ) -> Ticket: ...

    async def get_category(self, category_id: str) -> Optional[TicketCategory]: ...

    async def get_categories(self, guild_id: str) -> List[TicketCategory]: ...

    async def get_workspace_config(self, guild_id: str) -> Optional[WorkspaceConfig]: ...
