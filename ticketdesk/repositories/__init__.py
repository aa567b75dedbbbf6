"""
Repositories package for ticket records

Provides TicketStore implementations:
- tickets / ticket_categories / ticket_guild_configs in Supabase (SupabaseTicketRepository)
- process-local store for development and tests (InMemoryTicketRepository)
"""
from ticketdesk.repositories.base_repository import (
    TicketStore,
    StoreError,
    TicketNotFound,
    OpenTicketExists,
    ClaimConflict,
)
from ticketdesk.repositories.ticket_repository import SupabaseTicketRepository
from ticketdesk.repositories.memory_repository import InMemoryTicketRepository

__all__ = [
    "TicketStore",
    "StoreError",
    "TicketNotFound",
    "OpenTicketExists",
    "ClaimConflict",
    "SupabaseTicketRepository",
    "InMemoryTicketRepository",
]
