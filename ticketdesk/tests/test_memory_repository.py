"""Unit tests for InMemoryTicketRepository"""
import pytest
from uuid import uuid4

from ticketdesk.models.schemas import TicketStatus
from ticketdesk.repositories.base_repository import ClaimConflict, OpenTicketExists, TicketNotFound, TicketStore
from ticketdesk.tests.conftest import GUILD_ID


def test_satisfies_store_protocol(store):
    assert isinstance(store, TicketStore)


@pytest.mark.asyncio
async def test_numbers_increase_per_workspace(store):
    first = await store.create_ticket(GUILD_ID, "user-1", "chan-1", "general")
    second = await store.create_ticket(GUILD_ID, "user-2", "chan-2", "general")
    other = await store.create_ticket("guild-2", "user-1", "chan-3", "general")

    assert (first.ticket_number, second.ticket_number) == (1, 2)
    assert other.ticket_number == 1


@pytest.mark.asyncio
async def test_second_open_ticket_is_refused(store):
    first = await store.create_ticket(GUILD_ID, "user-1", "chan-1", "general")

    with pytest.raises(OpenTicketExists) as exc_info:
        await store.create_ticket(GUILD_ID, "user-1", "chan-2", "general")

    assert exc_info.value.ticket.id == first.id
    # The refused attempt does not consume a number
    assert store.counters[GUILD_ID] == 1


@pytest.mark.asyncio
async def test_closed_ticket_frees_the_creator(store):
    first = await store.create_ticket(GUILD_ID, "user-1", "chan-1", "general")
    await store.update_status(first.id, TicketStatus.CLOSED, "user-1", "done")

    second = await store.create_ticket(GUILD_ID, "user-1", "chan-2", "general")

    assert second.ticket_number == 2


@pytest.mark.asyncio
async def test_reopen_refused_while_creator_has_open_ticket(store):
    first = await store.create_ticket(GUILD_ID, "user-1", "chan-1", "general")
    await store.update_status(first.id, TicketStatus.CLOSED, "user-1", "done")
    second = await store.create_ticket(GUILD_ID, "user-1", "chan-2", "general")

    with pytest.raises(OpenTicketExists) as exc_info:
        await store.update_status(first.id, TicketStatus.OPEN)

    assert exc_info.value.ticket.id == second.id
    assert (await store.get_ticket(first.id)).status == TicketStatus.CLOSED


@pytest.mark.asyncio
async def test_returned_records_are_copies(store):
    ticket = await store.create_ticket(GUILD_ID, "user-1", "chan-1", "general")
    ticket.claimed_by_id = "someone"

    assert (await store.get_ticket(ticket.id)).claimed_by_id is None


@pytest.mark.asyncio
async def test_set_claimant_compare_and_set(store):
    ticket = await store.create_ticket(GUILD_ID, "user-1", "chan-1", "general")

    await store.set_claimant(ticket.id, "staff-a", expected=None)
    with pytest.raises(ClaimConflict) as exc_info:
        await store.set_claimant(ticket.id, "staff-b", expected=None)

    assert exc_info.value.current == "staff-a"
    released = await store.set_claimant(ticket.id, None, expected="staff-a")
    assert released.claimed_by_id is None


@pytest.mark.asyncio
async def test_missing_ticket(store):
    with pytest.raises(TicketNotFound):
        await store.update_status(uuid4(), TicketStatus.CLOSED)
