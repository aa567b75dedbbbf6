"""
Unit tests for SupabaseTicketRepository

Tests:
- Repository initialization
- Reads and deserialization
- Atomic creation through the create_ticket RPC
- Open-ticket uniqueness violations
- Claimant compare-and-set
"""
import pytest
from unittest.mock import MagicMock, patch
from uuid import uuid4

from ticketdesk.models.schemas import Ticket, TicketStatus
from ticketdesk.repositories.base_repository import (
    ClaimConflict,
    OpenTicketExists,
    StoreError,
    TicketNotFound,
)
from ticketdesk.repositories.ticket_repository import SupabaseTicketRepository


class FakeAPIError(Exception):
    """Shape of postgrest.exceptions.APIError as far as the repository cares"""

    def __init__(self, message: str, code: str):
        super().__init__(message)
        self.code = code


def ticket_row(**overrides):
    row = {
        "id": str(uuid4()),
        "guild_id": "guild-1",
        "ticket_number": 7,
        "creator_id": "user-1",
        "channel_id": "chan-7",
        "category_id": "general",
        "status": "open",
        "claimed_by_id": None,
        "close_reason": None,
        "closed_by_id": None,
        "created_at": "2024-01-01T00:00:00Z",
        "updated_at": "2024-01-01T00:00:00Z",
        "closed_at": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def mock_supabase():
    """Fixture for mock Supabase client"""
    client = MagicMock()
    client.table.return_value = client
    client.select.return_value = client
    client.update.return_value = client
    client.eq.return_value = client
    client.is_.return_value = client
    client.order.return_value = client
    client.rpc.return_value = client
    client.execute.return_value = MagicMock(data=[])
    return client


@pytest.fixture
def ticket_repo(mock_supabase):
    """Fixture for SupabaseTicketRepository with mocked client"""
    return SupabaseTicketRepository(supabase_client=mock_supabase)


class TestRepositoryInitialization:
    def test_init_with_client(self, mock_supabase):
        repo = SupabaseTicketRepository(supabase_client=mock_supabase)
        assert repo.client == mock_supabase
        assert repo.tickets_table == "tickets"

    def test_init_default_client(self):
        """Default client is built from settings"""
        with patch("supabase.create_client") as create_client:
            repo = SupabaseTicketRepository()
            create_client.assert_called_once()
            assert repo.client == create_client.return_value


class TestReads:
    @pytest.mark.asyncio
    async def test_get_ticket_by_channel(self, ticket_repo, mock_supabase):
        mock_supabase.execute.return_value = MagicMock(data=[ticket_row()])

        ticket = await ticket_repo.get_ticket_by_channel("chan-7")

        assert isinstance(ticket, Ticket)
        assert ticket.ticket_number == 7
        assert ticket.status == TicketStatus.OPEN
        mock_supabase.table.assert_called_with("tickets")
        mock_supabase.eq.assert_called_with("channel_id", "chan-7")

    @pytest.mark.asyncio
    async def test_missing_ticket_is_none(self, ticket_repo):
        assert await ticket_repo.get_ticket(uuid4()) is None

    @pytest.mark.asyncio
    async def test_open_tickets_filter_on_status(self, ticket_repo, mock_supabase):
        await ticket_repo.get_open_tickets_by_creator("guild-1", "user-1")

        filters = [call.args for call in mock_supabase.eq.call_args_list]
        assert ("guild_id", "guild-1") in filters
        assert ("creator_id", "user-1") in filters
        assert ("status", "open") in filters

    @pytest.mark.asyncio
    async def test_categories_are_ordered(self, ticket_repo, mock_supabase):
        mock_supabase.execute.return_value = MagicMock(data=[
            {"id": "general", "guild_id": "guild-1", "name": "General", "position": 0, "ticket_message": {}},
            {
                "id": "billing",
                "guild_id": "guild-1",
                "name": "Billing",
                "position": 1,
                "ticket_message": {"welcome_message": "Hi", "include_support_team": True},
            },
        ])

        categories = await ticket_repo.get_categories("guild-1")

        mock_supabase.order.assert_called_once_with("position")
        assert [category.id for category in categories] == ["general", "billing"]
        assert categories[0].ticket_message is None
        assert categories[1].ticket_message.include_support_team

    @pytest.mark.asyncio
    async def test_read_failure_becomes_store_error(self, ticket_repo, mock_supabase):
        mock_supabase.execute.side_effect = Exception("connection refused")

        with pytest.raises(StoreError):
            await ticket_repo.get_ticket_by_channel("chan-7")


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_goes_through_rpc(self, ticket_repo, mock_supabase):
        mock_supabase.execute.return_value = MagicMock(data=ticket_row(ticket_number=12))

        ticket = await ticket_repo.create_ticket("guild-1", "user-1", "chan-7", "general")

        assert ticket.ticket_number == 12
        mock_supabase.rpc.assert_called_once_with("create_ticket", {
            "p_guild_id": "guild-1",
            "p_creator_id": "user-1",
            "p_channel_id": "chan-7",
            "p_category_id": "general",
        })

    @pytest.mark.asyncio
    async def test_unique_violation_reports_existing_ticket(self, ticket_repo, mock_supabase):
        existing = ticket_row(channel_id="chan-3")
        mock_supabase.execute.side_effect = [
            FakeAPIError("duplicate key value violates unique constraint", code="23505"),
            MagicMock(data=[existing]),
        ]

        with pytest.raises(OpenTicketExists) as exc_info:
            await ticket_repo.create_ticket("guild-1", "user-1", "chan-7", "general")

        assert exc_info.value.ticket.channel_id == "chan-3"

    @pytest.mark.asyncio
    async def test_other_failures_are_store_errors(self, ticket_repo, mock_supabase):
        mock_supabase.execute.side_effect = FakeAPIError("relation does not exist", code="42P01")

        with pytest.raises(StoreError) as exc_info:
            await ticket_repo.create_ticket("guild-1", "user-1", "chan-7", "general")

        assert not isinstance(exc_info.value, OpenTicketExists)

    @pytest.mark.asyncio
    async def test_empty_rpc_response(self, ticket_repo, mock_supabase):
        mock_supabase.execute.return_value = MagicMock(data=None)

        with pytest.raises(StoreError):
            await ticket_repo.create_ticket("guild-1", "user-1", "chan-7", "general")


class TestUpdates:
    @pytest.mark.asyncio
    async def test_close_stamps_metadata(self, ticket_repo, mock_supabase):
        mock_supabase.execute.return_value = MagicMock(data=[
            ticket_row(status="closed", closed_by_id="staff-a", close_reason="done")
        ])
        ticket_id = uuid4()

        ticket = await ticket_repo.update_status(ticket_id, TicketStatus.CLOSED, "staff-a", "done")

        updates = mock_supabase.update.call_args.args[0]
        assert updates["status"] == "closed"
        assert updates["closed_by_id"] == "staff-a"
        assert updates["close_reason"] == "done"
        assert updates["closed_at"] is not None
        assert ticket.status == TicketStatus.CLOSED

    @pytest.mark.asyncio
    async def test_reopen_clears_metadata(self, ticket_repo, mock_supabase):
        mock_supabase.execute.return_value = MagicMock(data=[ticket_row()])

        await ticket_repo.update_status(uuid4(), TicketStatus.OPEN, "staff-a")

        updates = mock_supabase.update.call_args.args[0]
        assert updates["closed_at"] is None
        assert updates["closed_by_id"] is None
        assert updates["close_reason"] is None

    @pytest.mark.asyncio
    async def test_reopen_blocked_by_open_ticket_index(self, ticket_repo, mock_supabase):
        closed = ticket_row(status="closed", channel_id="chan-1")
        newer = ticket_row(channel_id="chan-2", ticket_number=8)
        mock_supabase.execute.side_effect = [
            FakeAPIError("duplicate key value violates unique constraint", code="23505"),
            MagicMock(data=[closed]),
            MagicMock(data=[newer]),
        ]

        with pytest.raises(OpenTicketExists) as exc_info:
            await ticket_repo.update_status(uuid4(), TicketStatus.OPEN)

        assert exc_info.value.ticket.channel_id == "chan-2"

    @pytest.mark.asyncio
    async def test_update_of_missing_ticket(self, ticket_repo):
        with pytest.raises(TicketNotFound):
            await ticket_repo.update_status(uuid4(), TicketStatus.CLOSED, "staff-a")


class TestSetClaimant:
    @pytest.mark.asyncio
    async def test_claim_requires_unclaimed_row(self, ticket_repo, mock_supabase):
        mock_supabase.execute.return_value = MagicMock(data=[ticket_row(claimed_by_id="staff-a")])

        ticket = await ticket_repo.set_claimant(uuid4(), "staff-a", expected=None)

        assert ticket.claimed_by_id == "staff-a"
        mock_supabase.is_.assert_called_once_with("claimed_by_id", "null")

    @pytest.mark.asyncio
    async def test_unclaim_matches_current_claimant(self, ticket_repo, mock_supabase):
        mock_supabase.execute.return_value = MagicMock(data=[ticket_row()])

        await ticket_repo.set_claimant(uuid4(), None, expected="staff-a")

        assert mock_supabase.eq.call_args_list[-1].args == ("claimed_by_id", "staff-a")
        mock_supabase.is_.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_matching_row_reports_current_claimant(self, ticket_repo, mock_supabase):
        mock_supabase.execute.side_effect = [
            MagicMock(data=[]),
            MagicMock(data=[ticket_row(claimed_by_id="staff-b")]),
        ]

        with pytest.raises(ClaimConflict) as exc_info:
            await ticket_repo.set_claimant(uuid4(), "staff-a", expected=None)

        assert exc_info.value.current == "staff-b"

    @pytest.mark.asyncio
    async def test_no_matching_row_and_no_ticket(self, ticket_repo, mock_supabase):
        mock_supabase.execute.side_effect = [MagicMock(data=[]), MagicMock(data=[])]

        with pytest.raises(TicketNotFound):
            await ticket_repo.set_claimant(uuid4(), "staff-a", expected=None)
