"""
Ticket Service

Entry points the interaction layer calls. Each one resolves the ticket
behind a channel, hands it to the state machine, the claim arbiter or the
creation saga, and turns any failure into a TicketResult so nothing but
results crosses back to the router.
"""
from typing import Awaitable, Callable, List, Optional, Union

from ticketdesk.models.results import CreationResult, ErrorKind, TicketResult
from ticketdesk.models.schemas import Principal, Ticket, TicketCategory, TicketCreationOptions
from ticketdesk.repositories.base_repository import StoreError, TicketNotFound
from ticketdesk.services import message_builder as cards
from ticketdesk.services.claim_arbiter import ClaimArbiter
from ticketdesk.services.confirmation_gate import PendingConfirmation
from ticketdesk.services.context import ServiceContext
from ticketdesk.services.creation_saga import CreationSaga
from ticketdesk.services.state_machine import TicketLifecycle, ensure_can_delete, ensure_transition
from ticketdesk.utils.exceptions import AlreadyClaimed, NotATicketChannel, TicketError
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

GENERIC_FAILURE = "An error occurred while trying to {action} the ticket."


class TicketService:
    """
    Request/result facade over the ticket core.

    Usage:
        service = TicketService(ctx)
        result = await service.create_ticket(TicketCreationOptions(...))
        result = await service.close_ticket(channel_id, actor, reason)
    """

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.saga = CreationSaga(ctx)
        self.lifecycle = TicketLifecycle(ctx)
        self.arbiter = ClaimArbiter(ctx)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    async def create_ticket(self, options: TicketCreationOptions) -> CreationResult:
        return await self.saga.run(options)

    async def check_existing_ticket(self, guild_id: str, user_id: str) -> Optional[Ticket]:
        """The user's live open ticket, if any"""
        existing = await self.saga.check_existing_ticket(guild_id, user_id)
        return existing[0] if existing else None

    async def is_enabled(self, guild_id: str) -> bool:
        config = await self.ctx.store.get_workspace_config(guild_id)
        return bool(config and config.is_enabled)

    async def get_available_categories(self, guild_id: str) -> List[TicketCategory]:
        """Enabled categories of a workspace, ordered by position"""
        categories = await self.ctx.store.get_categories(guild_id)
        return [category for category in categories if category.is_enabled]

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def get_ticket_for_channel(self, channel_id: str) -> Ticket:
        ticket = await self.ctx.store.get_ticket_by_channel(channel_id)
        if ticket is None:
            raise NotATicketChannel(channel_id)
        return ticket

    async def check_closable(self, channel_id: str) -> TicketResult:
        """Whether the close-reason modal should be offered in this channel"""

        async def check() -> TicketResult:
            ticket = await self.get_ticket_for_channel(channel_id)
            ensure_transition(ticket, "close")
            return TicketResult.ok(ticket)

        return await self._guard("close", check)

    async def close_ticket(self, channel_id: str, actor: Principal, reason: Optional[str] = None) -> TicketResult:
        async def close() -> TicketResult:
            ticket = await self.get_ticket_for_channel(channel_id)
            category = await self.ctx.store.get_category(ticket.category_id)
            return await self.lifecycle.close(ticket, actor, reason, category)

        return await self._guard("close", close)

    async def reopen_ticket(self, channel_id: str, actor: Principal) -> TicketResult:
        async def reopen() -> TicketResult:
            ticket = await self.get_ticket_for_channel(channel_id)
            category = await self.ctx.store.get_category(ticket.category_id)
            return await self.lifecycle.reopen(ticket, actor, category)

        return await self._guard("reopen", reopen)

    async def archive_ticket(self, channel_id: str, actor: Principal) -> TicketResult:
        async def archive() -> TicketResult:
            ticket = await self.get_ticket_for_channel(channel_id)
            return await self.lifecycle.archive(ticket, actor)

        return await self._guard("archive", archive)

    async def toggle_claim(
        self,
        channel_id: str,
        actor: Principal,
        control_message_id: Optional[str] = None
    ) -> TicketResult:
        async def toggle() -> TicketResult:
            ticket = await self.get_ticket_for_channel(channel_id)
            category = await self.ctx.store.get_category(ticket.category_id)
            return await self.arbiter.toggle(ticket, actor, category, control_message_id)

        return await self._guard("claim", toggle)

    async def delete_ticket(
        self,
        channel_id: str,
        actor: Principal
    ) -> Union[TicketResult, PendingConfirmation]:
        """
        Ask `actor` to confirm deletion of the ticket in `channel_id`.

        Returns:
            A PendingConfirmation once the prompt is posted, or a failed
            TicketResult when the ticket or the actor's permission rule it out
        """
        async def check() -> TicketResult:
            ticket = await self.get_ticket_for_channel(channel_id)
            ensure_can_delete(actor)
            return TicketResult.ok(ticket)

        checked = await self._guard("delete", check)
        if not checked.success:
            return checked

        return await self.ctx.confirmations.open(
            self.ctx.notifier,
            channel_id,
            actor,
            cards.delete_prompt(actor),
            lambda: self._confirmed_delete(channel_id, actor),
            timeout=self.ctx.settings.confirmation_timeout_seconds,
            sleep=self.ctx.sleep,
        )

    async def _confirmed_delete(self, channel_id: str, actor: Principal) -> TicketResult:
        async def delete() -> TicketResult:
            ticket = await self.get_ticket_for_channel(channel_id)
            return await self.lifecycle.delete(ticket, actor)

        result = await self._guard("delete", delete)
        if not result.success:
            await self.ctx.notifier.send(channel_id, cards.error(result.message))
        return result

    # ------------------------------------------------------------------
    # Error conversion
    # ------------------------------------------------------------------
    async def _guard(self, action: str, operation: Callable[[], Awaitable[TicketResult]]) -> TicketResult:
        tag = f"[TICKET_{action.upper()}]"
        try:
            return await operation()
        except AlreadyClaimed as e:
            return TicketResult.fail(e.kind, e.message, claimant_id=e.claimant_id)
        except TicketError as e:
            if e.detail:
                logger.warning(f"{tag} {e.detail}")
            return TicketResult.fail(e.kind, e.message)
        except TicketNotFound as e:
            logger.warning(f"{tag} {e}")
            return TicketResult.fail(ErrorKind.NOT_A_TICKET, "This is not a valid ticket channel.")
        except StoreError as e:
            logger.error(f"{tag} Store error: {e}", exc_info=True)
            return TicketResult.fail(ErrorKind.PERSISTENCE_FAILED, GENERIC_FAILURE.format(action=action))
