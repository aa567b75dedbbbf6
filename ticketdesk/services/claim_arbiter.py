"""
Claim Arbiter

Decides which staff member owns an open ticket. `toggle` is the single
entry point used by the interaction layer:

    claimant unset          -> claim (support staff only)
    claimant is the actor   -> unclaim
    claimant is someone else -> AlreadyClaimed, nothing changes

Every write is a compare-and-set against the claimant the decision was
based on, so two staff members pressing Claim at the same moment cannot
both win.
"""
from typing import Optional

from ticketdesk.models.results import TicketResult
from ticketdesk.models.schemas import Principal, Ticket, TicketCategory, TicketStatus
from ticketdesk.repositories.base_repository import ClaimConflict, TicketNotFound
from ticketdesk.services import message_builder as cards
from ticketdesk.services.context import ServiceContext
from ticketdesk.services.notifier import deliver_with_fallback
from ticketdesk.services.state_machine import is_staff
from ticketdesk.utils.exceptions import AlreadyClaimed, InvalidTransition, PermissionDenied
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)


class ClaimArbiter:
    """Claim / unclaim a ticket under the claimant compare-and-set"""

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx

    async def toggle(
        self,
        ticket: Ticket,
        actor: Principal,
        category: Optional[TicketCategory] = None,
        control_message_id: Optional[str] = None
    ) -> TicketResult:
        """
        Claim or unclaim depending on the current claimant.

        The ticket is re-read right before deciding; the caller's copy may
        already be stale.

        Args:
            ticket: Ticket the control belongs to
            actor: Member who pressed the claim button
            category: The ticket's category (for the support-role check)
            control_message_id: Message carrying the claim button, re-rendered
                after the change

        Returns:
            TicketResult with action "claimed" or "unclaimed"
        """
        current = await self.ctx.store.get_ticket(ticket.id)
        if current is None:
            raise TicketNotFound(ticket.id)

        if current.claimed_by_id:
            if current.claimed_by_id != actor.id:
                raise AlreadyClaimed(current.claimed_by_id)
            return await self.unclaim(current, actor, control_message_id)

        return await self.claim(current, actor, category, control_message_id)

    async def claim(
        self,
        ticket: Ticket,
        actor: Principal,
        category: Optional[TicketCategory] = None,
        control_message_id: Optional[str] = None
    ) -> TicketResult:
        if ticket.claimed_by_id:
            raise AlreadyClaimed(ticket.claimed_by_id)
        if ticket.status != TicketStatus.OPEN:
            raise InvalidTransition(ticket.status.value, "claimed", "Only open tickets can be claimed.")
        if not is_staff(actor, category):
            raise PermissionDenied(
                "You don't have permission to claim tickets. Only support team members can claim tickets."
            )

        try:
            updated = await self.ctx.store.set_claimant(ticket.id, actor.id, expected=None)
        except ClaimConflict as e:
            logger.info(f"[TICKET_CLAIM] Lost claim race on ticket #{ticket.ticket_number} to {e.current}")
            if e.current and e.current != actor.id:
                raise AlreadyClaimed(e.current)
            raise InvalidTransition("claimed", "claimed", "This ticket's claim changed, please try again.")

        logger.info(f"[TICKET_CLAIM] {actor.display} claimed ticket #{ticket.ticket_number}")
        result = TicketResult.ok(
            updated,
            "You have successfully claimed this ticket. You are now responsible for handling this support request.",
            action="claimed",
            claimant_id=actor.id,
        )
        await self._announce(result, updated, cards.claim_notice(updated, actor), actor, control_message_id)
        return result

    async def unclaim(
        self,
        ticket: Ticket,
        actor: Principal,
        control_message_id: Optional[str] = None
    ) -> TicketResult:
        try:
            updated = await self.ctx.store.set_claimant(ticket.id, None, expected=actor.id)
        except ClaimConflict as e:
            if e.current:
                raise AlreadyClaimed(e.current)
            raise InvalidTransition("unclaimed", "unclaimed", "This ticket is not claimed.")

        logger.info(f"[TICKET_CLAIM] {actor.display} unclaimed ticket #{ticket.ticket_number}")
        result = TicketResult.ok(updated, "You have successfully unclaimed this ticket.", action="unclaimed")
        await self._announce(result, updated, cards.unclaim_notice(updated, actor), actor, control_message_id)
        return result

    async def _announce(
        self,
        result: TicketResult,
        ticket: Ticket,
        notice,
        actor: Principal,
        control_message_id: Optional[str]
    ) -> None:
        delivery = await deliver_with_fallback(self.ctx.notifier, ticket.channel_id, notice, actor.id)
        if not delivery.delivered:
            result.warn("The ticket channel could not be notified.")

        if control_message_id:
            edit = await self.ctx.notifier.edit(
                ticket.channel_id,
                control_message_id,
                cards.claim_controls_update(claimed=bool(ticket.claimed_by_id))
            )
            if not edit.delivered:
                logger.warning(f"[TICKET_CLAIM] Could not update message: {edit.error}")
