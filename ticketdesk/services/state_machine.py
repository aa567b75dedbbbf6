"""
Ticket State Machine

Statuses: OPEN (initial), CLOSED, ARCHIVED. There is no terminal status.

Transition guards:
    close    OPEN            -> CLOSED     creator, claimant or staff only
    reopen   CLOSED|ARCHIVED -> OPEN
    archive  OPEN|CLOSED     -> ARCHIVED
    delete   any             -> CLOSED     channel managers only; the
                                           channel is removed afterwards

The status write always happens before any channel side effect. Channel
permission updates and notices are best effort: when they fail the
transition still stands and the result is flagged as degraded.
"""
from typing import Callable, Dict, Optional

from ticketdesk.models.results import TicketResult
from ticketdesk.models.schemas import (
    ChannelHandle,
    OverwriteTarget,
    Principal,
    Ticket,
    TicketCategory,
    TicketStatus,
    VisibilityRule,
)
from ticketdesk.repositories.base_repository import OpenTicketExists
from ticketdesk.services import message_builder as cards
from ticketdesk.services.context import ServiceContext
from ticketdesk.services.notifier import deliver_with_fallback
from ticketdesk.utils.deadline import Deadline
from ticketdesk.utils.exceptions import InvalidTransition, PermissionDenied
from ticketdesk.utils.logger import get_logger
from ticketdesk.utils.permissions import MEMBER_ACCESS, READ_MESSAGE_HISTORY, SEND_MESSAGES, VIEW_CHANNEL

logger = get_logger(__name__)

ARCHIVE_REASON = "archived"
DELETE_REASON = "Ticket deleted by staff"
DEFAULT_CLOSE_REASON = "No reason provided"

# action -> predicate over the current status
TRANSITIONS: Dict[str, Callable[[TicketStatus], bool]] = {
    "close": lambda status: status == TicketStatus.OPEN,
    "reopen": lambda status: status != TicketStatus.OPEN,
    "archive": lambda status: status != TicketStatus.ARCHIVED,
    "delete": lambda status: True,
}

TARGET_STATUS: Dict[str, TicketStatus] = {
    "close": TicketStatus.CLOSED,
    "reopen": TicketStatus.OPEN,
    "archive": TicketStatus.ARCHIVED,
    "delete": TicketStatus.CLOSED,
}

GUARD_MESSAGES = {
    "close": "This ticket is already closed.",
    "reopen": "This ticket is already open.",
    "archive": "This ticket is already archived.",
}


def can_transition(status: TicketStatus, action: str) -> bool:
    """Whether `action` is legal from `status`"""
    guard = TRANSITIONS.get(action)
    if guard is None:
        raise ValueError(f"Unknown ticket action: {action}")
    return guard(status)


def ensure_transition(ticket: Ticket, action: str) -> TicketStatus:
    """Return the status `action` leads to, or raise InvalidTransition"""
    if not can_transition(ticket.status, action):
        raise InvalidTransition(ticket.status.value, action, GUARD_MESSAGES.get(action))
    return TARGET_STATUS[action]


def is_staff(actor: Principal, category: Optional[TicketCategory]) -> bool:
    """Channel managers and members of the category's support role"""
    if actor.can_manage_channels:
        return True
    return category is not None and actor.has_role(category.support_role_id)


def ensure_can_close(ticket: Ticket, actor: Principal, category: Optional[TicketCategory]) -> None:
    if actor.id in (ticket.creator_id, ticket.claimed_by_id) or is_staff(actor, category):
        return
    raise PermissionDenied("Only the ticket creator, its claimant or support staff can close this ticket.")


def ensure_can_delete(actor: Principal) -> None:
    if not actor.can_manage_channels:
        raise PermissionDenied("You need Manage Channels permission to delete tickets.")


class TicketLifecycle:
    """Guarded status transitions for a single ticket"""

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx

    def _channel(self, ticket: Ticket) -> ChannelHandle:
        return ChannelHandle(id=ticket.channel_id, guild_id=ticket.guild_id)

    @staticmethod
    def _creator_busy(ticket: Ticket, other: Optional[Ticket]) -> InvalidTransition:
        message = f"<@{ticket.creator_id}> already has an open ticket"
        message += f": <#{other.channel_id}>" if other else "."
        return InvalidTransition(
            ticket.status.value,
            "reopened",
            f"This ticket cannot be reopened. {message}"
        )

    async def _notice(self, result: TicketResult, ticket: Ticket, message, fallback_principal_id: str) -> None:
        delivery = await deliver_with_fallback(
            self.ctx.notifier, ticket.channel_id, message, fallback_principal_id
        )
        if not delivery.delivered:
            result.warn("The ticket channel could not be notified.")

    async def close(
        self,
        ticket: Ticket,
        actor: Principal,
        reason: Optional[str] = None,
        category: Optional[TicketCategory] = None
    ) -> TicketResult:
        """
        Close an open ticket.

        Args:
            ticket: Freshly fetched ticket
            actor: Member closing the ticket
            reason: Optional close reason
            category: The ticket's category (for the support-role check)

        Returns:
            TicketResult with the closed ticket
        """
        ensure_transition(ticket, "close")
        ensure_can_close(ticket, actor, category)
        reason = (reason or "").strip() or DEFAULT_CLOSE_REASON

        updated = await self.ctx.store.update_status(ticket.id, TicketStatus.CLOSED, actor.id, reason)
        result = TicketResult.ok(updated, "Ticket closed successfully.", action="closed")
        logger.info(f"[TICKET_CLOSE] {actor.display} closed ticket #{ticket.ticket_number}")

        try:
            await self.ctx.provisioner.set_visibility(
                self._channel(ticket),
                VisibilityRule(
                    target_id=ticket.creator_id,
                    target_type=OverwriteTarget.MEMBER,
                    allow=VIEW_CHANNEL | READ_MESSAGE_HISTORY,
                    deny=SEND_MESSAGES,
                )
            )
        except Exception as e:
            logger.warning(f"[TICKET_CLOSE] Could not revoke send permission for ticket #{ticket.ticket_number}: {e}")
            result.warn("Ticket closed, but the creator's channel permissions could not be updated.")

        await self._notice(result, updated, cards.close_notice(updated, actor, reason), actor.id)
        return result

    async def reopen(
        self,
        ticket: Ticket,
        actor: Principal,
        category: Optional[TicketCategory] = None
    ) -> TicketResult:
        """
        Reopen a closed or archived ticket and restore write access.

        Refused while the creator has another open ticket in the workspace.
        """
        ensure_transition(ticket, "reopen")

        others = await self.ctx.store.get_open_tickets_by_creator(ticket.guild_id, ticket.creator_id)
        others = [other for other in others if other.id != ticket.id]
        if others:
            raise self._creator_busy(ticket, others[0])

        try:
            updated = await self.ctx.store.update_status(ticket.id, TicketStatus.OPEN)
        except OpenTicketExists as e:
            raise self._creator_busy(ticket, e.ticket)
        result = TicketResult.ok(updated, "Ticket reopened successfully.", action="reopened")
        logger.info(f"[TICKET_REOPEN] {actor.display} reopened ticket #{ticket.ticket_number}")

        await self._notice(result, updated, cards.reopen_notice(updated, actor), actor.id)

        channel = self._channel(ticket)
        rules = [
            # @everyone keeps its view deny; the explicit send overwrite is dropped
            VisibilityRule(target_id=ticket.guild_id, target_type=OverwriteTarget.ROLE, deny=VIEW_CHANNEL),
            VisibilityRule(target_id=ticket.creator_id, target_type=OverwriteTarget.MEMBER, allow=MEMBER_ACCESS),
        ]
        if category and category.support_role_id:
            rules.append(
                VisibilityRule(
                    target_id=category.support_role_id,
                    target_type=OverwriteTarget.ROLE,
                    allow=MEMBER_ACCESS,
                )
            )
        try:
            for rule in rules:
                await self.ctx.provisioner.set_visibility(channel, rule)
        except Exception as e:
            logger.error(f"[TICKET_REOPEN] Error updating permissions: {e}")
            result.warn("Ticket marked as reopened, but could not update channel permissions.")

        return result

    async def archive(self, ticket: Ticket, actor: Principal) -> TicketResult:
        """Archive a ticket that is not archived yet"""
        ensure_transition(ticket, "archive")

        updated = await self.ctx.store.update_status(
            ticket.id, TicketStatus.ARCHIVED, actor.id, ARCHIVE_REASON
        )
        result = TicketResult.ok(updated, "Ticket archived successfully.", action="archived")
        logger.info(f"[TICKET_ARCHIVE] {actor.display} archived ticket #{ticket.ticket_number}")

        await self._notice(result, updated, cards.archive_notice(updated, actor), actor.id)
        return result

    async def delete(self, ticket: Ticket, actor: Principal) -> TicketResult:
        """
        Close the record, then schedule removal of the channel.

        The status write is the audit step and is never rolled back. The
        channel is removed after `channel_delete_delay_seconds` so notices
        already sent can land; a removal failure is reported to the actor
        by DM.
        """
        ensure_can_delete(actor)
        ensure_transition(ticket, "delete")

        updated = await self.ctx.store.update_status(
            ticket.id, TicketStatus.CLOSED, actor.id, DELETE_REASON
        )
        logger.info(f"[TICKET_DELETE] Ticket #{ticket.ticket_number} marked as closed in database")
        result = TicketResult.ok(updated, "Deleting ticket...", action="deleted")

        dm = await self.ctx.notifier.direct_message(ticket.creator_id, cards.deleted_dm(updated, actor))
        if not dm.delivered:
            logger.debug(f"[TICKET_DELETE] Could not DM ticket creator: {dm.error}")

        self.schedule_channel_removal(updated, actor)
        return result

    def schedule_channel_removal(self, ticket: Ticket, actor: Principal) -> Deadline:
        """Remove the ticket channel after the delay; one removal per ticket"""
        pending = self.ctx.removals.get(str(ticket.id))
        if pending is not None and not pending.done:
            logger.info(f"[TICKET_DELETE] Channel removal for ticket #{ticket.ticket_number} already scheduled")
            return pending

        channel = self._channel(ticket)

        async def remove_channel():
            try:
                await self.ctx.provisioner.delete(channel)
                logger.info(
                    f"[TICKET_DELETE] Ticket #{ticket.ticket_number} channel deleted by {actor.display}"
                )
            except Exception as e:
                logger.error(f"[TICKET_DELETE] Error deleting channel: {e}")
                notice = await self.ctx.notifier.direct_message(actor.id, cards.channel_removal_failed())
                if not notice.delivered:
                    logger.error(
                        f"[TICKET_DELETE] Failed to notify user about channel deletion failure: {notice.error}"
                    )
            finally:
                self.ctx.removals.pop(str(ticket.id), None)

        deadline = Deadline(
            self.ctx.settings.channel_delete_delay_seconds,
            remove_channel,
            sleep=self.ctx.sleep,
            name=f"remove-channel-{ticket.channel_id}",
        )
        self.ctx.removals[str(ticket.id)] = deadline
        return deadline.start()

