"""
Ticket Creation Saga

Creates a ticket channel and its record together:

    1. existing-ticket check (closes stale tickets whose channel is gone)
    2. prerequisite validation (workspace enabled, category usable)
    3. channel provisioning under the category's parent group
    4. record creation (atomic ticket numbering in the store)
    5. channel rename to ticket-NNNN
    6. welcome card

Steps 1-4 can abort the saga. A channel provisioned in step 3 is deleted
again if step 4 fails, so no channel outlives a failed creation. Steps 5
and 6 only degrade the result.
"""
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ticketdesk.models.results import CreationResult, ErrorKind
from ticketdesk.models.schemas import (
    ChannelHandle,
    OverwriteTarget,
    Ticket,
    TicketCategory,
    TicketCreationOptions,
    TicketStatus,
    VisibilityRule,
    WorkspaceConfig,
)
from ticketdesk.repositories.base_repository import OpenTicketExists, StoreError
from ticketdesk.services import message_builder as cards
from ticketdesk.services.context import ServiceContext
from ticketdesk.utils.exceptions import (
    ChannelProvisionFailed,
    DuplicateTicket,
    PersistenceFailed,
    TicketError,
    ValidationFailed,
)
from ticketdesk.utils.logger import get_logger
from ticketdesk.utils.permissions import BOT_ACCESS, MEMBER_ACCESS, VIEW_CHANNEL

logger = get_logger(__name__)

PROVISIONAL_CHANNEL_NAME = "ticket-new"
STALE_ACTOR_ID = "system"
STALE_REASON = "channel missing"


@dataclass
class SagaState:
    """Working state of one creation; never persisted"""
    options: TicketCreationOptions
    config: Optional[WorkspaceConfig] = None
    category: Optional[TicketCategory] = None
    channel: Optional[ChannelHandle] = None
    ticket: Optional[Ticket] = None
    warnings: List[str] = field(default_factory=list)


class CreationSaga:
    """Orchestrates ticket creation with compensation"""

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx

    async def run(self, options: TicketCreationOptions) -> CreationResult:
        """
        Create a ticket for `options.user_id` in `options.category_id`.

        Args:
            options: Creation request

        Returns:
            CreationResult; on success it carries the ticket, its channel and
            its number, on failure the ErrorKind and a user-facing message
        """
        state = SagaState(options=options)
        try:
            existing = await self.check_existing_ticket(options.guild_id, options.user_id)
            if existing is not None:
                ticket, channel = existing
                raise DuplicateTicket(channel.id if channel else ticket.channel_id)

            state.config, state.category = await self.validate_prerequisites(
                options.guild_id, options.category_id
            )
            state.channel = await self.provision_channel(state)
            state.ticket = await self.persist_ticket(state)
        except TicketError as e:
            logger.warning(f"[TICKET_CREATE] User {options.user_id} could not create a ticket: {e.message}")
            if e.detail:
                logger.error(f"[TICKET_CREATE] {e.detail}")
            return CreationResult(
                success=False,
                error=e.kind,
                message=e.message,
                existing_channel_id=getattr(e, "existing_channel_id", None),
            )
        except StoreError as e:
            logger.error(f"[TICKET_CREATE] Store error before provisioning: {e}", exc_info=True)
            return CreationResult(
                success=False,
                error=ErrorKind.PERSISTENCE_FAILED,
                message="An error occurred while creating your ticket. Please try again later.",
            )

        await self.finalize_channel(state)
        await self.send_welcome(state)

        origin = "(via assistant)" if options.from_assistant else "(via button)"
        logger.info(
            f"[TICKET_CREATE] User {options.user_id} created ticket #{state.ticket.ticket_number} "
            f"in category {state.category.name} {origin}"
        )
        return CreationResult(
            success=True,
            ticket=state.ticket,
            channel=state.channel,
            ticket_number=state.ticket.ticket_number,
            message=f"Your ticket has been created: {state.channel.mention}",
            degraded=bool(state.warnings),
            warnings=state.warnings,
        )

    # ------------------------------------------------------------------
    # Step 1
    # ------------------------------------------------------------------
    async def check_existing_ticket(
        self,
        guild_id: str,
        user_id: str
    ) -> Optional[Tuple[Ticket, Optional[ChannelHandle]]]:
        """
        Find the user's open ticket whose channel still exists.

        Open tickets whose channel has disappeared are closed on the way.
        When the channel cannot be checked (Discord error other than 404)
        the ticket is assumed to still be live.
        """
        for ticket in await self.ctx.store.get_open_tickets_by_creator(guild_id, user_id):
            try:
                channel = await self.ctx.provisioner.get(ticket.channel_id)
            except Exception as e:
                logger.warning(
                    f"[TICKET_CREATE] Could not resolve channel {ticket.channel_id} "
                    f"of ticket #{ticket.ticket_number}: {e}"
                )
                return ticket, None

            if channel is not None:
                return ticket, channel

            logger.info(
                f"[TICKET_CREATE] Closing stale ticket #{ticket.ticket_number}: "
                f"channel {ticket.channel_id} no longer exists"
            )
            await self.ctx.store.update_status(ticket.id, TicketStatus.CLOSED, STALE_ACTOR_ID, STALE_REASON)
        return None

    # ------------------------------------------------------------------
    # Step 2
    # ------------------------------------------------------------------
    async def validate_prerequisites(
        self,
        guild_id: str,
        category_id: str
    ) -> Tuple[WorkspaceConfig, TicketCategory]:
        config = await self.ctx.store.get_workspace_config(guild_id)
        if config is None or not config.is_enabled:
            raise ValidationFailed("The ticket system is currently disabled for this server.")

        category = await self.ctx.store.get_category(category_id)
        if category is None or category.guild_id != guild_id:
            raise ValidationFailed("The selected ticket category no longer exists.")
        if not category.is_enabled:
            raise ValidationFailed("The selected ticket category is currently disabled.")

        return config, category

    # ------------------------------------------------------------------
    # Step 3
    # ------------------------------------------------------------------
    def visibility_rules(self, guild_id: str, creator_id: str) -> List[VisibilityRule]:
        return [
            # @everyone shares the guild's id
            VisibilityRule(target_id=guild_id, target_type=OverwriteTarget.ROLE, deny=VIEW_CHANNEL),
            VisibilityRule(target_id=self.ctx.bot_user_id, target_type=OverwriteTarget.MEMBER, allow=BOT_ACCESS),
            VisibilityRule(target_id=creator_id, target_type=OverwriteTarget.MEMBER, allow=MEMBER_ACCESS),
        ]

    async def provision_channel(self, state: SagaState) -> ChannelHandle:
        options, category = state.options, state.category
        try:
            channel = await self.ctx.provisioner.create(
                options.guild_id,
                category.parent_channel_id,
                PROVISIONAL_CHANNEL_NAME,
                self.visibility_rules(options.guild_id, options.user_id),
            )
        except Exception as e:
            raise ChannelProvisionFailed(
                "Failed to create ticket channel.",
                detail=f"channel provisioning failed in guild {options.guild_id}: {e}"
            )

        if category.support_role_id:
            try:
                await self.ctx.provisioner.set_visibility(
                    channel,
                    VisibilityRule(
                        target_id=category.support_role_id,
                        target_type=OverwriteTarget.ROLE,
                        allow=MEMBER_ACCESS,
                    )
                )
            except Exception as e:
                logger.warning(
                    f"[TICKET_CREATE] Could not set permissions for support role {category.support_role_id}: {e}"
                )
                state.warnings.append("The support team could not be given access to the ticket channel.")

        return channel

    # ------------------------------------------------------------------
    # Step 4
    # ------------------------------------------------------------------
    async def persist_ticket(self, state: SagaState) -> Ticket:
        options = state.options
        channel_id = state.channel.id
        try:
            return await self.ctx.store.create_ticket(
                options.guild_id,
                options.user_id,
                channel_id,
                options.category_id,
            )
        except OpenTicketExists as e:
            await self.rollback(state)
            raise DuplicateTicket(e.ticket.channel_id if e.ticket else None)
        except Exception as e:
            await self.rollback(state)
            raise PersistenceFailed(
                "An error occurred while creating your ticket. Please try again later.",
                detail=f"ticket record could not be created for channel {channel_id}: {e}"
            )

    async def rollback(self, state: SagaState) -> None:
        """Delete the channel provisioned for a ticket that was never recorded"""
        if state.channel is None:
            return
        channel, state.channel = state.channel, None
        try:
            await self.ctx.provisioner.delete(channel)
            logger.info(f"[TICKET_CREATE] Rolled back channel {channel.id}")
        except Exception as e:
            logger.error(f"[TICKET_CREATE] Rollback could not delete channel {channel.id}: {e}")

    # ------------------------------------------------------------------
    # Steps 5 and 6
    # ------------------------------------------------------------------
    async def finalize_channel(self, state: SagaState) -> None:
        name = self.ctx.channel_name(state.ticket.ticket_number)
        try:
            state.channel = await self.ctx.provisioner.rename(state.channel, name)
        except Exception as e:
            logger.warning(f"[TICKET_CREATE] Could not rename channel {state.channel.id} to {name}: {e}")

    async def send_welcome(self, state: SagaState) -> None:
        message = cards.welcome_message(state.ticket, state.category, state.options)
        delivery = await self.ctx.notifier.send(state.channel.id, message)
        if delivery.delivered:
            return

        logger.warning(f"[TICKET_CREATE] Welcome message failed for ticket #{state.ticket.ticket_number}")
        state.warnings.append("The welcome message could not be posted in the ticket channel.")
        fallback = await self.ctx.notifier.direct_message(
            state.options.user_id,
            cards.creation_success(state.ticket, state.channel, state.options.from_assistant)
        )
        if not fallback.delivered:
            logger.warning(f"[TICKET_CREATE] Fallback DM to {state.options.user_id} failed: {fallback.error}")
