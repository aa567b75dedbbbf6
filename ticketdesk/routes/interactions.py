"""
Interaction routes

Receives Discord interactions relayed by the gateway process, parses each
into a ButtonPress, MenuSelection or ModalSubmission, and dispatches it by
custom id to exactly one TicketService entry point. The response body is
a Discord interaction response.
"""
from typing import Awaitable, Callable, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ticketdesk.middleware.auth import verify_interaction_signature
from ticketdesk.models.interactions import (
    ButtonPress,
    InteractionBase,
    InteractionReply,
    InteractionType,
    MenuSelection,
    ModalSubmission,
    UnsupportedInteraction,
    parse_interaction,
)
from ticketdesk.models.results import CreationResult, ErrorKind, TicketResult
from ticketdesk.models.schemas import TicketCreationOptions
from ticketdesk.routes import get_ticket_service
from ticketdesk.services import message_builder as cards
from ticketdesk.services.confirmation_gate import DeliveryStatus, PendingConfirmation
from ticketdesk.services.ticket_service import TicketService
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1/interactions",
    tags=["interactions"],
    dependencies=[Depends(verify_interaction_signature)]
)

Handler = Callable[[InteractionBase, TicketService], Awaitable[InteractionReply]]

GENERIC_ERROR = "An error occurred while processing your request."


def ephemeral_error(message: str) -> InteractionReply:
    return InteractionReply.reply(cards.error(message), ephemeral=True)


def render_result(result: TicketResult) -> InteractionReply:
    """Ephemeral reply to the member who triggered a transition"""
    if not result.success:
        if result.error == ErrorKind.ALREADY_CLAIMED and result.claimant_id:
            return InteractionReply.reply(cards.already_claimed(result.claimant_id), ephemeral=True)
        return ephemeral_error(result.message)

    message = result.message
    if result.warnings:
        message += "\n\n" + "\n".join(f"⚠️ {warning}" for warning in result.warnings)
    return InteractionReply.reply(cards.success(message), ephemeral=True)


def render_creation(result: CreationResult, from_assistant: bool = False):
    if result.success:
        return cards.creation_success(result.ticket, result.channel, from_assistant)
    if result.error == ErrorKind.DUPLICATE_TICKET:
        return cards.existing_ticket(result.existing_channel_id)
    return cards.creation_error(result.message)


async def _create(interaction: InteractionBase, service: TicketService, category_id: str) -> CreationResult:
    return await service.create_ticket(
        TicketCreationOptions(
            user_id=interaction.principal.id,
            guild_id=interaction.guild_id,
            category_id=category_id,
        )
    )


# ----------------------------------------------------------------------
# Handlers
# ----------------------------------------------------------------------
async def handle_create_button(interaction: ButtonPress, service: TicketService) -> InteractionReply:
    if not await service.is_enabled(interaction.guild_id):
        return ephemeral_error("The ticket system is currently disabled.")

    existing = await service.check_existing_ticket(interaction.guild_id, interaction.principal.id)
    if existing is not None:
        return InteractionReply.reply(cards.existing_ticket(existing.channel_id), ephemeral=True)

    categories = await service.get_available_categories(interaction.guild_id)
    if not categories:
        return ephemeral_error("No ticket categories are available.")

    if len(categories) == 1:
        result = await _create(interaction, service, categories[0].id)
        return InteractionReply.reply(render_creation(result), ephemeral=True)

    return InteractionReply.reply(cards.category_picker(categories), ephemeral=True)


async def handle_category_select(interaction: MenuSelection, service: TicketService) -> InteractionReply:
    if not interaction.values:
        return ephemeral_error("Please select a category.")
    result = await _create(interaction, service, interaction.values[0])
    return InteractionReply.update(render_creation(result))


async def handle_close_button(interaction: ButtonPress, service: TicketService) -> InteractionReply:
    check = await service.check_closable(interaction.channel_id)
    if not check.success:
        return render_result(check)
    return InteractionReply.show_modal(cards.close_reason_modal())


async def handle_close_modal(interaction: ModalSubmission, service: TicketService) -> InteractionReply:
    reason = interaction.inputs.get(cards.CLOSE_REASON)
    result = await service.close_ticket(interaction.channel_id, interaction.principal, reason)
    return render_result(result)


async def handle_reopen(interaction: ButtonPress, service: TicketService) -> InteractionReply:
    return render_result(await service.reopen_ticket(interaction.channel_id, interaction.principal))


async def handle_archive(interaction: ButtonPress, service: TicketService) -> InteractionReply:
    return render_result(await service.archive_ticket(interaction.channel_id, interaction.principal))


async def handle_claim(interaction: ButtonPress, service: TicketService) -> InteractionReply:
    result = await service.toggle_claim(
        interaction.channel_id,
        interaction.principal,
        control_message_id=interaction.message_id
    )
    return render_result(result)


async def handle_delete(interaction: ButtonPress, service: TicketService) -> InteractionReply:
    outcome = await service.delete_ticket(interaction.channel_id, interaction.principal)
    if isinstance(outcome, PendingConfirmation):
        if not outcome.delivered:
            return ephemeral_error("Could not post the confirmation prompt in this channel.")
        return InteractionReply.acknowledge()
    return render_result(outcome)


async def handle_confirmation(interaction: ButtonPress, service: TicketService) -> InteractionReply:
    delivery = await service.ctx.confirmations.deliver(interaction)
    if delivery == DeliveryStatus.ACCEPTED:
        return InteractionReply.acknowledge()
    if delivery == DeliveryStatus.NOT_REQUESTER:
        return ephemeral_error("Only the member who asked to delete this ticket can answer this prompt.")
    return InteractionReply.reply(cards.info("This confirmation is no longer active."), ephemeral=True)


# custom_id -> (variant, handler)
HANDLERS: Dict[str, tuple] = {
    cards.CREATE_TICKET: (ButtonPress, handle_create_button),
    cards.CATEGORY_SELECT: (MenuSelection, handle_category_select),
    cards.CLOSE: (ButtonPress, handle_close_button),
    cards.CLOSE_MODAL: (ModalSubmission, handle_close_modal),
    cards.REOPEN: (ButtonPress, handle_reopen),
    cards.ARCHIVE: (ButtonPress, handle_archive),
    cards.CLAIM: (ButtonPress, handle_claim),
    cards.DELETE: (ButtonPress, handle_delete),
    cards.CONFIRM_DELETE: (ButtonPress, handle_confirmation),
    cards.CANCEL_DELETE: (ButtonPress, handle_confirmation),
}


async def dispatch(interaction: InteractionBase, service: TicketService) -> InteractionReply:
    """Route one interaction to its handler; unknown ids get an ephemeral notice"""
    entry = HANDLERS.get(interaction.custom_id)
    if entry is None or not isinstance(interaction, entry[0]):
        logger.debug(f"[TICKET_INTERACTION] No handler for {interaction.kind} '{interaction.custom_id}'")
        return ephemeral_error("This action is not supported.")

    handler: Handler = entry[1]
    return await handler(interaction, service)


@router.post("")
async def handle_interaction(
    request: Request,
    service: TicketService = Depends(get_ticket_service)
) -> dict:
    """
    Handle one Discord interaction.

    Pings are answered with a pong. Every other interaction gets exactly
    one response; handler failures are logged and answered with a generic
    ephemeral error.
    """
    try:
        payload = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Request body is not valid JSON")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Interaction must be a JSON object")

    if payload.get("type") == InteractionType.PING:
        return InteractionReply.pong().to_payload()

    try:
        interaction = parse_interaction(payload)
    except UnsupportedInteraction as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    try:
        reply = await dispatch(interaction, service)
    except Exception as e:
        logger.error(
            f"[TICKET_INTERACTION] Error handling '{interaction.custom_id}' "
            f"from {interaction.principal.display}: {e}",
            exc_info=True
        )
        reply = ephemeral_error(GENERIC_ERROR)

    return reply.to_payload()
