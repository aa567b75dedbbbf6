"""
Message builder

Composes every card the ticket workflow posts or replies with. Layout is
kept deliberately plain; what matters is which facts and controls each
card carries.
"""
from datetime import datetime
from typing import List, Optional

from ticketdesk.models.messages import (
    Button,
    ButtonStyle,
    Color,
    MessageField,
    Modal,
    SelectMenu,
    SelectOption,
    StructuredMessage,
    TextInput,
)
from ticketdesk.models.schemas import (
    ChannelHandle,
    Principal,
    Ticket,
    TicketCategory,
    TicketCreationOptions,
    utcnow,
)

DEFAULT_CATEGORY_EMOJI = "🎫"

# Custom ids shared with the interaction router
CREATE_TICKET = "create_ticket"
CATEGORY_SELECT = "ticket_category_select"
CLOSE = "ticket_close"
CLOSE_MODAL = "ticket_close_modal"
CLOSE_REASON = "ticket_close_reason"
REOPEN = "ticket_reopen"
ARCHIVE = "ticket_archive"
DELETE = "ticket_delete"
CLAIM = "ticket_claim"
CONFIRM_DELETE = "confirm_delete"
CANCEL_DELETE = "cancel_delete"


def _timestamp(moment: datetime) -> str:
    return f"<t:{int(moment.timestamp())}:F>"


def ticket_label(ticket: Ticket) -> str:
    return f"Ticket #{ticket.ticket_number}"


# ----------------------------------------------------------------------
# Generic cards
# ----------------------------------------------------------------------
def error(message: str, title: str = "Error") -> StructuredMessage:
    return StructuredMessage(title=f"❌ {title}", description=message, color=Color.RED, timestamp=utcnow())


def success(message: str, title: str = "Success") -> StructuredMessage:
    return StructuredMessage(title=f"✅ {title}", description=message, color=Color.GREEN, timestamp=utcnow())


def info(message: str, title: str = "Info") -> StructuredMessage:
    return StructuredMessage(title=f"ℹ️ {title}", description=message, color=Color.BLUE, timestamp=utcnow())


def warning(message: str, description: Optional[str] = None) -> StructuredMessage:
    return StructuredMessage(
        title=f"⚠️ {message}",
        description=description,
        color=Color.ORANGE,
        timestamp=utcnow()
    )


# ----------------------------------------------------------------------
# Controls
# ----------------------------------------------------------------------
def claim_button(claimed: bool) -> Button:
    if claimed:
        return Button(custom_id=CLAIM, label="Unclaim Ticket", style=ButtonStyle.SECONDARY, emoji="🔄")
    return Button(custom_id=CLAIM, label="Claim Ticket", style=ButtonStyle.PRIMARY, emoji="👋")


def close_button() -> Button:
    return Button(custom_id=CLOSE, label="Close Ticket", style=ButtonStyle.DANGER, emoji="🔒")


def open_ticket_controls(claimed: bool = False) -> List[Button]:
    return [claim_button(claimed), close_button()]


def closed_ticket_controls() -> List[Button]:
    return [
        Button(custom_id=REOPEN, label="Reopen", style=ButtonStyle.SUCCESS, emoji="🔓"),
        Button(custom_id=ARCHIVE, label="Archive", style=ButtonStyle.SECONDARY, emoji="📁"),
        Button(custom_id=DELETE, label="Delete", style=ButtonStyle.DANGER, emoji="🗑️"),
    ]


# ----------------------------------------------------------------------
# Creation
# ----------------------------------------------------------------------
def welcome_text(category: TicketCategory, options: TicketCreationOptions) -> str:
    template = category.ticket_message
    text = (template.welcome_message if template else None) or (
        f"Welcome to your ticket in the **{category.name}** category!\n\n"
        "Please describe your issue and wait for a staff member to assist you."
    )

    if options.from_assistant and options.original_message:
        text += f"\n\n**Original question:** *{options.original_message}*"

    if options.additional_context:
        text += f"\n\n{options.additional_context}"

    return text


def welcome_message(
    ticket: Ticket,
    category: TicketCategory,
    options: TicketCreationOptions
) -> StructuredMessage:
    template = category.ticket_message
    ping_support = bool(template and template.include_support_team and category.support_role_id)
    content = f"<@{options.user_id}>"
    if ping_support:
        content += f" | <@&{category.support_role_id}>"

    return StructuredMessage(
        content=content,
        title=ticket_label(ticket),
        description=welcome_text(category, options),
        color=Color.GREEN,
        fields=[
            MessageField(name="Ticket ID", value=f"#{ticket.ticket_number}"),
            MessageField(name="Category", value=f"{category.emoji or DEFAULT_CATEGORY_EMOJI} {category.name}"),
            MessageField(name="Status", value="🟢 Open"),
            MessageField(name="Created By", value=f"<@{options.user_id}>"),
            MessageField(name="Created At", value=_timestamp(ticket.created_at)),
        ],
        footer=f"Use the buttons below to manage this ticket | ID: {ticket.id}",
        timestamp=utcnow(),
        components=open_ticket_controls(claimed=False),
    )


def creation_success(ticket: Ticket, channel: ChannelHandle, from_assistant: bool = False) -> StructuredMessage:
    title = "🎫 Ticket Created Successfully" if from_assistant else "✅ Ticket Created"
    return StructuredMessage(
        title=title,
        description=f"Your ticket has been created: {channel.mention}\nTicket Number: #{ticket.ticket_number}",
        color=Color.GREEN,
        timestamp=utcnow(),
        components=[],
    )


def creation_error(message: str) -> StructuredMessage:
    return StructuredMessage(
        title="❌ Ticket Creation Failed",
        description=message,
        color=Color.RED,
        timestamp=utcnow(),
        components=[],
    )


def existing_ticket(channel_id: Optional[str]) -> StructuredMessage:
    where = f"<#{channel_id}>" if channel_id else "your existing ticket channel"
    return warning("You already have an open ticket!", f"Please use your existing ticket: {where}")


def category_picker(categories: List[TicketCategory]) -> StructuredMessage:
    menu = SelectMenu(
        custom_id=CATEGORY_SELECT,
        placeholder="Select a ticket category",
        options=[
            SelectOption(
                label=category.name[:100],
                value=category.id,
                description=(category.description or f"Support for {category.name}")[:100],
                emoji=category.emoji or DEFAULT_CATEGORY_EMOJI,
            )
            for category in categories[:25]
        ],
    )
    return StructuredMessage(
        title="Create a Ticket",
        description="Please select a category for your ticket",
        color=Color.BLUE,
        timestamp=utcnow(),
        components=[menu],
    )


# ----------------------------------------------------------------------
# Lifecycle notices
# ----------------------------------------------------------------------
def close_reason_modal() -> Modal:
    return Modal(
        custom_id=CLOSE_MODAL,
        title="Close Ticket",
        inputs=[
            TextInput(
                custom_id=CLOSE_REASON,
                label="Reason for closing the ticket",
                placeholder="Enter the reason for closing this ticket...",
                required=False,
            )
        ],
    )


def close_notice(ticket: Ticket, actor: Principal, reason: str) -> StructuredMessage:
    return StructuredMessage(
        title="Ticket Closed",
        description="This ticket has been closed.",
        color=Color.RED,
        fields=[
            MessageField(name="Closed By", value=f"<@{actor.id}>"),
            MessageField(name="Reason", value=reason, inline=False),
        ],
        footer=ticket_label(ticket),
        timestamp=utcnow(),
        components=closed_ticket_controls(),
    )


def reopen_notice(ticket: Ticket, actor: Principal) -> StructuredMessage:
    return StructuredMessage(
        title="Ticket Reopened",
        description="This ticket has been reopened.",
        color=Color.GREEN,
        fields=[MessageField(name="Reopened By", value=f"<@{actor.id}>")],
        footer=ticket_label(ticket),
        timestamp=utcnow(),
        components=[close_button()],
    )


def archive_notice(ticket: Ticket, actor: Principal) -> StructuredMessage:
    return StructuredMessage(
        title="Ticket Archived",
        description="This ticket has been archived and will be stored for reference.",
        color=Color.GREY,
        fields=[MessageField(name="Archived By", value=f"<@{actor.id}>")],
        footer=ticket_label(ticket),
        timestamp=utcnow(),
    )


def claim_notice(ticket: Ticket, actor: Principal) -> StructuredMessage:
    return StructuredMessage(
        title="Ticket Claimed",
        description=f"This ticket is now being handled by <@{actor.id}>.",
        color=Color.BLUE,
        fields=[
            MessageField(name="Claimed By", value=f"<@{actor.id}>"),
            MessageField(name="Claimed At", value=_timestamp(utcnow())),
        ],
        footer=ticket_label(ticket),
        timestamp=utcnow(),
    )


def unclaim_notice(ticket: Ticket, actor: Principal) -> StructuredMessage:
    return StructuredMessage(
        title="Ticket Unclaimed",
        description=f"This ticket is no longer being handled by <@{actor.id}>.",
        color=Color.ORANGE,
        footer=ticket_label(ticket),
        timestamp=utcnow(),
    )


def claim_controls_update(claimed: bool) -> StructuredMessage:
    """Edit applied to the card whose claim button was pressed"""
    return StructuredMessage(components=open_ticket_controls(claimed=claimed))


def already_claimed(claimant_id: str) -> StructuredMessage:
    return StructuredMessage(
        title="Ticket Already Claimed",
        description=f"This ticket is already being handled by <@{claimant_id}>.",
        color=Color.RED,
        fields=[MessageField(name="Claimed By", value=f"<@{claimant_id}>")],
    )


# ----------------------------------------------------------------------
# Deletion
# ----------------------------------------------------------------------
def delete_prompt(requester: Principal) -> StructuredMessage:
    return StructuredMessage(
        content=f"<@{requester.id}>",
        title="Delete Ticket",
        description="Are you sure you want to delete this ticket? This action cannot be undone.",
        color=Color.RED,
        components=[
            Button(custom_id=CONFIRM_DELETE, label="Yes, Delete", style=ButtonStyle.DANGER),
            Button(custom_id=CANCEL_DELETE, label="Cancel", style=ButtonStyle.SECONDARY),
        ],
    )


def delete_cancelled() -> StructuredMessage:
    return info("Ticket deletion canceled.").model_copy(update={"components": []})


def delete_timed_out() -> StructuredMessage:
    return info("Ticket deletion timed out.").model_copy(update={"components": []})


def deleting_ticket() -> StructuredMessage:
    return success("Deleting ticket...").model_copy(update={"components": []})


def deleted_dm(ticket: Ticket, actor: Principal) -> StructuredMessage:
    return StructuredMessage(
        title="Ticket Deleted",
        description=f"Ticket #{ticket.ticket_number} has been deleted by {actor.display}.",
        color=Color.RED,
        timestamp=utcnow(),
    )


def channel_removal_failed() -> StructuredMessage:
    return error(
        "The ticket was marked as closed in the database, but the channel could not be deleted. "
        "Manual cleanup may be required.",
        title="Failed to delete the ticket channel"
    )
