"""
Pydantic models for Ticketdesk
"""

from ticketdesk.models.schemas import (
    # Enums
    TicketStatus,
    OverwriteTarget,

    # Database Models
    Ticket,
    TicketCategory,
    TicketMessageTemplate,
    WorkspaceConfig,

    # Collaborator Models
    Principal,
    VisibilityRule,
    ChannelHandle,
    DeliveryResult,
    TicketCreationOptions,
)
from ticketdesk.models.results import ErrorKind, TicketResult, CreationResult
from ticketdesk.models.messages import StructuredMessage, Button, SelectMenu, Modal

__all__ = [
    # Enums
    "TicketStatus",
    "OverwriteTarget",
    "ErrorKind",

    # Database Models
    "Ticket",
    "TicketCategory",
    "TicketMessageTemplate",
    "WorkspaceConfig",

    # Collaborator Models
    "Principal",
    "VisibilityRule",
    "ChannelHandle",
    "DeliveryResult",
    "TicketCreationOptions",

    # Results and Messages
    "TicketResult",
    "CreationResult",
    "StructuredMessage",
    "Button",
    "SelectMenu",
    "Modal",
]
