"""
Result types returned by the ticket core

Every core operation returns one of these instead of raising, so the
interaction layer only has to render them.
"""
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field

from ticketdesk.models.schemas import Ticket, ChannelHandle


class ErrorKind(str, Enum):
    """Failure taxonomy of the ticket core"""
    VALIDATION_FAILED = "validation_failed"
    DUPLICATE_TICKET = "duplicate_ticket"
    INVALID_TRANSITION = "invalid_transition"
    PERMISSION_DENIED = "permission_denied"
    ALREADY_CLAIMED = "already_claimed"
    CHANNEL_PROVISION_FAILED = "channel_provision_failed"
    PERSISTENCE_FAILED = "persistence_failed"
    NOT_A_TICKET = "not_a_ticket"


# Kinds whose detail stays in the logs; the user sees a generic message.
GENERIC_KINDS = {
    ErrorKind.INVALID_TRANSITION,
    ErrorKind.CHANNEL_PROVISION_FAILED,
    ErrorKind.PERSISTENCE_FAILED,
}


class TicketResult(BaseModel):
    """
    Result of a state transition or claim operation.

    Attributes:
        success: Whether the state change happened
        ticket: Ticket as persisted after the operation (if any)
        error: Failure kind when success is False
        message: User-facing text
        degraded: State change succeeded but a notification or best-effort
            side effect did not
        warnings: Human-readable descriptions of degraded side effects
        claimant_id: Current claimant when error is ALREADY_CLAIMED
        action: Short verb describing what happened (claimed, unclaimed, ...)
    """
    success: bool
    ticket: Optional[Ticket] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    degraded: bool = False
    warnings: List[str] = Field(default_factory=list)
    claimant_id: Optional[str] = None
    action: Optional[str] = None

    @classmethod
    def ok(cls, ticket, message: str = "", **kwargs) -> "TicketResult":
        return cls(success=True, ticket=ticket, message=message, **kwargs)

    @classmethod
    def fail(cls, error: ErrorKind, message: str, **kwargs) -> "TicketResult":
        return cls(success=False, error=error, message=message, **kwargs)

    def warn(self, warning: str) -> "TicketResult":
        self.degraded = True
        self.warnings.append(warning)
        return self


class CreationResult(BaseModel):
    """
    Result of the creation saga.

    On success `ticket`, `channel` and `ticket_number` are set. On failure
    `error` and `message` are set; `existing_channel_id` accompanies
    DUPLICATE_TICKET.
    """
    success: bool
    ticket: Optional[Ticket] = None
    channel: Optional[ChannelHandle] = None
    ticket_number: Optional[int] = None
    error: Optional[ErrorKind] = None
    message: str = ""
    existing_channel_id: Optional[str] = None
    degraded: bool = False
    warnings: List[str] = Field(default_factory=list)
