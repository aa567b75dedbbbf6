"""
Ticket workflow exceptions

Each exception carries the ErrorKind that the service layer reports back
to the interaction layer. The message is safe to show to the user; the
detail is for logs only.
"""
from typing import Optional

from ticketdesk.models.results import ErrorKind


class TicketError(Exception):
    """Base class for ticket workflow failures"""

    kind: ErrorKind = ErrorKind.VALIDATION_FAILED

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationFailed(TicketError):
    kind = ErrorKind.VALIDATION_FAILED


class DuplicateTicket(TicketError):
    kind = ErrorKind.DUPLICATE_TICKET

    def __init__(self, existing_channel_id: Optional[str]):
        if existing_channel_id:
            message = f"You already have an open ticket: <#{existing_channel_id}>"
        else:
            message = "You already have an open ticket."
        super().__init__(message)
        self.existing_channel_id = existing_channel_id


class InvalidTransition(TicketError):
    kind = ErrorKind.INVALID_TRANSITION

    def __init__(self, current: str, attempted: str, message: Optional[str] = None):
        super().__init__(
            message or f"This ticket cannot be {attempted} right now.",
            detail=f"transition '{attempted}' is not legal from status '{current}'"
        )
        self.current = current
        self.attempted = attempted


class PermissionDenied(TicketError):
    kind = ErrorKind.PERMISSION_DENIED


class AlreadyClaimed(TicketError):
    kind = ErrorKind.ALREADY_CLAIMED

    def __init__(self, claimant_id: str):
        super().__init__(f"This ticket is already being handled by <@{claimant_id}>.")
        self.claimant_id = claimant_id


class ChannelProvisionFailed(TicketError):
    kind = ErrorKind.CHANNEL_PROVISION_FAILED


class PersistenceFailed(TicketError):
    kind = ErrorKind.PERSISTENCE_FAILED


class NotATicketChannel(TicketError):
    kind = ErrorKind.NOT_A_TICKET

    def __init__(self, channel_id: str):
        super().__init__("This is not a valid ticket channel.", detail=f"channel {channel_id}")
        self.channel_id = channel_id
