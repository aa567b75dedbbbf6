"""
Pydantic models for Ticketdesk

This module contains the records persisted in Supabase (tickets, categories,
workspace configuration) and the value objects exchanged with the Discord
collaborators (principals, channel handles, visibility rules, delivery
results).
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator, ConfigDict

from ticketdesk.utils.permissions import MANAGE_CHANNELS, has_permission


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Enums
# ============================================================================

class TicketStatus(str, Enum):
    """Valid ticket statuses"""
    OPEN = "open"
    CLOSED = "closed"
    ARCHIVED = "archived"


class OverwriteTarget(int, Enum):
    """Discord permission overwrite target type"""
    ROLE = 0
    MEMBER = 1


# ============================================================================
# Database Models (matching Supabase tables)
# ============================================================================

class Ticket(BaseModel):
    """
    Ticket record bound one-to-one with a Discord channel.

    This model matches the `tickets` table in Supabase. Records are never
    deleted: deleting a ticket closes the record and removes the channel.

    Attributes:
        id: Unique identifier (UUID)
        guild_id: Workspace (Discord guild) the ticket belongs to
        ticket_number: Per-workspace, strictly increasing display number
        creator_id: Principal who opened the ticket
        channel_id: Bound Discord channel
        category_id: Ticket category reference
        status: open / closed / archived
        claimed_by_id: Staff member currently handling the ticket
        close_reason: Reason given when closing or archiving
        closed_by_id: Principal who closed or archived the ticket
        created_at / updated_at / closed_at: Timestamps
    """
    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(default_factory=uuid4, description="Unique identifier")
    guild_id: str = Field(..., min_length=1, max_length=64, description="Workspace ID")
    ticket_number: int = Field(..., ge=1, description="Per-workspace ticket number")
    creator_id: str = Field(..., min_length=1, max_length=64, description="Creator principal ID")
    channel_id: str = Field(..., min_length=1, max_length=64, description="Bound channel ID")
    category_id: str = Field(..., min_length=1, max_length=64, description="Category ID")
    status: TicketStatus = Field(default=TicketStatus.OPEN, description="Ticket status")
    claimed_by_id: Optional[str] = Field(None, max_length=64, description="Claimant principal ID")
    close_reason: Optional[str] = Field(None, max_length=1024, description="Close reason")
    closed_by_id: Optional[str] = Field(None, max_length=64, description="Closing principal ID")
    created_at: datetime = Field(default_factory=utcnow, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utcnow, description="Last update timestamp")
    closed_at: Optional[datetime] = Field(None, description="Close timestamp")

    @property
    def is_open(self) -> bool:
        return self.status == TicketStatus.OPEN


class TicketMessageTemplate(BaseModel):
    """Welcome message settings attached to a category"""
    model_config = ConfigDict(from_attributes=True)

    welcome_message: Optional[str] = Field(None, max_length=4000)
    include_support_team: bool = False


class TicketCategory(BaseModel):
    """
    Ticket category configured by workspace administrators.

    Disabled categories cannot receive new tickets but still resolve for
    existing ones.
    """
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., min_length=1, max_length=64)
    guild_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1024)
    emoji: Optional[str] = Field(None, max_length=64)
    support_role_id: Optional[str] = Field(None, max_length=64)
    is_enabled: bool = True
    position: int = 0
    parent_channel_id: Optional[str] = Field(
        None,
        max_length=64,
        description="Discord category channel that groups provisioned ticket channels"
    )
    ticket_message: Optional[TicketMessageTemplate] = None


class WorkspaceConfig(BaseModel):
    """Per-guild switch for the ticket system plus its categories"""
    model_config = ConfigDict(from_attributes=True)

    guild_id: str = Field(..., min_length=1, max_length=64)
    is_enabled: bool = False
    categories: List[TicketCategory] = Field(default_factory=list)


# ============================================================================
# Collaborator value objects
# ============================================================================

class Principal(BaseModel):
    """
    The member behind an interaction.

    `permissions` is the member's resolved permission bitfield in the
    channel the interaction came from.
    """
    id: str = Field(..., min_length=1)
    username: Optional[str] = None
    role_ids: List[str] = Field(default_factory=list)
    permissions: int = 0

    @field_validator("permissions", mode="before")
    @classmethod
    def parse_permissions(cls, v):
        """Discord sends permission bitfields as decimal strings"""
        if v is None or v == "":
            return 0
        return int(v)

    @property
    def can_manage_channels(self) -> bool:
        return has_permission(self.permissions, MANAGE_CHANNELS)

    def has_role(self, role_id: Optional[str]) -> bool:
        return bool(role_id) and role_id in self.role_ids

    @property
    def display(self) -> str:
        return self.username or self.id


class VisibilityRule(BaseModel):
    """Permission overwrite applied to a channel for one role or member"""
    target_id: str
    target_type: OverwriteTarget = OverwriteTarget.MEMBER
    allow: int = 0
    deny: int = 0


class ChannelHandle(BaseModel):
    """A provisioned Discord channel"""
    id: str
    guild_id: Optional[str] = None
    name: Optional[str] = None
    parent_id: Optional[str] = None

    @property
    def mention(self) -> str:
        return f"<#{self.id}>"


class DeliveryResult(BaseModel):
    """Outcome of a notifier call; failures are reported, not raised"""
    delivered: bool
    channel_id: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None


class TicketCreationOptions(BaseModel):
    """Input of the creation saga"""
    user_id: str = Field(..., min_length=1)
    guild_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    from_assistant: bool = False
    original_message: Optional[str] = Field(None, max_length=2000)
    additional_context: Optional[str] = Field(None, max_length=2000)
