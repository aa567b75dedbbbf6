"""
Ticket API routes

Used by the assistant flow: when the assistant cannot answer a question it
opens a ticket on the user's behalf, carrying the original question into
the welcome card.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from typing import List, Optional

from ticketdesk.models.results import CreationResult, ErrorKind
from ticketdesk.models.schemas import TicketCreationOptions
from ticketdesk.routes import get_ticket_service
from ticketdesk.services.ticket_service import TicketService
from ticketdesk.utils.auth import verify_api_key
from ticketdesk.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(
    prefix="/api/v1",
    tags=["tickets"],
    dependencies=[Depends(verify_api_key)]
)

# ErrorKind -> HTTP status for failed creations
ERROR_STATUS = {
    ErrorKind.VALIDATION_FAILED: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.DUPLICATE_TICKET: status.HTTP_409_CONFLICT,
    ErrorKind.CHANNEL_PROVISION_FAILED: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.PERSISTENCE_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class CreateTicketRequest(BaseModel):
    """Request model for assistant-triggered ticket creation"""
    user_id: str = Field(..., min_length=1)
    guild_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    original_message: Optional[str] = Field(None, max_length=2000)
    additional_context: Optional[str] = Field(None, max_length=2000)


class CreateTicketResponse(BaseModel):
    ticket_id: str
    ticket_number: int
    channel_id: str
    degraded: bool = False
    warnings: List[str] = Field(default_factory=list)


class CategoryResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    emoji: Optional[str] = None


@router.post(
    "/tickets",
    response_model=CreateTicketResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_ticket(
    request: CreateTicketRequest,
    service: TicketService = Depends(get_ticket_service)
) -> CreateTicketResponse:
    """
    Create a ticket from the assistant flow.

    Failures map to 409 (existing open ticket), 422 (system or category
    unavailable), 502 (channel could not be created) and 503 (record could
    not be stored).
    """
    options = TicketCreationOptions(
        user_id=request.user_id,
        guild_id=request.guild_id,
        category_id=request.category_id,
        from_assistant=True,
        original_message=request.original_message,
        additional_context=request.additional_context,
    )
    result: CreationResult = await service.create_ticket(options)

    if not result.success:
        detail = {"error": result.error.value, "message": result.message}
        if result.existing_channel_id:
            detail["existing_channel_id"] = result.existing_channel_id
        raise HTTPException(
            status_code=ERROR_STATUS.get(result.error, status.HTTP_400_BAD_REQUEST),
            detail=detail
        )

    return CreateTicketResponse(
        ticket_id=str(result.ticket.id),
        ticket_number=result.ticket_number,
        channel_id=result.channel.id,
        degraded=result.degraded,
        warnings=result.warnings,
    )


@router.get("/workspaces/{workspace_id}/categories", response_model=List[CategoryResponse])
async def list_categories(
    workspace_id: str,
    service: TicketService = Depends(get_ticket_service)
) -> List[CategoryResponse]:
    """Enabled ticket categories of a workspace, ordered by position"""
    categories = await service.get_available_categories(workspace_id)
    return [
        CategoryResponse(
            id=category.id,
            name=category.name,
            description=category.description,
            emoji=category.emoji,
        )
        for category in categories
    ]
