"""
API routes
"""
from fastapi import Request

from ticketdesk.services.ticket_service import TicketService


def get_ticket_service(request: Request) -> TicketService:
    """TicketService built in the application lifespan"""
    return request.app.state.ticket_service
