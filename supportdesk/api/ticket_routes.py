"""
Ticket routes - Ticket CRUD over the authorization engine.

Replies and status changes are pushed to the ticket's live room after the
write commits.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status

from supportdesk.api.dependencies import (
    get_current_claims,
    get_realtime_notifier,
    get_ticket_engine,
)
from supportdesk.models.api import (
    CreateReplyRequest,
    CreateTicketRequest,
    ReplyResponse,
    TicketDetailResponse,
    TicketListResponse,
    TicketResponse,
    TicketStatusResponse,
    UpdateTicketStatusRequest,
)
from supportdesk.models.domain import TokenClaims
from supportdesk.services.realtime import RealtimeNotifier
from supportdesk.services.tickets import TicketAuthorizationEngine

router = APIRouter(prefix="/tickets", tags=["tickets"])


@router.post(
    "",
    response_model=TicketResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_ticket(
    request: CreateTicketRequest,
    claims: TokenClaims = Depends(get_current_claims),
    engine: TicketAuthorizationEngine = Depends(get_ticket_engine),
) -> TicketResponse:
    """Open a ticket for the caller."""
    return await engine.create(request.subject, request.message, claims.sub)


@router.get("", response_model=TicketListResponse, response_model_by_alias=True)
async def list_tickets(
    claims: TokenClaims = Depends(get_current_claims),
    engine: TicketAuthorizationEngine = Depends(get_ticket_engine),
) -> TicketListResponse:
    """Agents see all tickets, customers their own."""
    return await engine.list_tickets(claims.sub)


@router.get("/{ticket_id}", response_model=TicketDetailResponse, response_model_by_alias=True)
async def get_ticket(
    ticket_id: UUID,
    claims: TokenClaims = Depends(get_current_claims),
    engine: TicketAuthorizationEngine = Depends(get_ticket_engine),
) -> TicketDetailResponse:
    """Ticket detail with its conversation."""
    return await engine.get_one(ticket_id, claims.sub)


@router.post(
    "/{ticket_id}/replies",
    response_model=ReplyResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
async def add_reply(
    ticket_id: UUID,
    request: CreateReplyRequest,
    claims: TokenClaims = Depends(get_current_claims),
    engine: TicketAuthorizationEngine = Depends(get_ticket_engine),
    notifier: RealtimeNotifier = Depends(get_realtime_notifier),
) -> ReplyResponse:
    """Append a reply and broadcast newReply."""
    reply = await engine.add_reply(ticket_id, request.content, claims.sub)
    await notifier.notify_new_reply(ticket_id, reply)
    return reply


@router.patch(
    "/{ticket_id}/status", response_model=TicketStatusResponse, response_model_by_alias=True
)
async def update_ticket_status(
    ticket_id: UUID,
    request: UpdateTicketStatusRequest,
    claims: TokenClaims = Depends(get_current_claims),
    engine: TicketAuthorizationEngine = Depends(get_ticket_engine),
    notifier: RealtimeNotifier = Depends(get_realtime_notifier),
) -> TicketStatusResponse:
    """Change status (agents only) and broadcast statusChanged."""
    result = await engine.update_status(ticket_id, request.status, claims.sub)
    await notifier.notify_status_change(ticket_id, result)
    return result
