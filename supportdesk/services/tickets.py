"""
Ticket Authorization Engine - Ticket state machine and role-based gate.

Every ticket operation asks the same two predicates, can_access_ticket and
can_close_ticket. Realtime notification is left to the caller.
"""

from uuid import UUID

from structlog import get_logger

from supportdesk.db.models import Reply, Ticket, User
from supportdesk.db.stores import TicketStore, UserStore
from supportdesk.exceptions import ForbiddenError, NotFoundError
from supportdesk.models.api import (
    AuthorSummary,
    ReplyResponse,
    Role,
    TicketDetail,
    TicketDetailResponse,
    TicketListResponse,
    TicketResponse,
    TicketStatus,
    TicketStatusResponse,
    TicketSummary,
)
from supportdesk.observability.metrics import metrics

logger = get_logger(__name__)


def can_access_ticket(user: User | None, ticket: Ticket) -> bool:
    """Owner, assigned agent, or any AGENT may read and reply."""
    if user is None:
        return False
    return (
        ticket.customer_id == user.id
        or ticket.assigned_to_id == user.id
        or user.role == Role.AGENT.value
    )


def can_close_ticket(user: User | None) -> bool:
    """Only agents change ticket status."""
    return user is not None and user.role == Role.AGENT.value


def reply_to_response(reply: Reply) -> ReplyResponse:
    """Render a reply with its author (author must be loaded)."""
    author = reply.author
    return ReplyResponse(
        id=reply.id,
        content=reply.content,
        created_at=reply.created_at,
        author=AuthorSummary(
            id=author.id,
            name=author.first_name or author.display_name,
            email=author.email,
            profile_image=author.profile_image,
            role=Role(author.role),
        ),
    )


class TicketAuthorizationEngine:
    """Ticket operations, each gated by role and ownership."""

    def __init__(self, users: UserStore, tickets: TicketStore):
        self.users = users
        self.tickets = tickets

    def _forbidden(self, operation: str, message: str, **context: str) -> ForbiddenError:
        metrics.record_ticket_operation(operation, "forbidden")
        logger.warning("ticket_operation_forbidden", operation=operation, **context)
        return ForbiddenError(message)

    def _not_found(self, operation: str, ticket_id: UUID) -> NotFoundError:
        metrics.record_ticket_operation(operation, "not_found")
        logger.info("ticket_not_found", operation=operation, ticket_id=str(ticket_id))
        return NotFoundError("Ticket", ticket_id)

    async def create(self, subject: str, message: str, customer_id: UUID) -> TicketResponse:
        """
        Open a ticket; message becomes its first reply.

        Raises:
            NotFoundError: customer_id is not a user
        """
        customer = await self.users.get_by_id(customer_id)
        if customer is None:
            metrics.record_ticket_operation("create", "not_found")
            raise NotFoundError("User", customer_id)

        ticket = await self.tickets.create(subject, customer, message)

        metrics.record_ticket_operation("create", "ok")
        logger.info("ticket_created", ticket_id=str(ticket.id), customer_id=str(customer.id))

        return TicketResponse(
            id=ticket.id,
            subject=ticket.subject,
            status=TicketStatus(ticket.status),
            user_id=customer.id,
            user_name=customer.first_name,
            user_email=customer.email,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
        )

    async def list_tickets(self, requester_id: UUID) -> TicketListResponse:
        """Agents see every ticket; everyone else sees their own."""
        requester = await self.users.get_by_id(requester_id)
        if requester is not None and requester.role == Role.AGENT.value:
            tickets = await self.tickets.list_all()
        else:
            tickets = await self.tickets.list_for_customer(requester_id)

        metrics.record_ticket_operation("list", "ok")
        return TicketListResponse(
            tickets=[
                TicketSummary(
                    id=t.id,
                    subject=t.subject,
                    status=TicketStatus(t.status),
                    created_at=t.created_at,
                    updated_at=t.updated_at,
                    user_email=t.customer.email,
                    user_name=t.customer.first_name or "Unknown",
                )
                for t in tickets
            ]
        )

    async def get_one(self, ticket_id: UUID, requester_id: UUID) -> TicketDetailResponse:
        """
        Ticket detail with the first reply split out as the message.

        Raises:
            NotFoundError: no such ticket
            ForbiddenError: requester is not a party to the ticket
        """
        ticket = await self.tickets.get_with_replies(ticket_id)
        if ticket is None:
            raise self._not_found("get", ticket_id)

        requester = await self.users.get_by_id(requester_id)
        if not can_access_ticket(requester, ticket):
            raise self._forbidden(
                "get",
                "Not authorized to access this ticket",
                ticket_id=str(ticket_id),
                requester_id=str(requester_id),
            )

        first, *rest = ticket.replies or [None]
        metrics.record_ticket_operation("get", "ok")

        return TicketDetailResponse(
            id=ticket.customer.id,
            email=ticket.customer.email,
            first_name=ticket.customer.first_name,
            ticket=TicketDetail(
                id=ticket.id,
                subject=ticket.subject,
                status=TicketStatus(ticket.status),
                created_at=ticket.created_at,
                updated_at=ticket.updated_at,
                message=first.content if first is not None else "",
                replies=[reply_to_response(r) for r in rest],
            ),
        )

    async def add_reply(self, ticket_id: UUID, content: str, author_id: UUID) -> ReplyResponse:
        """
        Append a reply to an open ticket.

        Raises:
            NotFoundError: no such ticket
            ForbiddenError: ticket closed, or author not a party to it
        """
        ticket = await self.tickets.get(ticket_id)
        if ticket is None:
            raise self._not_found("reply", ticket_id)

        if ticket.status == TicketStatus.CLOSED.value:
            raise self._forbidden(
                "reply",
                "Cannot add replies to a closed ticket",
                ticket_id=str(ticket_id),
                author_id=str(author_id),
            )

        author = await self.users.get_by_id(author_id)
        if author is None or not can_access_ticket(author, ticket):
            raise self._forbidden(
                "reply",
                "Not authorized to reply to this ticket",
                ticket_id=str(ticket_id),
                author_id=str(author_id),
            )

        reply = await self.tickets.add_reply(ticket, author, content)

        metrics.record_ticket_operation("reply", "ok")
        logger.info("reply_added", ticket_id=str(ticket_id), reply_id=str(reply.id))
        return reply_to_response(reply)

    async def update_status(
        self, ticket_id: UUID, status: TicketStatus, requester_id: UUID
    ) -> TicketStatusResponse:
        """
        Set a ticket's status (agents only).

        Re-applying the current status is accepted. A closed ticket is never
        reopened.

        Raises:
            ForbiddenError: requester is not an agent, or CLOSED -> OPEN
            NotFoundError: no such ticket
        """
        requester = await self.users.get_by_id(requester_id)
        if not can_close_ticket(requester):
            raise self._forbidden(
                "update_status",
                "Only agents can update ticket status",
                ticket_id=str(ticket_id),
                requester_id=str(requester_id),
            )

        ticket = await self.tickets.get(ticket_id)
        if ticket is None:
            raise self._not_found("update_status", ticket_id)

        if ticket.status == TicketStatus.CLOSED.value and status is TicketStatus.OPEN:
            raise self._forbidden(
                "update_status",
                "Cannot reopen a closed ticket",
                ticket_id=str(ticket_id),
                requester_id=str(requester_id),
            )

        previous = ticket.status
        ticket = await self.tickets.set_status(ticket, status)

        metrics.record_ticket_operation("update_status", "ok")
        logger.info(
            "ticket_status_updated",
            ticket_id=str(ticket_id),
            previous=previous,
            status=ticket.status,
            agent_id=str(requester_id),
        )
        return TicketStatusResponse(id=ticket.id, status=TicketStatus(ticket.status))

    async def can_watch(self, ticket_id: UUID, requester_id: UUID) -> bool:
        """Whether requester may follow the ticket's live room."""
        ticket = await self.tickets.get(ticket_id)
        if ticket is None:
            return False
        return can_access_ticket(await self.users.get_by_id(requester_id), ticket)
