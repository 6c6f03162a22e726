"""
Record Stores - The only code that talks SQL.

UserStore is the credential store: user lookup plus the compare-and-set on
the rotating refresh-token hash. TicketStore persists tickets and replies.
Reads use populate_existing so a session that outlives a commit never serves
a stale hashed_rt or status from its identity map.
"""

from collections.abc import Sequence
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from structlog import get_logger

from supportdesk.db.models import Reply, Ticket, User, utc_now
from supportdesk.exceptions import ConflictError
from supportdesk.models.api import TicketStatus

logger = get_logger(__name__)


class UserStore:
    """Persistence for users and their rotating credential hash."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, user_id: UUID) -> User | None:
        """Get user by ID."""
        stmt = select(User).where(User.id == user_id).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> User | None:
        """Get user by email."""
        stmt = select(User).where(User.email == email).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def create(self, email: str, **fields: Any) -> User:
        """
        Create a user.

        Raises:
            ConflictError: email already registered
        """
        user = User(email=email, **fields)
        self.session.add(user)
        try:
            await self.session.flush()
            await self.session.commit()
        except IntegrityError as e:
            logger.warning("user_create_conflict", email=email, error=str(e.orig))
            await self.session.rollback()
            raise ConflictError("Email already registered") from e
        return user

    async def save(self, user: User) -> User:
        """Persist pending changes to a user."""
        user.updated_at = utc_now()
        await self.session.commit()
        return user

    async def set_rt_hash(self, user_id: UUID, rt_hash: str | None) -> bool:
        """Unconditionally replace the rotating hash. Returns False if no such user."""
        stmt = update(User).where(User.id == user_id).values(hashed_rt=rt_hash)
        result = await self.session.execute(stmt)
        await self.session.commit()
        return bool(result.rowcount)  # type: ignore[attr-defined]

    async def compare_and_set_rt_hash(self, user_id: UUID, expected: str, new: str) -> bool:
        """
        Replace the rotating hash only if it still equals expected.

        A single conditional UPDATE, so two writers racing on the same
        expected value cannot both win.
        """
        stmt = (
            update(User)
            .where(User.id == user_id, User.hashed_rt == expected)
            .values(hashed_rt=new)
        )
        result = await self.session.execute(stmt)
        await self.session.commit()
        return bool(result.rowcount)  # type: ignore[attr-defined]


class TicketStore:
    """Persistence for tickets and replies."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, subject: str, customer: User, message: str) -> Ticket:
        """Create a ticket together with its first reply."""
        now = utc_now()
        ticket = Ticket(
            subject=subject,
            customer_id=customer.id,
            status=TicketStatus.OPEN.value,
            created_at=now,
            updated_at=now,
        )
        self.session.add(ticket)
        await self.session.flush()
        self.session.add(
            Reply(ticket_id=ticket.id, author_id=customer.id, content=message, created_at=now)
        )
        await self.session.commit()
        return ticket

    async def get(self, ticket_id: UUID) -> Ticket | None:
        """Get ticket by ID without relations."""
        stmt = (
            select(Ticket)
            .where(Ticket.id == ticket_id)
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_with_replies(self, ticket_id: UUID) -> Ticket | None:
        """Get ticket with its customer and replies (authors loaded), oldest first."""
        stmt = (
            select(Ticket)
            .where(Ticket.id == ticket_id)
            .options(
                selectinload(Ticket.customer),
                selectinload(Ticket.replies).selectinload(Reply.author),
            )
            .execution_options(populate_existing=True)
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_all(self) -> Sequence[Ticket]:
        """All tickets with customers, most recently updated first."""
        stmt = (
            select(Ticket)
            .options(selectinload(Ticket.customer))
            .order_by(Ticket.updated_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def list_for_customer(self, customer_id: UUID) -> Sequence[Ticket]:
        """Tickets owned by one customer, most recently updated first."""
        stmt = (
            select(Ticket)
            .where(Ticket.customer_id == customer_id)
            .options(selectinload(Ticket.customer))
            .order_by(Ticket.updated_at.desc())
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def add_reply(self, ticket: Ticket, author: User, content: str) -> Reply:
        """Append a reply and bump the ticket's updated_at."""
        now = utc_now()
        reply = Reply(ticket_id=ticket.id, author=author, content=content, created_at=now)
        self.session.add(reply)
        ticket.updated_at = now
        await self.session.commit()
        return reply

    async def set_status(self, ticket: Ticket, status: TicketStatus) -> Ticket:
        """Persist a new status."""
        ticket.status = status.value
        ticket.updated_at = utc_now()
        await self.session.commit()
        return ticket
