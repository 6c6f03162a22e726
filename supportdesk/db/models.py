"""
Database Models - SQLAlchemy ORM models with strict typing.

NO DICTIONARIES - All columns use Mapped[] type annotations.
"""

from datetime import UTC, datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class User(Base):
    """
    ORM model for users table.

    hashed_rt is the SHA-256 of the one valid refresh token; NULL means the
    user has no active session.
    """

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)

    # Credentials
    hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    hashed_rt: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # External identity
    google_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_google_account: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    provider: Mapped[str | None] = mapped_column(String(50), nullable=True)

    # Profile
    first_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    profile_image: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    locale: Mapped[str | None] = mapped_column(String(20), nullable=True)

    role: Mapped[str] = mapped_column(String(20), nullable=False, default="CUSTOMER")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    __table_args__ = (
        CheckConstraint("role IN ('CUSTOMER', 'AGENT')", name="ck_users_role"),
        Index("idx_users_google_id", "google_id"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"


class Ticket(Base):
    """
    ORM model for tickets table.

    Status moves OPEN -> CLOSED only.
    """

    __tablename__ = "tickets"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="OPEN")

    customer_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    assigned_to_id: Mapped[UUID | None] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now, onupdate=utc_now
    )

    customer: Mapped[User] = relationship(foreign_keys=[customer_id])
    assigned_to: Mapped[User | None] = relationship(foreign_keys=[assigned_to_id])
    replies: Mapped[list["Reply"]] = relationship(
        back_populates="ticket", order_by="Reply.created_at"
    )

    __table_args__ = (
        CheckConstraint("status IN ('OPEN', 'CLOSED')", name="ck_tickets_status"),
        Index("idx_tickets_customer_id", "customer_id"),
        Index("idx_tickets_updated_at", "updated_at"),
    )

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Ticket(id={self.id}, subject={self.subject!r}, status={self.status})>"


class Reply(Base):
    """
    ORM model for replies table.

    Immutable. The earliest reply of a ticket is its original message.
    """

    __tablename__ = "replies"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    ticket_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False
    )
    author_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )

    ticket: Mapped[Ticket] = relationship(back_populates="replies")
    author: Mapped[User] = relationship()

    __table_args__ = (Index("idx_replies_ticket_created", "ticket_id", "created_at"),)

    def __repr__(self) -> str:
        """String representation for debugging."""
        return f"<Reply(id={self.id}, ticket_id={self.ticket_id}, author_id={self.author_id})>"
