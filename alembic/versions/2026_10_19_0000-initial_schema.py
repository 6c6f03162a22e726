"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, tickets and replies."""

    # ========================================================================
    # Create users table
    # ========================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('hash', sa.String(255), nullable=True),
        sa.Column('hashed_rt', sa.String(64), nullable=True),
        sa.Column('google_id', sa.String(255), nullable=True),
        sa.Column('is_google_account', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('provider', sa.String(50), nullable=True),
        sa.Column('first_name', sa.String(255), nullable=True),
        sa.Column('last_name', sa.String(255), nullable=True),
        sa.Column('display_name', sa.String(255), nullable=True),
        sa.Column('profile_image', sa.String(2048), nullable=True),
        sa.Column('locale', sa.String(20), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='CUSTOMER'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        # Constraints
        sa.CheckConstraint("role IN ('CUSTOMER', 'AGENT')", name='ck_users_role'),
        sa.UniqueConstraint('email', name='uq_users_email'),
    )

    op.create_index('idx_users_google_id', 'users', ['google_id'])

    # ========================================================================
    # Create tickets table
    # ========================================================================
    op.create_table(
        'tickets',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('subject', sa.String(255), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='OPEN'),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('assigned_to_id', sa.Uuid(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        # Constraints
        sa.CheckConstraint("status IN ('OPEN', 'CLOSED')", name='ck_tickets_status'),
        sa.ForeignKeyConstraint(['customer_id'], ['users.id'], name='fk_tickets_customer', ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['assigned_to_id'], ['users.id'], name='fk_tickets_assigned_to', ondelete='SET NULL'),
    )

    op.create_index('idx_tickets_customer_id', 'tickets', ['customer_id'])
    op.create_index('idx_tickets_updated_at', 'tickets', ['updated_at'])

    # ========================================================================
    # Create replies table
    # ========================================================================
    op.create_table(
        'replies',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('ticket_id', sa.Uuid(), nullable=False),
        sa.Column('author_id', sa.Uuid(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        # Constraints
        sa.ForeignKeyConstraint(['ticket_id'], ['tickets.id'], name='fk_replies_ticket', ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['author_id'], ['users.id'], name='fk_replies_author', ondelete='RESTRICT'),
    )

    op.create_index('idx_replies_ticket_created', 'replies', ['ticket_id', 'created_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('idx_replies_ticket_created', table_name='replies')
    op.drop_table('replies')
    op.drop_index('idx_tickets_updated_at', table_name='tickets')
    op.drop_index('idx_tickets_customer_id', table_name='tickets')
    op.drop_table('tickets')
    op.drop_index('idx_users_google_id', table_name='users')
    op.drop_table('users')
