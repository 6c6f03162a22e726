"""
Tests for Ticket Authorization Engine.

Tests the access predicates, the OPEN -> CLOSED state machine and the
conversation shape of ticket detail.
"""

from uuid import uuid4

import pytest

from supportdesk.exceptions import ForbiddenError, NotFoundError
from supportdesk.models.api import Role, TicketStatus
from supportdesk.services.realtime import ConnectionManager, RealtimeNotifier
from supportdesk.services.tickets import (
    TicketAuthorizationEngine,
    can_access_ticket,
    can_close_ticket,
)


class TestPredicates:
    """Tests for can_access_ticket and can_close_ticket."""

    @pytest.mark.asyncio
    async def test_access(self, ticket_store, customer, other_customer, agent):
        """Owner and agents may access; strangers and anonymous may not."""
        ticket = await ticket_store.create("Billing", customer, "Help")

        assert can_access_ticket(customer, ticket) is True
        assert can_access_ticket(agent, ticket) is True
        assert can_access_ticket(other_customer, ticket) is False
        assert can_access_ticket(None, ticket) is False

    @pytest.mark.asyncio
    async def test_assigned_user_has_access(self, ticket_store, customer, other_customer):
        """The assignee may access even without the agent role."""
        ticket = await ticket_store.create("Billing", customer, "Help")
        ticket.assigned_to_id = other_customer.id
        assert can_access_ticket(other_customer, ticket) is True

    @pytest.mark.asyncio
    async def test_close(self, customer, agent):
        """Only agents may change status."""
        assert can_close_ticket(agent) is True
        assert can_close_ticket(customer) is False
        assert can_close_ticket(None) is False


class TestCreateAndList:
    """Tests for create and list_tickets."""

    @pytest.mark.asyncio
    async def test_create_opens_ticket_with_first_reply(
        self, ticket_engine: TicketAuthorizationEngine, customer
    ):
        """A new ticket is OPEN and its message is the first reply."""
        created = await ticket_engine.create("Billing", "Help", customer.id)

        assert created.status is TicketStatus.OPEN
        assert created.user_id == customer.id
        assert created.user_email == customer.email

        detail = await ticket_engine.get_one(created.id, customer.id)
        assert detail.ticket.message == "Help"
        assert detail.ticket.replies == []

    @pytest.mark.asyncio
    async def test_create_for_unknown_customer(self, ticket_engine: TicketAuthorizationEngine):
        """Tickets need an existing customer."""
        with pytest.raises(NotFoundError):
            await ticket_engine.create("Billing", "Help", uuid4())

    @pytest.mark.asyncio
    async def test_customer_sees_own_tickets(
        self, ticket_engine: TicketAuthorizationEngine, customer, other_customer
    ):
        """Customers list only their tickets."""
        mine = await ticket_engine.create("Mine", "m", customer.id)
        await ticket_engine.create("Theirs", "t", other_customer.id)

        listing = await ticket_engine.list_tickets(customer.id)
        assert [t.id for t in listing.tickets] == [mine.id]

    @pytest.mark.asyncio
    async def test_agent_sees_all_recent_first(
        self, ticket_engine: TicketAuthorizationEngine, customer, other_customer, agent
    ):
        """Agents list every ticket, most recently updated first."""
        first = await ticket_engine.create("First", "1", customer.id)
        second = await ticket_engine.create("Second", "2", other_customer.id)

        listing = await ticket_engine.list_tickets(agent.id)
        assert [t.id for t in listing.tickets] == [second.id, first.id]

        await ticket_engine.add_reply(first.id, "bump", agent.id)
        listing = await ticket_engine.list_tickets(agent.id)
        assert [t.id for t in listing.tickets] == [first.id, second.id]
        assert listing.tickets[0].user_name == "Casey"

    @pytest.mark.asyncio
    async def test_unknown_name_placeholder(
        self, ticket_engine: TicketAuthorizationEngine, user_store, agent
    ):
        """Customers without a first name list as Unknown."""
        nameless = await user_store.create("nameless@example.com")
        await ticket_engine.create("Anon", "a", nameless.id)

        listing = await ticket_engine.list_tickets(agent.id)
        assert listing.tickets[0].user_name == "Unknown"


class TestGetOne:
    """Tests for get_one."""

    @pytest.mark.asyncio
    async def test_conversation_shape(
        self, ticket_engine: TicketAuthorizationEngine, customer, agent
    ):
        """First reply is the message, the rest are replies in order."""
        created = await ticket_engine.create("Billing", "Help", customer.id)
        await ticket_engine.add_reply(created.id, "Looking into it", agent.id)
        await ticket_engine.add_reply(created.id, "Thanks", customer.id)

        detail = await ticket_engine.get_one(created.id, agent.id)

        assert detail.id == customer.id
        assert detail.first_name == "Casey"
        assert detail.ticket.message == "Help"
        assert [r.content for r in detail.ticket.replies] == ["Looking into it", "Thanks"]
        assert detail.ticket.replies[0].author.role is Role.AGENT
        assert detail.ticket.replies[0].author.name == "Alex"

    @pytest.mark.asyncio
    async def test_stranger_forbidden(
        self, ticket_engine: TicketAuthorizationEngine, customer, other_customer
    ):
        """Other customers cannot read the ticket."""
        created = await ticket_engine.create("Billing", "Help", customer.id)
        with pytest.raises(ForbiddenError):
            await ticket_engine.get_one(created.id, other_customer.id)

    @pytest.mark.asyncio
    async def test_missing_ticket(self, ticket_engine: TicketAuthorizationEngine, customer):
        """Unknown ids are NotFound."""
        with pytest.raises(NotFoundError):
            await ticket_engine.get_one(uuid4(), customer.id)


class TestReplies:
    """Tests for add_reply."""

    @pytest.mark.asyncio
    async def test_stranger_cannot_reply(
        self, ticket_engine: TicketAuthorizationEngine, customer, other_customer
    ):
        """Non-parties are forbidden."""
        created = await ticket_engine.create("Billing", "Help", customer.id)
        with pytest.raises(ForbiddenError):
            await ticket_engine.add_reply(created.id, "hi", other_customer.id)

    @pytest.mark.asyncio
    async def test_reply_to_missing_ticket(
        self, ticket_engine: TicketAuthorizationEngine, customer
    ):
        """Unknown ids are NotFound."""
        with pytest.raises(NotFoundError):
            await ticket_engine.add_reply(uuid4(), "hi", customer.id)

    @pytest.mark.asyncio
    async def test_closed_ticket_rejects_replies(
        self, ticket_engine: TicketAuthorizationEngine, customer, agent
    ):
        """Nobody can reply once a ticket is closed."""
        created = await ticket_engine.create("Billing", "Help", customer.id)
        await ticket_engine.update_status(created.id, TicketStatus.CLOSED, agent.id)

        for author in (customer, agent):
            with pytest.raises(ForbiddenError) as exc_info:
                await ticket_engine.add_reply(created.id, "more", author.id)
            assert exc_info.value.message == "Cannot add replies to a closed ticket"


class TestUpdateStatus:
    """Tests for update_status."""

    @pytest.mark.asyncio
    async def test_customer_cannot_change_status(
        self, ticket_engine: TicketAuthorizationEngine, customer
    ):
        """Role is checked first."""
        created = await ticket_engine.create("Billing", "Help", customer.id)
        with pytest.raises(ForbiddenError):
            await ticket_engine.update_status(created.id, TicketStatus.CLOSED, customer.id)

    @pytest.mark.asyncio
    async def test_role_checked_before_existence(
        self, ticket_engine: TicketAuthorizationEngine, customer
    ):
        """A customer gets Forbidden even for a missing ticket."""
        with pytest.raises(ForbiddenError):
            await ticket_engine.update_status(uuid4(), TicketStatus.CLOSED, customer.id)

    @pytest.mark.asyncio
    async def test_agent_missing_ticket(self, ticket_engine: TicketAuthorizationEngine, agent):
        """Agents get NotFound for unknown ids."""
        with pytest.raises(NotFoundError):
            await ticket_engine.update_status(uuid4(), TicketStatus.CLOSED, agent.id)

    @pytest.mark.asyncio
    async def test_closed_is_terminal(
        self, ticket_engine: TicketAuthorizationEngine, customer, agent
    ):
        """Re-closing is accepted; not even an agent can reopen."""
        created = await ticket_engine.create("Billing", "Help", customer.id)
        await ticket_engine.update_status(created.id, TicketStatus.CLOSED, agent.id)

        again = await ticket_engine.update_status(created.id, TicketStatus.CLOSED, agent.id)
        assert again.status is TicketStatus.CLOSED

        with pytest.raises(ForbiddenError) as exc_info:
            await ticket_engine.update_status(created.id, TicketStatus.OPEN, agent.id)
        assert exc_info.value.message == "Cannot reopen a closed ticket"

        detail = await ticket_engine.get_one(created.id, agent.id)
        assert detail.ticket.status is TicketStatus.CLOSED

    @pytest.mark.asyncio
    async def test_can_watch(
        self, ticket_engine: TicketAuthorizationEngine, customer, other_customer, agent
    ):
        """Room watching follows ticket access."""
        created = await ticket_engine.create("Billing", "Help", customer.id)

        assert await ticket_engine.can_watch(created.id, customer.id) is True
        assert await ticket_engine.can_watch(created.id, agent.id) is True
        assert await ticket_engine.can_watch(created.id, other_customer.id) is False
        assert await ticket_engine.can_watch(uuid4(), agent.id) is False


class TestCloseScenario:
    """Customer opens, agent closes while a watcher is in the room."""

    @pytest.mark.asyncio
    async def test_close_broadcast_then_reply_forbidden(
        self, ticket_engine: TicketAuthorizationEngine, customer, agent, connection_factory
    ):
        notifier = RealtimeNotifier(ConnectionManager())
        watcher = connection_factory(customer)

        created = await ticket_engine.create("Billing", "Help", customer.id)
        assert created.status is TicketStatus.OPEN
        detail = await ticket_engine.get_one(created.id, customer.id)
        assert detail.ticket.message == "Help"

        await notifier.join(watcher, created.id)

        result = await ticket_engine.update_status(created.id, TicketStatus.CLOSED, agent.id)
        await notifier.notify_status_change(created.id, result)

        watcher.sender.send_json.assert_awaited_with(
            {"event": "statusChanged", "data": {"id": str(created.id), "status": "CLOSED"}}
        )

        with pytest.raises(ForbiddenError):
            await ticket_engine.add_reply(created.id, "still there?", customer.id)
