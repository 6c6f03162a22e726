"""
Realtime Notifier - Per-ticket rooms and typed event fan-out.

Room membership is in-memory and per process. The notifier only talks to a
RoomBroadcaster, so a multi-instance deployment can swap ConnectionManager for
one backed by an external pub/sub bus.

Delivery is best effort to members present at publish time: no acks, no
backlog for late joiners. A member whose send fails is evicted.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import UUID, uuid4

from structlog import get_logger

from supportdesk.models.api import ReplyResponse, TicketStatusResponse
from supportdesk.models.domain import TokenClaims
from supportdesk.observability.metrics import metrics

logger = get_logger(__name__)

USER_JOINED = "userJoined"
NEW_REPLY = "newReply"
STATUS_CHANGED = "statusChanged"


class JsonSender(Protocol):
    """Anything that can push a JSON frame (a Starlette WebSocket)."""

    async def send_json(self, data: Any) -> None: ...


@dataclass(eq=False)
class Connection:
    """An accepted realtime connection and the claims stamped on it at accept time."""

    sender: JsonSender
    claims: TokenClaims
    id: str = field(default_factory=lambda: uuid4().hex)

    async def emit(self, event: str, data: Any) -> None:
        """Send one event frame."""
        await self.sender.send_json({"event": event, "data": data})


def room_name(ticket_id: UUID | str) -> str:
    """Room key for a ticket."""
    return f"ticket:{ticket_id}"


class RoomBroadcaster(Protocol):
    """Room membership plus publish."""

    def add(self, room: str, connection: Connection) -> None: ...

    def discard(self, room: str, connection: Connection) -> None: ...

    def discard_everywhere(self, connection: Connection) -> list[str]: ...

    def members(self, room: str) -> list[Connection]: ...

    async def publish(
        self, room: str, event: str, data: Any, exclude: Connection | None = None
    ) -> int: ...


class ConnectionManager:
    """In-memory RoomBroadcaster for a single process."""

    def __init__(self) -> None:
        self._rooms: dict[str, set[Connection]] = {}
        self._memberships: dict[Connection, set[str]] = {}

    def add(self, room: str, connection: Connection) -> None:
        self._rooms.setdefault(room, set()).add(connection)
        self._memberships.setdefault(connection, set()).add(room)

    def discard(self, room: str, connection: Connection) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection)
            if not members:
                self._rooms.pop(room, None)
        rooms = self._memberships.get(connection)
        if rooms is not None:
            rooms.discard(room)
            if not rooms:
                self._memberships.pop(connection, None)

    def discard_everywhere(self, connection: Connection) -> list[str]:
        rooms = list(self._memberships.get(connection, ()))
        for room in rooms:
            self.discard(room, connection)
        return rooms

    def members(self, room: str) -> list[Connection]:
        return list(self._rooms.get(room, ()))

    async def publish(
        self, room: str, event: str, data: Any, exclude: Connection | None = None
    ) -> int:
        """Send to every current member except exclude. Returns deliveries."""
        delivered = 0
        for connection in self.members(room):
            if connection is exclude:
                continue
            try:
                await connection.emit(event, data)
            except Exception as e:
                logger.warning(
                    "realtime_send_failed",
                    room=room,
                    event=event,
                    connection_id=connection.id,
                    error=str(e),
                )
                self.discard_everywhere(connection)
                continue
            delivered += 1
        metrics.realtime_events_total.labels(event=event).inc(delivered)
        return delivered


class RealtimeNotifier:
    """Joins, leaves and typed broadcasts for ticket rooms."""

    def __init__(self, broadcaster: RoomBroadcaster):
        self.broadcaster = broadcaster

    def connected(self, connection: Connection) -> None:
        """Record an accepted connection."""
        metrics.realtime_connections.inc()
        logger.info(
            "realtime_connected",
            connection_id=connection.id,
            user_id=str(connection.claims.sub),
        )

    def disconnected(self, connection: Connection) -> None:
        """Drop a closed connection from every room."""
        rooms = self.broadcaster.discard_everywhere(connection)
        metrics.realtime_connections.dec()
        logger.info("realtime_disconnected", connection_id=connection.id, rooms=rooms)

    async def join(self, connection: Connection, ticket_id: UUID | str) -> None:
        """Add connection to the ticket's room and tell the others."""
        room = room_name(ticket_id)
        self.broadcaster.add(room, connection)
        logger.info("realtime_room_joined", connection_id=connection.id, room=room)
        await self.broadcaster.publish(
            room,
            USER_JOINED,
            {
                "message": "A new user joined the conversation",
                "timestamp": datetime.now(UTC).isoformat(),
            },
            exclude=connection,
        )

    def leave(self, connection: Connection, ticket_id: UUID | str) -> None:
        """Remove connection from the ticket's room."""
        room = room_name(ticket_id)
        self.broadcaster.discard(room, connection)
        logger.info("realtime_room_left", connection_id=connection.id, room=room)

    async def notify_new_reply(self, ticket_id: UUID, reply: ReplyResponse) -> int:
        """Broadcast newReply to the ticket's room."""
        return await self.broadcaster.publish(
            room_name(ticket_id), NEW_REPLY, reply.model_dump(mode="json", by_alias=True)
        )

    async def notify_status_change(self, ticket_id: UUID, status: TicketStatusResponse) -> int:
        """Broadcast statusChanged to the ticket's room."""
        return await self.broadcaster.publish(
            room_name(ticket_id), STATUS_CHANGED, status.model_dump(mode="json", by_alias=True)
        )


# Global singleton (one per process)
notifier = RealtimeNotifier(ConnectionManager())


def get_notifier() -> RealtimeNotifier:
    """Get the process-wide notifier."""
    return notifier
