"""
Realtime gateway - WebSocket endpoint for live ticket rooms.

The credential is checked before accept; a refused handshake is closed with
code 4401 and no payload. Accepted clients send
{"event": "joinTicket" | "leaveTicket", "data": "<ticketId>"} and get an ack
frame with the same event name.
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from structlog import get_logger

from supportdesk.api.dependencies import get_realtime_notifier, get_token_codec
from supportdesk.config import get_settings
from supportdesk.db.session import get_session
from supportdesk.db.stores import TicketStore, UserStore
from supportdesk.exceptions import AccessDeniedError
from supportdesk.models.domain import Handshake
from supportdesk.observability.metrics import metrics
from supportdesk.observability.tracing import traced
from supportdesk.services.connection_auth import ConnectionAuthenticator, default_extractors
from supportdesk.services.realtime import Connection, RealtimeNotifier
from supportdesk.services.tickets import TicketAuthorizationEngine
from supportdesk.services.tokens import TokenCodec

logger = get_logger(__name__)
router = APIRouter()

WS_CLOSE_UNAUTHORIZED = 4401

JOIN_TICKET = "joinTicket"
LEAVE_TICKET = "leaveTicket"

# (ticket_id, user_id) -> may the user follow the ticket's room
JoinGate = Callable[[UUID, UUID], Awaitable[bool]]


def get_connection_authenticator(
    codec: TokenCodec = Depends(get_token_codec),
) -> ConnectionAuthenticator:
    """Authenticator over the standard carriers."""
    return ConnectionAuthenticator(codec, default_extractors(get_settings().access_cookie_name))


async def can_watch_ticket(ticket_id: UUID, user_id: UUID) -> bool:
    """Join gate backed by the ticket access predicate."""
    async with get_session() as session:
        engine = TicketAuthorizationEngine(UserStore(session), TicketStore(session))
        return await engine.can_watch(ticket_id, user_id)


def get_join_gate() -> JoinGate:
    """Join gate used by the gateway."""
    return can_watch_ticket


def handshake_from(websocket: WebSocket) -> Handshake:
    """Collect the credential carriers of an incoming socket."""
    auth: dict[str, str] = {}
    token = websocket.query_params.get("token")
    if token:
        auth["token"] = token
    return Handshake(auth=auth, headers={k.lower(): v for k, v in websocket.headers.items()})


def _ack(event: str, ok: bool, message: str) -> dict[str, Any]:
    return {"event": event, "data": {"status": "ok" if ok else "error", "message": message}}


async def handle_frame(
    frame: Any,
    connection: Connection,
    notifier: RealtimeNotifier,
    join_gate: JoinGate,
) -> dict[str, Any]:
    """Apply one client frame; returns the ack to send back."""
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        return _ack("error", False, "Malformed frame")

    event = frame["event"]
    if event not in (JOIN_TICKET, LEAVE_TICKET):
        return _ack(event, False, f"Unknown event: {event}")

    raw_id = frame.get("data")
    try:
        ticket_id = UUID(str(raw_id))
    except ValueError:
        return _ack(event, False, "Invalid ticket id")

    with traced(f"realtime.{event}", ticket_id=ticket_id, connection_id=connection.id):
        return await _apply(event, ticket_id, connection, notifier, join_gate)


async def _apply(
    event: str,
    ticket_id: UUID,
    connection: Connection,
    notifier: RealtimeNotifier,
    join_gate: JoinGate,
) -> dict[str, Any]:
    if event == LEAVE_TICKET:
        notifier.leave(connection, ticket_id)
        return _ack(event, True, f"Left ticket room: {ticket_id}")

    if get_settings().realtime_join_requires_access:
        try:
            allowed = await join_gate(ticket_id, connection.claims.sub)
        except Exception as e:
            metrics.record_error(type(e).__name__, "realtime_join_gate")
            logger.error(
                "realtime_join_gate_failed",
                connection_id=connection.id,
                ticket_id=str(ticket_id),
                exc_info=True,
            )
            return _ack(event, False, "Could not verify ticket access")
        if not allowed:
            logger.warning(
                "realtime_join_denied",
                connection_id=connection.id,
                ticket_id=str(ticket_id),
                user_id=str(connection.claims.sub),
            )
            return _ack(event, False, "Not authorized to access this ticket")

    await notifier.join(connection, ticket_id)
    return _ack(event, True, f"Joined ticket room: {ticket_id}")


@router.websocket("/ws")
async def websocket_endpoint(
    websocket: WebSocket,
    authenticator: ConnectionAuthenticator = Depends(get_connection_authenticator),
    notifier: RealtimeNotifier = Depends(get_realtime_notifier),
    join_gate: JoinGate = Depends(get_join_gate),
) -> None:
    """Authenticate, accept, then serve join/leave frames until the client goes."""
    try:
        claims = authenticator.authenticate(handshake_from(websocket))
    except AccessDeniedError:
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
        return

    await websocket.accept()
    connection = Connection(sender=websocket, claims=claims)
    notifier.connected(connection)

    try:
        while True:
            text = await websocket.receive_text()
            try:
                frame = json.loads(text)
            except ValueError:
                frame = None
            await websocket.send_json(await handle_frame(frame, connection, notifier, join_gate))
    except WebSocketDisconnect as e:
        logger.debug("realtime_client_closed", connection_id=connection.id, code=e.code)
    finally:
        notifier.disconnected(connection)
