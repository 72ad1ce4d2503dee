"""In-memory WebRTC signaling relay."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional
from uuid import uuid4

from pydantic import ValidationError

from ..core.config import settings
from ..schemas import signaling as frames
from .rooms import RoomTable

logger = logging.getLogger(__name__)

SendCallable = Callable[[dict], Awaitable[None]]


@dataclass(slots=True)
class SignalingConnection:
    """Connection wrapper for signaling participants.

    Frames are queued by the relay and written to the transport by ``pump`` so
    that fan-out never waits on a slow peer while each peer still sees frames
    in the order they were produced. A peer that lets its bounded outbox fill
    up is marked ``overflowed`` and its writer stops.
    """

    connection_id: str
    send: SendCallable
    outbox: asyncio.Queue = field(default_factory=asyncio.Queue)
    closed: bool = False
    overflowed: bool = False

    def deliver(self, message: dict) -> None:
        if self.closed:
            return
        try:
            self.outbox.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning("Outbox full for %s, closing slow connection", self.connection_id)
            self.overflowed = True
            self._shutdown()

    def close(self) -> None:
        if not self.closed:
            self._shutdown()

    def _shutdown(self) -> None:
        self.closed = True
        while not self.outbox.empty():
            self.outbox.get_nowait()
        self.outbox.put_nowait(None)

    async def pump(self) -> None:
        """Write queued frames to the transport until the connection closes."""

        while True:
            message = await self.outbox.get()
            if message is None:
                return
            try:
                await self.send(message)
            except Exception as exc:  # noqa: BLE001 - the receive loop owns cleanup
                logger.debug("Dropping writer for %s after send failure: %s", self.connection_id, exc)
                self.closed = True
                return


class SignalingManager:
    """Track room membership and route signaling frames between participants."""

    def __init__(
        self,
        report_unknown_targets: Optional[bool] = None,
        outbox_limit: Optional[int] = None,
    ) -> None:
        self._rooms = RoomTable()
        self._connections: Dict[str, SignalingConnection] = {}
        self._lock = asyncio.Lock()
        if report_unknown_targets is None:
            report_unknown_targets = settings.report_unknown_targets
        self._report_unknown_targets = report_unknown_targets
        self._outbox_limit = settings.outbox_limit if outbox_limit is None else outbox_limit

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def get(self, connection_id: str) -> Optional[SignalingConnection]:
        return self._connections.get(connection_id)

    def room_of(self, connection_id: str) -> Optional[str]:
        return self._rooms.room_of(connection_id)

    def rooms(self) -> dict[str, list[str]]:
        """Return a copy of the room table."""

        return self._rooms.snapshot()

    async def connect(self, send: SendCallable, connection_id: Optional[str] = None) -> SignalingConnection:
        """Register a new room-less connection and greet it with its id."""

        connection = SignalingConnection(
            connection_id=connection_id or uuid4().hex,
            send=send,
            outbox=asyncio.Queue(maxsize=self._outbox_limit),
        )
        async with self._lock:
            self._connections[connection.connection_id] = connection
        connection.deliver(frames.connected(connection.connection_id))
        logger.info("Signaling connection %s opened", connection.connection_id)
        return connection

    async def join(self, connection_id: str, room_id: Any) -> Optional[list[str]]:
        """Add the connection to ``room_id`` and introduce it to the existing members.

        Returns the members that were present before the join, or ``None`` when
        the request was ignored.
        """

        if not isinstance(room_id, str) or not room_id:
            logger.debug("Ignoring join without a room id from %s", connection_id)
            return None

        async with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return None

            current = self._rooms.room_of(connection_id)
            if current == room_id:
                return [member for member in self._rooms.members(room_id) if member != connection_id]
            if current is not None:
                self._leave_locked(connection_id)

            existing = self._rooms.add(room_id, connection_id)
            for member_id in existing:
                self._deliver(member_id, frames.peer_joined(connection_id))
                connection.deliver(frames.peer_joined(member_id))

        if current is not None:
            logger.info("Connection %s moved from room %s to %s", connection_id, current, room_id)
        else:
            logger.info("Connection %s joined room %s (%d existing)", connection_id, room_id, len(existing))
        return existing

    async def signal(self, sender_id: str, target_id: str, payload: Any) -> bool:
        """Relay ``payload`` to ``target_id`` within the sender's room; returns whether it was queued."""

        async with self._lock:
            room = self._rooms.room_of(sender_id)
            if room is None:
                logger.debug("Ignoring signal from %s outside of a room", sender_id)
                return False

            target = None
            if target_id != sender_id and self._rooms.room_of(target_id) == room:
                target = self._connections.get(target_id)

            if target is None:
                logger.debug("Dropping signal from %s to absent peer %s", sender_id, target_id)
                if self._report_unknown_targets:
                    self._deliver(sender_id, frames.error(f"Peer {target_id} is not in room {room}"))
                return False

            target.deliver(frames.relayed_signal(sender_id, payload))
            return True

    async def broadcast(self, sender_id: str, message: dict) -> int:
        """Send a frame to every other member of the sender's room, tagged with the sender.

        Connections that never joined a room share one flat namespace, so frames
        from a room-less sender reach every other room-less connection.
        """

        async with self._lock:
            if sender_id not in self._connections:
                return 0

            room = self._rooms.room_of(sender_id)
            if room is None:
                candidates = [member for member in self._connections if self._rooms.room_of(member) is None]
            else:
                candidates = self._rooms.members(room)

            envelope = {**message, "from": sender_id}
            recipients = [member for member in candidates if member != sender_id]
            for member_id in recipients:
                self._deliver(member_id, envelope)
            return len(recipients)

    async def leave(self, connection_id: str) -> Optional[str]:
        """Remove the connection from its room, keeping the connection open."""

        async with self._lock:
            room = self._leave_locked(connection_id)

        if room is not None:
            logger.info("Connection %s left room %s", connection_id, room)
        return room

    async def disconnect(self, connection_id: str) -> None:
        """Tear down a connection; safe to call repeatedly and without a prior join."""

        async with self._lock:
            connection = self._connections.pop(connection_id, None)
            room = self._leave_locked(connection_id)

        if connection is None:
            return
        connection.close()
        if room is not None:
            logger.info("Signaling connection %s closed, left room %s", connection_id, room)
        else:
            logger.info("Signaling connection %s closed", connection_id)

    async def dispatch(self, connection_id: str, message: dict) -> None:
        """Route one decoded client frame by its ``type``."""

        message_type = message.get("type")
        if not isinstance(message_type, str):
            message_type = None
        try:
            if message_type == frames.JOIN_ROOM:
                try:
                    request = frames.JoinRoomMessage.model_validate(message)
                except ValidationError:
                    logger.debug("Ignoring malformed join-room from %s", connection_id)
                    return
                await self.join(connection_id, request.room_id)
            elif message_type == frames.SIGNAL:
                try:
                    relay = frames.SignalMessage.model_validate(message)
                except ValidationError:
                    logger.debug("Ignoring malformed signal from %s", connection_id)
                    return
                await self.signal(connection_id, relay.to, relay.signal)
            elif message_type == frames.LEAVE_ROOM:
                await self.leave(connection_id)
            elif message_type in frames.LEGACY_BROADCAST_TYPES:
                await self.broadcast(connection_id, message)
            else:
                logger.debug("Unsupported frame type %r from %s", message_type, connection_id)
                self._deliver(connection_id, frames.error(f"Unsupported message type: {message_type!r}"))
        except Exception:  # noqa: BLE001 - a faulty frame must not affect other connections
            logger.exception("Signaling handler failed for connection %s", connection_id)
            self._deliver(connection_id, frames.error("Internal relay error"))

    def _leave_locked(self, connection_id: str) -> Optional[str]:
        removed = self._rooms.remove(connection_id)
        if removed is None:
            return None

        room, remaining = removed
        notice = frames.peer_left(connection_id)
        for member_id in remaining:
            self._deliver(member_id, notice)
        return room

    def _deliver(self, connection_id: str, message: dict) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.deliver(message)


manager = SignalingManager()
