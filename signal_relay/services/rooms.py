"""Room membership table for the signaling relay."""
from __future__ import annotations

from typing import Dict, Iterator, Optional


class SignalingError(RuntimeError):
    """Base error for relay state violations."""


class RoomMembershipError(SignalingError):
    """Raised when a connection would end up in more than one room."""


class RoomTable:
    """Mapping of room key to the ordered members of that room.

    A room only exists while it has at least one member, and every connection
    appears in at most one room. Members keep their join order so that
    notifications can be issued in the order joins were processed.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Dict[str, None]] = {}
        self._membership: Dict[str, str] = {}

    def add(self, room: str, connection_id: str) -> list[str]:
        """Add a connection to the room and return the members that were already present."""

        current = self._membership.get(connection_id)
        if current is not None:
            raise RoomMembershipError(f"connection {connection_id} is already in room {current!r}")

        members = self._rooms.setdefault(room, {})
        existing = list(members)
        members[connection_id] = None
        self._membership[connection_id] = room
        return existing

    def remove(self, connection_id: str) -> Optional[tuple[str, list[str]]]:
        """Drop the connection's membership, deleting the room once it is empty.

        Returns the room key and its remaining members, or ``None`` when the
        connection was not in a room.
        """

        room = self._membership.pop(connection_id, None)
        if room is None:
            return None

        members = self._rooms.get(room, {})
        members.pop(connection_id, None)
        if not members:
            self._rooms.pop(room, None)
        return room, list(members)

    def members(self, room: str) -> list[str]:
        return list(self._rooms.get(room, ()))

    def room_of(self, connection_id: str) -> Optional[str]:
        return self._membership.get(connection_id)

    def snapshot(self) -> dict[str, list[str]]:
        return {room: list(members) for room, members in self._rooms.items()}

    def __contains__(self, room: object) -> bool:
        return room in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._rooms))
