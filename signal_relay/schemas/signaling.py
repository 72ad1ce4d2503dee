"""Data contracts for signaling frames and room introspection."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

JOIN_ROOM = "join-room"
LEAVE_ROOM = "leave-room"
SIGNAL = "signal"
CONNECTED = "connected"
PEER_JOINED = "peer-joined"
PEER_LEFT = "peer-left"
ERROR = "error"

# Frame types sent by clients of the flat broadcast relay; forwarded to the whole room.
LEGACY_BROADCAST_TYPES = frozenset({"offer", "answer", "ice", "candidate"})


class _ClientFrame(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class JoinRoomMessage(_ClientFrame):
    room_id: str = Field(..., alias="roomId", min_length=1, description="Room to join or create")


class SignalMessage(_ClientFrame):
    to: str = Field(..., min_length=1, description="Connection id of the recipient")
    signal: Any = Field(..., description="Opaque SDP or ICE payload")


class LeaveRoomMessage(_ClientFrame):
    pass


def connected(peer_id: str) -> dict[str, Any]:
    return {"type": CONNECTED, "peerId": peer_id}


def peer_joined(peer_id: str) -> dict[str, Any]:
    return {"type": PEER_JOINED, "peerId": peer_id}


def peer_left(peer_id: str) -> dict[str, Any]:
    return {"type": PEER_LEFT, "peerId": peer_id}


def relayed_signal(sender_id: str, payload: Any) -> dict[str, Any]:
    return {"type": SIGNAL, "from": sender_id, "signal": payload}


def error(message: str) -> dict[str, Any]:
    return {"type": ERROR, "message": message}


class RoomSummary(BaseModel):
    room_id: str = Field(..., description="Room key")
    members: int = Field(..., ge=1, description="Number of joined connections")


class RoomListResponse(BaseModel):
    connections: int = Field(..., ge=0, description="Open signaling connections")
    rooms: list[RoomSummary]
