"""Signaling WebSocket endpoint and room introspection."""
from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, WebSocket, status

from ..schemas import signaling as frames
from ..schemas.signaling import RoomListResponse, RoomSummary
from ..services.signaling import SignalingConnection, manager as signaling_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/rooms", response_model=RoomListResponse)
async def list_rooms() -> RoomListResponse:
    """Return the rooms that currently have members."""

    rooms = [
        RoomSummary(room_id=room_id, members=len(members))
        for room_id, members in signaling_manager.rooms().items()
    ]
    return RoomListResponse(connections=signaling_manager.connection_count, rooms=rooms)


@router.websocket("/signaling")
async def signaling_endpoint(websocket: WebSocket) -> None:
    """Relay room membership notices and SDP/ICE payloads between peers."""

    await websocket.accept()

    connection = await signaling_manager.connect(websocket.send_json)
    writer = asyncio.create_task(_write_frames(connection, websocket))

    try:
        while True:
            event = await websocket.receive()
            if event["type"] == "websocket.disconnect":
                break

            raw = event.get("text")
            if raw is None:
                raw = event.get("bytes") or b""
            try:
                message = json.loads(raw)
            except ValueError:
                logger.debug("Discarding non-JSON frame from %s", connection.connection_id)
                connection.deliver(frames.error("Malformed message"))
                continue
            if not isinstance(message, dict):
                connection.deliver(frames.error("Malformed message"))
                continue

            await signaling_manager.dispatch(connection.connection_id, message)
    finally:
        await signaling_manager.disconnect(connection.connection_id)
        writer.cancel()
        await asyncio.gather(writer, return_exceptions=True)


async def _write_frames(connection: SignalingConnection, websocket: WebSocket) -> None:
    await connection.pump()
    if connection.overflowed:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Signaling backlog exceeded")
