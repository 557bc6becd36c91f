"""Chat router providing the WebSocket endpoint and read-only REST views.

This module provides:
    - WebSocket /ws (and /): Real-time relay
    - GET /api/messages: Full message log (bearer token required)
    - GET /api/users: User directory as {id, name} pairs

Query parameters for the WebSocket:
    - token: Opaque credential (required)
    - userId: Identity label the threads are keyed by (required)
    - roomId: "global" (default) or a peer's userId
"""
import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Header, HTTPException, Query, WebSocket

from zerolink.auth.router import require_identity
from zerolink.errors import PersistenceFailure
from zerolink.store.schemas import GLOBAL_ROOM, MessageQuery

from .relay import get_relay

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
@router.websocket("/")
async def websocket_relay_endpoint(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    userId: Optional[str] = Query(None),
    roomId: str = Query(GLOBAL_ROOM),
) -> None:
    """Run one relay session.

    Missing or rejected credentials close the socket with code 4001; the
    client must re-authenticate rather than reconnect.
    """
    logger.info(f"[WS] New connection: userId={userId!r}, roomId={roomId!r}")
    await get_relay().lifecycle.serve(websocket, token, userId, roomId)


@router.get("/api/messages")
async def list_messages(authorization: Optional[str] = Header(None)) -> List[dict]:
    """Return every stored message, oldest first."""
    await require_identity(authorization)
    try:
        messages = await asyncio.to_thread(get_relay().store.find_messages, MessageQuery())
    except PersistenceFailure:
        raise HTTPException(status_code=500, detail="Failed to fetch messages")
    return [m.to_wire() for m in messages]


@router.get("/api/users")
async def list_users() -> List[dict]:
    """Return all known users; id and name are both the display name."""
    try:
        users = await asyncio.to_thread(get_relay().store.list_users)
    except PersistenceFailure:
        raise HTTPException(status_code=500, detail="Failed to fetch users")
    return [{"id": u.name, "name": u.name} for u in users]
