import logging
from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketDisconnect, status

from revnet.core.logging import clear_connection_context, set_connection_context
from revnet.utils.auth import get_current_identity
from revnet.websockets.auth import authenticate_websocket, extract_token
from revnet.websockets.connection_manager import ConnectionManager
from revnet.websockets.handlers import WebSocketMessageHandler
from revnet.websockets.session_registry import Identity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["WebSocket"])


@router.websocket("/revnet")
async def websocket_endpoint(websocket: WebSocket):
    """
    RevNet gateway connection.

    Frames are ``{"event": ..., "data": {...}}`` in both directions. A
    token may be given in the Authorization header or the ``token`` query
    parameter; without one the socket must send ``authenticate`` first.
    """
    manager: ConnectionManager = websocket.app.state.connection_manager
    handler: WebSocketMessageHandler = websocket.app.state.message_handler

    identity = None
    token = extract_token(websocket)
    if token is not None:
        identity = await authenticate_websocket(websocket, token, manager.auth_verifier)
        if identity is None:
            return

    connection = await manager.connect(websocket, identity)
    connection_id = connection.connection_id
    set_connection_context(connection_id, connection.user_id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", status.WS_1000_NORMAL_CLOSURE), message.get("reason"))

            text = message.get("text")
            if text is None:
                await handler.handle_binary(connection_id)
            else:
                await handler.handle_text(connection_id, text)
            if connection.user_id:
                set_connection_context(connection_id, connection.user_id)

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: connection {connection_id} (user {connection.user_id})")

    except Exception as e:
        logger.error(f"Unexpected error in WebSocket connection {connection_id}: {e}", exc_info=True)

    finally:
        await manager.disconnect(connection_id)
        clear_connection_context()


@router.get("/rooms/{room_key}/status")
async def get_room_status(
    room_key: str,
    request: Request,
    identity: Identity = Depends(get_current_identity)
):
    """Live members of a room (``server:<id>``, ``channel:<id>`` or ``voice:<id>``)."""
    manager: ConnectionManager = request.app.state.connection_manager
    try:
        room_status = manager.room_status(room_key)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Unknown room"
        )
    return room_status.to_wire()
