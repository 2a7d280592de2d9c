from typing import Optional
from fastapi import WebSocket, status
import logging

from revnet.core.errors import UnauthenticatedException
from revnet.websockets.collaborators import AuthVerifier
from revnet.websockets.session_registry import Identity

logger = logging.getLogger(__name__)


def extract_token(websocket: WebSocket) -> Optional[str]:
    """
    Token from the ``Authorization: Bearer`` header, or the ``token`` query
    parameter for browser clients that cannot set headers.

    Returns an empty string for a header that is present but malformed so the
    caller rejects it instead of treating the socket as anonymous.
    """
    header = websocket.headers.get("authorization")
    if header:
        if not header.startswith("Bearer "):
            return ""
        return header[len("Bearer "):].strip()

    token = websocket.query_params.get("token")
    return token.strip() if token is not None else None


async def authenticate_websocket(
    websocket: WebSocket,
    token: str,
    verifier: AuthVerifier
) -> Optional[Identity]:
    """
    Verify a handshake token.

    Returns:
        Identity: resolved identity, or None after closing the socket with a
        policy-violation code when the token is rejected
    """
    try:
        if not token:
            logger.warning("Malformed Authorization header for WebSocket connection")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return None

        identity = await verifier.verify(token)
        logger.info(f"WebSocket authentication successful for user: {identity.user_id}")
        return identity

    except UnauthenticatedException as e:
        logger.warning(f"WebSocket authentication rejected: {e.message}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return None
    except Exception as e:
        logger.error(f"WebSocket authentication error: {e}")
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return None
