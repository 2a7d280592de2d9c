import logging
from typing import Any, Dict, Optional

from revnet.core.errors import NotFoundException
from revnet.websockets.broadcaster import EventBroadcaster
from revnet.websockets.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class SignalingRelay:
    """
    Point-to-point forwarding addressed by user id, optionally scoped to a room.

    Used for voice negotiation (offer / answer / ICE candidate) and for
    friend and DM notifications. An offline target is not an error: the
    payload is dropped and nothing is reported back to the sender.
    """

    def __init__(self, registry: SessionRegistry, broadcaster: EventBroadcaster):
        self.registry = registry
        self.broadcaster = broadcaster
        self.rooms = broadcaster.rooms

    async def relay(
        self,
        from_connection_id: str,
        to_user_id: str,
        event: str,
        payload: Dict[str, Any],
        room: Optional[str] = None
    ) -> int:
        """
        Forward ``payload`` to the live sessions of ``to_user_id``, tagged with the sender.

        With ``room`` set only the target's sessions in that room receive it;
        a target that is online but in none of them raises NotFoundException.
        """
        sender = self.registry.get(from_connection_id)
        if sender is None or sender.identity is None:
            return 0

        body = {
            **payload,
            "fromUserId": sender.identity.user_id,
            "fromUsername": sender.identity.username,
        }
        return await self._send_to_user(to_user_id, event, body, exclude=from_connection_id, room=room)

    async def notify_user(self, user_id: str, event: str, payload: Dict[str, Any]) -> int:
        """Deliver a server-originated event to every live session of a user."""
        return await self._send_to_user(user_id, event, payload)

    async def _send_to_user(
        self,
        user_id: str,
        event: str,
        payload: Dict[str, Any],
        exclude: Optional[str] = None,
        room: Optional[str] = None
    ) -> int:
        targets = [
            connection for connection in self.registry.connections_for_user(user_id)
            if connection.connection_id != exclude
        ]
        if not targets:
            logger.debug(f"Dropping {event} for offline user {user_id}")
            return 0

        if room is not None:
            targets = [c for c in targets if self.rooms.is_member(c.connection_id, room)]
            if not targets:
                raise NotFoundException(f"User {user_id} is not in {room}")

        delivered = 0
        for connection in targets:
            if await self.broadcaster.send_to_connection(connection.connection_id, event, payload):
                delivered += 1
        return delivered
