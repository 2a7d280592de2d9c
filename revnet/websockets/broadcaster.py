import asyncio
import logging
import weakref
from typing import Any, Dict, Optional

from revnet.websockets.room_manager import RoomMembershipManager
from revnet.websockets.session_registry import Connection, SessionRegistry

logger = logging.getLogger(__name__)


def make_frame(event: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"event": event, "data": payload}


class EventBroadcaster:
    """
    Best-effort delivery of events to rooms and single connections.

    Each room has its own lock held for a whole fan-out, so two broadcasts
    to the same room reach every member in call order. There is no retry
    and nothing is queued for connections that are gone.
    """

    def __init__(self, registry: SessionRegistry, rooms: RoomMembershipManager):
        self.registry = registry
        self.rooms = rooms
        self._room_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._room_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._room_locks[key] = lock
        return lock

    async def broadcast_to_room(self, key: str, event: str, payload: Dict[str, Any]) -> int:
        """Deliver to every live member of the room; returns the delivery count."""
        return await self._fan_out(key, event, payload)

    async def broadcast_except(
        self,
        key: str,
        exclude_connection_id: str,
        event: str,
        payload: Dict[str, Any]
    ) -> int:
        """Same as broadcast_to_room but never delivers to ``exclude_connection_id``."""
        return await self._fan_out(key, event, payload, exclude=exclude_connection_id)

    async def send_to_connection(self, connection_id: str, event: str, payload: Dict[str, Any]) -> bool:
        connection = self.registry.get(connection_id)
        if connection is None or not connection.is_live:
            return False
        return await self._deliver(connection, make_frame(event, payload))

    async def _fan_out(
        self,
        key: str,
        event: str,
        payload: Dict[str, Any],
        exclude: Optional[str] = None
    ) -> int:
        frame = make_frame(event, payload)
        lock = self._lock_for(key)
        delivered = 0

        async with lock:
            # snapshot: members joining mid fan-out do not get this event
            for connection_id in sorted(self.rooms.members(key)):
                if connection_id == exclude:
                    continue
                connection = self.registry.get(connection_id)
                if connection is None or not connection.is_live:
                    continue
                if await self._deliver(connection, frame):
                    delivered += 1

        logger.debug(f"Broadcast {event} to {key}: {delivered} deliveries")
        return delivered

    async def _deliver(self, connection: Connection, frame: Dict[str, Any]) -> bool:
        try:
            await connection.websocket.send_json(frame)
            return True
        except Exception as e:
            # the owning receive loop will notice the disconnect and clean up
            logger.warning(f"Failed to send {frame['event']} to connection {connection.connection_id}: {e}")
            return False
