import enum
import logging
from typing import Dict, List, Optional, Set, Tuple

from revnet.core.errors import ForbiddenException, UnauthenticatedException
from revnet.websockets.collaborators import AuthorizationCheck, MembershipStore
from revnet.websockets.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


class RoomKind(str, enum.Enum):
    SERVER = "server"
    CHANNEL = "channel"
    VOICE = "voice"


def room_key(kind: RoomKind, target_id: str) -> str:
    return f"{RoomKind(kind).value}:{target_id}"


def parse_room_key(key: str) -> Tuple[RoomKind, str]:
    """Split ``<kind>:<id>``; raises ValueError for anything else."""
    kind, sep, target_id = key.partition(":")
    if not sep or not target_id:
        raise ValueError(f"Malformed room key: {key!r}")
    return RoomKind(kind), target_id


class RoomMembershipManager:
    """
    Which connections are in which rooms.

    Membership is stored room -> connection ids because fan-out is the hot
    path; the connection -> rooms index only exists so ``leave_all`` touches
    just the rooms of the departing connection.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        membership_store: Optional[MembershipStore] = None,
        authorization: Optional[AuthorizationCheck] = None
    ):
        self.registry = registry
        self.membership_store = membership_store
        self.authorization = authorization
        self._members: Dict[str, Set[str]] = {}
        self._rooms_by_connection: Dict[str, Set[str]] = {}

    def join_room(self, connection_id: str, key: str) -> bool:
        """
        Add a connection to a room. Callers must have authorized the join.

        Returns True if the connection was newly added; joining again, or
        joining with a connection that is no longer live, is a no-op.
        """
        if not self.registry.is_live(connection_id):
            logger.debug(f"Ignoring join of {key} for dead connection {connection_id}")
            return False

        members = self._members.setdefault(key, set())
        if connection_id in members:
            return False

        members.add(connection_id)
        self._rooms_by_connection.setdefault(connection_id, set()).add(key)
        return True

    def leave_room(self, connection_id: str, key: str) -> bool:
        members = self._members.get(key)
        if not members or connection_id not in members:
            return False

        members.discard(connection_id)
        if not members:
            del self._members[key]

        rooms = self._rooms_by_connection.get(connection_id)
        if rooms is not None:
            rooms.discard(key)
            if not rooms:
                del self._rooms_by_connection[connection_id]
        return True

    def leave_all(self, connection_id: str) -> List[str]:
        """Remove a connection from every room; returns the rooms it left."""
        rooms = self._rooms_by_connection.pop(connection_id, set())
        for key in rooms:
            members = self._members.get(key)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._members[key]
        return sorted(rooms)

    async def authorize_and_join(self, connection_id: str, key: str) -> bool:
        """Ask the authorization check, then join."""
        connection = self.registry.get(connection_id)
        if connection is None or connection.identity is None:
            raise UnauthenticatedException()

        if self.authorization is not None:
            allowed = await self.authorization.can_join(connection.identity.user_id, key)
            if not allowed:
                raise ForbiddenException(f"Not allowed to join {key}")

        # the connection may have gone away while we were waiting
        return self.join_room(connection_id, key)

    async def load_initial_rooms(self, connection_id: str, user_id: str) -> List[str]:
        """
        Join every room the membership store lists for the user.

        A failing store degrades to zero rooms so the connect still succeeds.
        """
        if self.membership_store is None:
            return []

        try:
            keys = await self.membership_store.list_rooms_for_user(user_id)
        except Exception as e:
            logger.warning(f"Failed to load rooms for user {user_id}: {e}", exc_info=True)
            return []

        joined = []
        for key in keys:
            try:
                parse_room_key(key)
            except ValueError:
                logger.warning(f"Skipping malformed room key {key!r} for user {user_id}")
                continue
            self.join_room(connection_id, key)
            if connection_id in self._members.get(key, ()):
                joined.append(key)

        logger.info(f"User {user_id} joined {len(joined)} rooms on connect")
        return joined

    def members(self, key: str) -> Set[str]:
        return set(self._members.get(key, ()))

    def is_member(self, connection_id: str, key: str) -> bool:
        return connection_id in self._members.get(key, ())

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self._rooms_by_connection.get(connection_id, ()))

    def member_count(self, key: str) -> int:
        return len(self._members.get(key, ()))

    def rooms(self) -> List[str]:
        return list(self._members.keys())
