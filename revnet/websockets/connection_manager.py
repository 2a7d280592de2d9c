import logging
import uuid
from typing import Any, Dict, List, Optional

from revnet.core.errors import ConflictException, NotReadyException, UnauthenticatedException
from revnet.core.logging import log_authentication_event, log_websocket_event
from revnet.schemas.records import ParticipantRead, RoomStatus
from revnet.websockets.broadcaster import EventBroadcaster
from revnet.websockets.collaborators import AuthorizationCheck, AuthVerifier, MembershipStore
from revnet.websockets.room_manager import RoomKind, RoomMembershipManager, parse_room_key, room_key
from revnet.websockets.session_registry import Connection, ConnectionState, Identity, SessionRegistry
from revnet.websockets.signaling import SignalingRelay

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Owns the gateway's in-memory state for one process.

    Lifecycle: CONNECTING -> CONNECTED (identity known, rooms loading)
    -> ACTIVE -> DISCONNECTED. A socket that opened without a token stays
    CONNECTED with no identity until it sends ``authenticate``.
    """

    def __init__(
        self,
        auth_verifier: AuthVerifier,
        membership_store: Optional[MembershipStore] = None,
        authorization: Optional[AuthorizationCheck] = None
    ):
        self.auth_verifier = auth_verifier
        self.registry = SessionRegistry()
        self.rooms = RoomMembershipManager(self.registry, membership_store, authorization)
        self.broadcaster = EventBroadcaster(self.registry, self.rooms)
        self.signaling = SignalingRelay(self.registry, self.broadcaster)

    async def connect(self, websocket: Any, identity: Optional[Identity] = None) -> Connection:
        """Accept and register a socket; activates it right away when the identity is known."""
        await websocket.accept()

        connection_id = uuid.uuid4().hex
        connection = self.registry.register(connection_id, websocket)
        self.registry.set_state(connection_id, ConnectionState.CONNECTED)
        log_websocket_event(logger, "connected", connection_id, identity.user_id if identity else None)

        if identity is not None:
            await self.activate(connection_id, identity)
        return connection

    async def authenticate(self, connection_id: str, token: str) -> Connection:
        """Resolve identity for a socket that connected anonymously."""
        connection = self.registry.get(connection_id)
        if connection is None:
            raise UnauthenticatedException()
        if connection.identity is not None:
            raise ConflictException("Already authenticated")

        try:
            identity = await self.auth_verifier.verify(token)
        except UnauthenticatedException:
            log_authentication_event(logger, "authenticate", connection_id, success=False)
            raise

        log_authentication_event(logger, "authenticate", connection_id, identity.user_id)
        return await self.activate(connection_id, identity)

    async def activate(self, connection_id: str, identity: Identity) -> Optional[Connection]:
        connection = self.registry.bind_identity(connection_id, identity)
        self.registry.set_state(connection_id, ConnectionState.CONNECTED)

        joined = await self.rooms.load_initial_rooms(connection_id, identity.user_id)

        if not connection.is_live:
            # disconnected while the membership store was answering
            self.rooms.leave_all(connection_id)
            return None

        self.registry.set_state(connection_id, ConnectionState.ACTIVE)
        log_websocket_event(logger, "activated", connection_id, identity.user_id, rooms=len(joined))

        await self.broadcaster.send_to_connection(connection_id, "connected", {
            "message": "Connected to RevNet",
            "userId": identity.user_id,
            "username": identity.username,
            "rooms": joined,
        })
        return connection

    async def disconnect(self, connection_id: str) -> List[str]:
        """Drop every membership and deregister. Idempotent."""
        connection = self.registry.get(connection_id)
        left = self.rooms.leave_all(connection_id)
        self.registry.remove(connection_id)

        if connection is None:
            return left

        log_websocket_event(logger, "disconnected", connection_id, connection.user_id, rooms=len(left))

        if connection.identity is not None:
            for key in left:
                kind, channel_id = parse_room_key(key)
                if kind is RoomKind.VOICE:
                    await self.broadcaster.broadcast_to_room(key, "user_left_voice", {
                        "userId": connection.identity.user_id,
                        "username": connection.identity.username,
                        "channelId": channel_id,
                    })
        return left

    def require_identity(self, connection_id: str) -> Connection:
        connection = self.registry.get(connection_id)
        if connection is None or connection.identity is None:
            raise UnauthenticatedException()
        return connection

    def require_active(self, connection_id: str) -> Connection:
        connection = self.require_identity(connection_id)
        if connection.state != ConnectionState.ACTIVE:
            raise NotReadyException()
        return connection

    async def broadcast_to_server(self, server_id: str, event: str, data: Dict[str, Any]) -> int:
        return await self.broadcaster.broadcast_to_room(room_key(RoomKind.SERVER, server_id), event, data)

    async def broadcast_to_channel(self, channel_id: str, event: str, data: Dict[str, Any]) -> int:
        return await self.broadcaster.broadcast_to_room(room_key(RoomKind.CHANNEL, channel_id), event, data)

    def participants(self, key: str) -> List[ParticipantRead]:
        """Identities of the live members of a room."""
        participants = []
        for connection_id in sorted(self.rooms.members(key)):
            connection = self.registry.get(connection_id)
            if connection is not None and connection.identity is not None:
                participants.append(ParticipantRead(
                    user_id=connection.identity.user_id,
                    username=connection.identity.username,
                ))
        return participants

    def room_status(self, key: str) -> RoomStatus:
        parse_room_key(key)
        online_users = sorted({p.user_id for p in self.participants(key)})
        return RoomStatus(
            room_key=key,
            online_users=online_users,
            online_count=len(online_users),
            is_active=len(online_users) > 0,
        )

    def is_user_connected(self, user_id: str) -> bool:
        return self.registry.lookup_by_user(user_id) is not None

    def get_online_users_count(self) -> int:
        return len(self.registry.online_user_ids())
