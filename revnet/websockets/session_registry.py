import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"        # transport open, identity missing or rooms loading
    ACTIVE = "active"              # identity resolved and initial rooms joined
    DISCONNECTED = "disconnected"  # terminal


@dataclass(frozen=True)
class Identity:
    user_id: str
    username: str


@dataclass
class Connection:
    """One live WebSocket session"""
    connection_id: str
    websocket: Any
    identity: Optional[Identity] = None
    state: ConnectionState = ConnectionState.CONNECTING
    connected_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def user_id(self) -> Optional[str]:
        return self.identity.user_id if self.identity else None

    @property
    def username(self) -> Optional[str]:
        return self.identity.username if self.identity else None

    @property
    def is_live(self) -> bool:
        return self.state != ConnectionState.DISCONNECTED


class SessionRegistry:
    """
    Connection id -> Connection, plus a user id -> connection ids index.

    The index is kept in registration order so ``lookup_by_user`` is
    deterministic when a user has several sessions open.
    """

    def __init__(self):
        self._connections: Dict[str, Connection] = {}
        self._user_index: Dict[str, List[str]] = {}

    def register(
        self,
        connection_id: str,
        websocket: Any,
        identity: Optional[Identity] = None
    ) -> Connection:
        """Store a new connection. Registering a live id twice is a logic error."""
        if connection_id in self._connections:
            raise ValueError(f"Connection {connection_id} is already registered")

        connection = Connection(connection_id=connection_id, websocket=websocket)
        self._connections[connection_id] = connection
        if identity is not None:
            self.bind_identity(connection_id, identity)
        return connection

    def bind_identity(self, connection_id: str, identity: Identity) -> Connection:
        """Attach a resolved identity to a registered connection."""
        connection = self._connections.get(connection_id)
        if connection is None:
            raise KeyError(connection_id)
        if connection.identity is not None and connection.identity != identity:
            raise ValueError(f"Connection {connection_id} already has an identity")

        connection.identity = identity
        sessions = self._user_index.setdefault(identity.user_id, [])
        if connection_id not in sessions:
            sessions.append(connection_id)
        return connection

    def set_state(self, connection_id: str, state: ConnectionState) -> None:
        connection = self._connections.get(connection_id)
        if connection is not None and connection.is_live:
            connection.state = state

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def is_live(self, connection_id: str) -> bool:
        connection = self._connections.get(connection_id)
        return connection is not None and connection.is_live

    def lookup_by_user(self, user_id: str) -> Optional[Connection]:
        """First live connection of the user, if any."""
        sessions = self.connections_for_user(user_id)
        return sessions[0] if sessions else None

    def connections_for_user(self, user_id: str) -> List[Connection]:
        return [
            self._connections[connection_id]
            for connection_id in self._user_index.get(user_id, [])
            if self.is_live(connection_id)
        ]

    def remove(self, connection_id: str) -> Optional[Connection]:
        """Deregister a connection. Safe to call more than once."""
        connection = self._connections.pop(connection_id, None)
        if connection is None:
            return None

        connection.state = ConnectionState.DISCONNECTED
        if connection.identity is not None:
            sessions = self._user_index.get(connection.identity.user_id)
            if sessions and connection_id in sessions:
                sessions.remove(connection_id)
                if not sessions:
                    del self._user_index[connection.identity.user_id]
        return connection

    def online_user_ids(self) -> List[str]:
        return list(self._user_index.keys())

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)
