"""
Real-time chat gateway

Components:
- session_registry: live connections and their identities
- room_manager: server / channel / voice room membership
- broadcaster: fan-out of events to rooms and single connections
- signaling: user-addressed relay (voice negotiation, notifications)
- connection_manager: connection lifecycle tying the above together
- handlers: inbound event dispatch
"""

from .session_registry import SessionRegistry, Connection, ConnectionState, Identity
from .room_manager import RoomMembershipManager, RoomKind, room_key, parse_room_key
from .broadcaster import EventBroadcaster
from .signaling import SignalingRelay
from .connection_manager import ConnectionManager
from .auth import authenticate_websocket, extract_token
from .handlers import WebSocketMessageHandler

__all__ = [
    "SessionRegistry",
    "Connection",
    "ConnectionState",
    "Identity",
    "RoomMembershipManager",
    "RoomKind",
    "room_key",
    "parse_room_key",
    "EventBroadcaster",
    "SignalingRelay",
    "ConnectionManager",
    "authenticate_websocket",
    "extract_token",
    "WebSocketMessageHandler",
]
