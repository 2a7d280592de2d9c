from datetime import datetime
from typing import Dict, List, Optional
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from revnet.core.errors import NotFoundException, UnauthenticatedException
from revnet.database.sql import Base
from revnet.models import Channel, ChannelType, Server, ServerMember, User
from revnet.schemas.records import ChannelRead, MessageRead
from revnet.websockets.connection_manager import ConnectionManager
from revnet.websockets.handlers import WebSocketMessageHandler
from revnet.websockets.session_registry import Identity


# in-memory SQLite shared across the test through StaticPool
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeWebSocket:
    """Records every frame sent to it"""

    def __init__(self, fail_on_send: bool = False):
        self.sent: List[dict] = []
        self.accepted = False
        self.closed_with: Optional[int] = None
        self.fail_on_send = fail_on_send

    async def accept(self):
        self.accepted = True

    async def close(self, code: int = 1000):
        self.closed_with = code

    async def send_json(self, data: dict):
        if self.fail_on_send:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    def events(self, name: str) -> List[dict]:
        return [frame["data"] for frame in self.sent if frame["event"] == name]

    def event_names(self) -> List[str]:
        return [frame["event"] for frame in self.sent]

    def clear(self):
        self.sent.clear()


class StaticAuthVerifier:
    def __init__(self, tokens: Dict[str, Identity]):
        self.tokens = tokens

    async def verify(self, token: str) -> Identity:
        if token not in self.tokens:
            raise UnauthenticatedException("Invalid or expired token")
        return self.tokens[token]


class FakeMembershipStore:
    def __init__(self, rooms: Optional[Dict[str, List[str]]] = None, fail: bool = False):
        self.rooms = rooms or {}
        self.fail = fail

    async def list_rooms_for_user(self, user_id: str) -> List[str]:
        if self.fail:
            raise ConnectionError("membership store unavailable")
        return list(self.rooms.get(user_id, []))


class FakeAuthorization:
    """Allows everything except the (user, room) pairs listed in ``denied``"""

    def __init__(self):
        self.denied = set()
        self.calls = []

    async def can_join(self, user_id: str, room_key: str) -> bool:
        self.calls.append((user_id, room_key))
        return (user_id, room_key) not in self.denied


class FakeChannelDirectory:
    def __init__(self, channels: Optional[List[ChannelRead]] = None):
        self.channels = {channel.id: channel for channel in channels or []}

    async def get_channel(self, channel_id: str) -> Optional[ChannelRead]:
        return self.channels.get(channel_id)


class FakeMessageStore:
    def __init__(self):
        self.messages: List[MessageRead] = []
        self.fail = False

    async def append(self, channel_id: str, author_id: str, content: str, type: int = 0) -> MessageRead:
        if self.fail:
            raise ConnectionError("database is down")
        message = MessageRead(
            id=f"m{len(self.messages) + 1}",
            channel_id=channel_id,
            author_id=author_id,
            content=content,
            type=type,
            created_at=datetime.utcnow(),
        )
        self.messages.append(message)
        return message

    async def recent(self, channel_id: str, limit: int):
        in_channel = [m for m in self.messages if m.channel_id == channel_id]
        return (in_channel[-limit:] if limit else []), len(in_channel)

    async def edit(self, message_id: str, user_id: str, content: str) -> MessageRead:
        for index, message in enumerate(self.messages):
            if message.id == message_id:
                updated = message.model_copy(update={"content": content, "edited_timestamp": datetime.utcnow()})
                self.messages[index] = updated
                return updated
        raise NotFoundException("Message not found")

    async def delete(self, message_id: str, user_id: str) -> MessageRead:
        for message in self.messages:
            if message.id == message_id:
                self.messages.remove(message)
                return message
        raise NotFoundException("Message not found")


ALICE = Identity(user_id="u-alice", username="alice")
BOB = Identity(user_id="u-bob", username="bob")
CAROL = Identity(user_id="u-carol", username="carol")

TOKENS = {"token-alice": ALICE, "token-bob": BOB, "token-carol": CAROL}


@pytest.fixture
def alice():
    return ALICE


@pytest.fixture
def bob():
    return BOB


@pytest.fixture
def carol():
    return CAROL


@pytest.fixture
def make_socket():
    return FakeWebSocket


@pytest.fixture
def membership_store():
    return FakeMembershipStore({
        ALICE.user_id: ["server:1"],
        BOB.user_id: ["server:1"],
    })


@pytest.fixture
def authorization():
    return FakeAuthorization()


@pytest.fixture
def channels():
    return FakeChannelDirectory([
        ChannelRead(id="5", name="general", type=ChannelType.TEXT, server_id="1"),
        ChannelRead(id="6", name="random", type=ChannelType.TEXT, server_id="1"),
        ChannelRead(id="7", name="lounge", type=ChannelType.VOICE, server_id="1"),
    ])


@pytest.fixture
def message_store():
    return FakeMessageStore()


@pytest.fixture
def manager(membership_store, authorization):
    return ConnectionManager(
        auth_verifier=StaticAuthVerifier(TOKENS),
        membership_store=membership_store,
        authorization=authorization,
    )


@pytest.fixture
def friend_store():
    return AsyncMock()


@pytest.fixture
def dm_store():
    return AsyncMock()


@pytest.fixture
def handler(manager, channels, message_store, friend_store, dm_store):
    return WebSocketMessageHandler(
        manager,
        channels=channels,
        messages=message_store,
        friends=friend_store,
        dms=dm_store,
        recent_messages_limit=50,
    )


@pytest.fixture
def connect(manager):
    """Open an authenticated fake socket: ``connection, ws = await connect(alice)``"""

    async def _connect(identity: Optional[Identity] = None, websocket: Optional[FakeWebSocket] = None):
        websocket = websocket or FakeWebSocket()
        connection = await manager.connect(websocket, identity)
        return connection, websocket

    return _connect


@pytest.fixture
def send(handler):
    """``await send(connection_id, "join_channel", {"channelId": "5"})``"""

    async def _send(connection_id: str, event: str, data: Optional[dict] = None):
        await handler.handle_message(connection_id, {"event": event, "data": data or {}})

    return _send


# =============================================================================
# Database fixtures
# =============================================================================

@pytest_asyncio.fixture
async def test_engine():
    """Fresh schema per test"""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def seeded(session_factory):
    """
    owner (owns "Hub") -- member (member of "Hub") -- outsider (no servers)

    Hub has a text channel "general" and a voice channel "lounge".
    """
    async with session_factory() as db:
        owner = User(id="owner", username="owner")
        member = User(id="member", username="member")
        outsider = User(id="outsider", username="outsider")
        hub = Server(id="hub", name="Hub", owner_id="owner")
        general = Channel(id="general", name="general", type=ChannelType.TEXT, server_id="hub")
        lounge = Channel(id="lounge", name="lounge", type=ChannelType.VOICE, server_id="hub")
        archived = Channel(id="archived", name="archived", type=ChannelType.TEXT, server_id="hub", is_active=False)
        db.add_all([owner, member, outsider, hub, general, lounge, archived])
        await db.flush()
        db.add(ServerMember(server_id="hub", user_id="member"))
        await db.commit()

    return {"owner": "owner", "member": "member", "outsider": "outsider", "server": "hub"}
