import pytest

from revnet.core.errors import ConflictException, NotReadyException, UnauthenticatedException
from revnet.websockets.connection_manager import ConnectionManager
from revnet.websockets.session_registry import ConnectionState


class TestConnectionLifecycle:
    """connect / authenticate / disconnect"""

    @pytest.mark.asyncio
    async def test_connect_with_identity_activates(self, manager, connect, alice):
        connection, ws = await connect(alice)

        assert ws.accepted
        assert connection.state == ConnectionState.ACTIVE
        assert manager.rooms.rooms_of(connection.connection_id) == {"server:1"}
        assert ws.events("connected") == [{
            "message": "Connected to RevNet",
            "userId": alice.user_id,
            "username": alice.username,
            "rooms": ["server:1"],
        }]

    @pytest.mark.asyncio
    async def test_connect_without_identity_stays_connected(self, manager, connect):
        connection, ws = await connect()

        assert connection.state == ConnectionState.CONNECTED
        assert connection.identity is None
        assert ws.sent == []
        assert manager.get_online_users_count() == 0

    @pytest.mark.asyncio
    async def test_authenticate_later(self, manager, connect, alice):
        connection, ws = await connect()

        await manager.authenticate(connection.connection_id, "token-alice")

        assert connection.identity == alice
        assert connection.state == ConnectionState.ACTIVE
        assert ws.event_names() == ["connected"]
        assert manager.is_user_connected(alice.user_id)

    @pytest.mark.asyncio
    async def test_authenticate_bad_token(self, manager, connect):
        connection, _ = await connect()

        with pytest.raises(UnauthenticatedException):
            await manager.authenticate(connection.connection_id, "forged")
        assert connection.identity is None

    @pytest.mark.asyncio
    async def test_authenticate_twice(self, manager, connect, alice):
        connection, _ = await connect(alice)

        with pytest.raises(ConflictException):
            await manager.authenticate(connection.connection_id, "token-bob")

    @pytest.mark.asyncio
    async def test_membership_store_failure_still_connects(self, manager, connect, alice, membership_store):
        membership_store.fail = True

        connection, ws = await connect(alice)

        assert connection.state == ConnectionState.ACTIVE
        assert ws.events("connected")[0]["rooms"] == []

    @pytest.mark.asyncio
    async def test_disconnect_during_room_loading(self, make_socket, alice):
        """A socket that closes while rooms load ends with no memberships"""
        holder = {}

        class SlowStore:
            async def list_rooms_for_user(self, user_id):
                await holder["manager"].disconnect(holder["connection_id"])
                return ["server:1"]

        manager = ConnectionManager(auth_verifier=None, membership_store=SlowStore())
        holder["manager"] = manager
        ws = make_socket()
        await ws.accept()
        connection = manager.registry.register("c1", ws)
        holder["connection_id"] = "c1"

        assert await manager.activate("c1", alice) is None
        assert connection.state == ConnectionState.DISCONNECTED
        assert manager.rooms.members("server:1") == set()
        assert ws.events("connected") == []

    @pytest.mark.asyncio
    async def test_disconnect_removes_everything(self, manager, connect, alice):
        connection, _ = await connect(alice)
        manager.rooms.join_room(connection.connection_id, "channel:5")

        left = await manager.disconnect(connection.connection_id)

        assert left == ["channel:5", "server:1"]
        assert connection.state == ConnectionState.DISCONNECTED
        assert manager.rooms.rooms_of(connection.connection_id) == set()
        assert not manager.is_user_connected(alice.user_id)
        assert await manager.disconnect(connection.connection_id) == []

    @pytest.mark.asyncio
    async def test_disconnect_announces_voice_leave(self, manager, connect, alice, bob):
        speaker, _ = await connect(alice)
        listener, listener_ws = await connect(bob)
        manager.rooms.join_room(speaker.connection_id, "voice:7")
        manager.rooms.join_room(listener.connection_id, "voice:7")
        listener_ws.clear()

        await manager.disconnect(speaker.connection_id)

        assert listener_ws.events("user_left_voice") == [{
            "userId": alice.user_id,
            "username": alice.username,
            "channelId": "7",
        }]


class TestConnectionGuards:
    """Identity and readiness checks used by the event handlers"""

    @pytest.mark.asyncio
    async def test_require_identity(self, manager, connect, alice):
        anonymous, _ = await connect()
        known, _ = await connect(alice)

        with pytest.raises(UnauthenticatedException):
            manager.require_identity(anonymous.connection_id)
        with pytest.raises(UnauthenticatedException):
            manager.require_identity("missing")
        assert manager.require_identity(known.connection_id) is known

    @pytest.mark.asyncio
    async def test_require_active(self, manager, connect, alice):
        connection, _ = await connect(alice)
        manager.registry.set_state(connection.connection_id, ConnectionState.CONNECTED)

        with pytest.raises(NotReadyException):
            manager.require_active(connection.connection_id)


class TestRoomQueries:
    """Presence queries and server-originated broadcasts"""

    @pytest.mark.asyncio
    async def test_room_status(self, manager, connect, alice, bob):
        await connect(alice)
        await connect(alice)
        await connect(bob)

        status = manager.room_status("server:1")

        assert status.online_users == [alice.user_id, bob.user_id]
        assert status.online_count == 2
        assert status.is_active is True
        assert status.to_wire() == {
            "roomKey": "server:1",
            "onlineUsers": [alice.user_id, bob.user_id],
            "onlineCount": 2,
            "isActive": True,
        }

    def test_room_status_empty_and_malformed(self, manager):
        status = manager.room_status("channel:5")
        assert status.online_count == 0
        assert status.is_active is False

        with pytest.raises(ValueError):
            manager.room_status("nonsense")

    @pytest.mark.asyncio
    async def test_broadcast_to_server_and_channel(self, manager, connect, alice):
        connection, ws = await connect(alice)
        manager.rooms.join_room(connection.connection_id, "channel:5")
        ws.clear()

        assert await manager.broadcast_to_server("1", "server_updated", {"name": "New"}) == 1
        assert await manager.broadcast_to_channel("5", "channel_updated", {"topic": "t"}) == 1
        assert await manager.broadcast_to_channel("6", "channel_updated", {}) == 0

        assert ws.event_names() == ["server_updated", "channel_updated"]

    @pytest.mark.asyncio
    async def test_online_users_count(self, manager, connect, alice, bob):
        await connect(alice)
        await connect(alice)
        await connect(bob)
        await connect()

        assert manager.get_online_users_count() == 2
