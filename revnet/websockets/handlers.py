import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from revnet.core.config import settings
from revnet.core.errors import (
    CollaboratorException,
    ForbiddenException,
    GatewayException,
    InvalidPayloadException,
    NotFoundException,
)
from revnet.models.channels import ChannelType
from revnet.schemas.events import (
    AuthenticatePayload,
    ChannelPayload,
    DeleteMessagePayload,
    DMOpenPayload,
    EditMessagePayload,
    FriendRequestActionPayload,
    FriendRequestPayload,
    GroupDMOpenPayload,
    IceCandidatePayload,
    InboundFrame,
    JoinChannelPayload,
    SendMessagePayload,
    SignalPayload,
    VoiceAnswerPayload,
    VoiceOfferPayload,
)
from revnet.websockets.collaborators import ChannelDirectory, DMStore, FriendStore, MessageStore
from revnet.websockets.connection_manager import ConnectionManager
from revnet.websockets.room_manager import RoomKind, room_key
from revnet.websockets.session_registry import Connection

logger = logging.getLogger(__name__)

Handler = Callable[[str, Dict[str, Any]], Awaitable[None]]


def _parse(model: Type[BaseModel], data: Dict[str, Any]) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise InvalidPayloadException(
            "Invalid payload",
            {"errors": e.errors(include_url=False, include_context=False, include_input=False)}
        )


class WebSocketMessageHandler:
    """Dispatches inbound frames to the per-event handlers"""

    def __init__(
        self,
        manager: ConnectionManager,
        channels: ChannelDirectory,
        messages: MessageStore,
        friends: FriendStore,
        dms: DMStore,
        recent_messages_limit: Optional[int] = None
    ):
        self.manager = manager
        self.channels = channels
        self.messages = messages
        self.friends = friends
        self.dms = dms
        self.recent_messages_limit = (
            settings.recent_messages_limit if recent_messages_limit is None else recent_messages_limit
        )

        self._routes: Dict[str, Handler] = {
            "authenticate": self._handle_authenticate,
            "ping": self._handle_ping,
            "join_channel": self._handle_join_channel,
            "leave_channel": self._handle_leave_channel,
            "send_message": self._handle_send_message,
            "edit_message": self._handle_edit_message,
            "delete_message": self._handle_delete_message,
            "typing_start": self._handle_typing_start,
            "typing_stop": self._handle_typing_stop,
            "join_voice_channel": self._handle_join_voice_channel,
            "leave_voice_channel": self._handle_leave_voice_channel,
            "voice_offer": self._handle_voice_offer,
            "voice_answer": self._handle_voice_answer,
            "ice_candidate": self._handle_ice_candidate,
            "friend_request": self._handle_friend_request,
            "friend_accept": self._handle_friend_accept,
            "friend_decline": self._handle_friend_decline,
            "dm_open": self._handle_dm_open,
            "group_dm_open": self._handle_group_dm_open,
        }

    @property
    def events(self):
        return sorted(self._routes)

    async def handle_text(self, connection_id: str, text: str):
        """Entry point for a raw text frame"""
        try:
            data = json.loads(text)
        except ValueError:
            logger.warning(f"Invalid JSON from connection {connection_id}")
            await self._send_error(connection_id, InvalidPayloadException("Message is not valid JSON"))
            return
        await self.handle_message(connection_id, data)

    async def handle_binary(self, connection_id: str):
        """Binary frames are not part of the protocol; the connection stays open"""
        logger.warning(f"Binary frame from connection {connection_id}")
        await self._send_error(connection_id, InvalidPayloadException("Binary frames are not supported"))

    async def handle_message(self, connection_id: str, data: Any):
        """
        Handle one decoded frame.

        Every failure is reported to the sender as an ``error`` event; none
        of them escape to the receive loop.
        """
        try:
            if not isinstance(data, dict):
                raise InvalidPayloadException("Frame must be a JSON object")
            frame = _parse(InboundFrame, data)

            handler = self._routes.get(frame.event)
            if handler is None:
                raise InvalidPayloadException(f"Unknown event: {frame.event}")

            await handler(connection_id, frame.data)

        except GatewayException as e:
            await self._send_error(connection_id, e)
        except Exception as e:
            logger.error(f"Error processing event from connection {connection_id}: {e}", exc_info=True)
            await self._send_error(connection_id, CollaboratorException())

    async def _send_error(self, connection_id: str, error: GatewayException):
        await self.manager.broadcaster.send_to_connection(connection_id, "error", error.to_dict())

    async def _reply(self, connection_id: str, event: str, payload: Dict[str, Any]):
        await self.manager.broadcaster.send_to_connection(connection_id, event, payload)

    def _require_member(self, connection: Connection, key: str):
        if not self.manager.rooms.is_member(connection.connection_id, key):
            raise NotFoundException(f"Not a member of {key}")

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    async def _handle_authenticate(self, connection_id: str, data: Dict[str, Any]):
        payload = _parse(AuthenticatePayload, data)
        await self.manager.authenticate(connection_id, payload.token)

    async def _handle_ping(self, connection_id: str, data: Dict[str, Any]):
        await self._reply(connection_id, "pong", {"timestamp": datetime.utcnow().isoformat()})

    # -------------------------------------------------------------------------
    # Text channels
    # -------------------------------------------------------------------------

    async def _handle_join_channel(self, connection_id: str, data: Dict[str, Any]):
        connection = self.manager.require_active(connection_id)
        payload = _parse(JoinChannelPayload, data)

        channel = await self.channels.get_channel(payload.channel_id)
        if channel is None or not channel.is_active:
            raise NotFoundException("Channel not found")

        key = room_key(RoomKind.CHANNEL, channel.id)
        await self.manager.rooms.authorize_and_join(connection_id, key)

        messages, total = await self.messages.recent(channel.id, self.recent_messages_limit)

        await self._reply(connection_id, "channel_joined", {
            "channelId": channel.id,
            "messages": [message.to_wire() for message in messages],
            "total": total,
        })
        logger.info(f"User {connection.user_id} joined channel {channel.id}")

    async def _handle_leave_channel(self, connection_id: str, data: Dict[str, Any]):
        connection = self.manager.require_identity(connection_id)
        payload = _parse(ChannelPayload, data)

        self.manager.rooms.leave_room(connection_id, room_key(RoomKind.CHANNEL, payload.channel_id))
        await self._reply(connection_id, "channel_left", {"channelId": payload.channel_id})
        logger.info(f"User {connection.user_id} left channel {payload.channel_id}")

    async def _handle_send_message(self, connection_id: str, data: Dict[str, Any]):
        connection = self.manager.require_active(connection_id)
        payload = _parse(SendMessagePayload, data)

        key = room_key(RoomKind.CHANNEL, payload.channel_id)
        self._require_member(connection, key)

        try:
            message = await self.messages.append(
                payload.channel_id, connection.user_id, payload.content, payload.type
            )
        except GatewayException:
            raise
        except Exception as e:
            logger.error(f"Failed to persist message from user {connection.user_id}: {e}", exc_info=True)
            raise CollaboratorException("Failed to send message")

        # broadcast only what was stored
        await self.manager.broadcaster.broadcast_to_room(key, "message_received", {
            "message": message.to_wire(),
            "channelId": payload.channel_id,
        })
        logger.info(f"Message sent in channel {payload.channel_id} by user {connection.user_id}")

    async def _handle_edit_message(self, connection_id: str, data: Dict[str, Any]):
        connection = self.manager.require_active(connection_id)
        payload = _parse(EditMessagePayload, data)

        message = await self.messages.edit(payload.message_id, connection.user_id, payload.content)

        await self.manager.broadcaster.broadcast_to_room(
            room_key(RoomKind.CHANNEL, message.channel_id),
            "message_updated",
            {"message": message.to_wire(), "channelId": message.channel_id}
        )
        logger.info(f"Message {payload.message_id} edited by user {connection.user_id}")

    async def _handle_delete_message(self, connection_id: str, data: Dict[str, Any]):
        connection = self.manager.require_active(connection_id)
        payload = _parse(DeleteMessagePayload, data)

        message = await self.messages.delete(payload.message_id, connection.user_id)

        await self.manager.broadcaster.broadcast_to_room(
            room_key(RoomKind.CHANNEL, message.channel_id),
            "message_deleted",
            {"messageId": message.id, "channelId": message.channel_id}
        )
        logger.info(f"Message {payload.message_id} deleted by user {connection.user_id}")

    async def _handle_typing_start(self, connection_id: str, data: Dict[str, Any]):
        await self._broadcast_typing(connection_id, data, "user_typing")

    async def _handle_typing_stop(self, connection_id: str, data: Dict[str, Any]):
        await self._broadcast_typing(connection_id, data, "user_stopped_typing")

    async def _broadcast_typing(self, connection_id: str, data: Dict[str, Any], event: str):
        connection = self.manager.require_active(connection_id)
        payload = _parse(ChannelPayload, data)

        key = room_key(RoomKind.CHANNEL, payload.channel_id)
        self._require_member(connection, key)

        await self.manager.broadcaster.broadcast_except(key, connection_id, event, {
            "userId": connection.user_id,
            "username": connection.username,
            "channelId": payload.channel_id,
        })

    # -------------------------------------------------------------------------
    # Voice
    # -------------------------------------------------------------------------

    async def _handle_join_voice_channel(self, connection_id: str, data: Dict[str, Any]):
        connection = self.manager.require_active(connection_id)
        payload = _parse(JoinChannelPayload, data)

        channel = await self.channels.get_channel(payload.channel_id)
        if channel is None or not channel.is_active:
            raise NotFoundException("Channel not found")
        if channel.type != ChannelType.VOICE:
            raise ForbiddenException("Not a voice channel")

        key = room_key(RoomKind.VOICE, channel.id)
        joined = await self.manager.rooms.authorize_and_join(connection_id, key)

        if joined:
            await self.manager.broadcaster.broadcast_except(key, connection_id, "user_joined_voice", {
                "userId": connection.user_id,
                "username": connection.username,
                "channelId": channel.id,
            })

        await self._reply(connection_id, "voice_joined", {
            "channelId": channel.id,
            "participants": [p.to_wire() for p in self.manager.participants(key)],
        })
        logger.info(f"User {connection.user_id} joined voice channel {channel.id}")

    async def _handle_leave_voice_channel(self, connection_id: str, data: Dict[str, Any]):
        connection = self.manager.require_identity(connection_id)
        payload = _parse(ChannelPayload, data)

        key = room_key(RoomKind.VOICE, payload.channel_id)
        if self.manager.rooms.leave_room(connection_id, key):
            await self.manager.broadcaster.broadcast_to_room(key, "user_left_voice", {
                "userId": connection.user_id,
                "username": connection.username,
                "channelId": payload.channel_id,
            })

        await self._reply(connection_id, "voice_left", {"channelId": payload.channel_id})
        logger.info(f"User {connection.user_id} left voice channel {payload.channel_id}")

    async def _handle_voice_offer(self, connection_id: str, data: Dict[str, Any]):
        payload = _parse(VoiceOfferPayload, data)
        await self._relay_signal(connection_id, payload, "voice_offer", {"offer": payload.offer})

    async def _handle_voice_answer(self, connection_id: str, data: Dict[str, Any]):
        payload = _parse(VoiceAnswerPayload, data)
        await self._relay_signal(connection_id, payload, "voice_answer", {"answer": payload.answer})

    async def _handle_ice_candidate(self, connection_id: str, data: Dict[str, Any]):
        payload = _parse(IceCandidatePayload, data)
        await self._relay_signal(connection_id, payload, "ice_candidate", {"candidate": payload.candidate})

    async def _relay_signal(self, connection_id: str, payload: SignalPayload, event: str, body: Dict[str, Any]):
        # scoped to voice:<channelId> when the client names a channel
        connection = self.manager.require_active(connection_id)

        key = None
        if payload.channel_id is not None:
            key = room_key(RoomKind.VOICE, payload.channel_id)
            self._require_member(connection, key)

        await self.manager.signaling.relay(
            connection_id,
            payload.target_user_id,
            event,
            {**body, "channelId": payload.channel_id},
            room=key
        )

    # -------------------------------------------------------------------------
    # Friends
    # -------------------------------------------------------------------------

    async def _handle_friend_request(self, connection_id: str, data: Dict[str, Any]):
        connection = self.manager.require_active(connection_id)
        payload = _parse(FriendRequestPayload, data)

        request = await self.friends.send_request(connection.user_id, payload.friend_username)

        await self.manager.signaling.notify_user(request.friend_id, "friend_request_received", {
            "request": request.to_wire(),
            "fromUserId": connection.user_id,
            "fromUsername": connection.username,
        })
        await self._reply(connection_id, "friend_request_sent", {"request": request.to_wire()})
        logger.info(f"Friend request sent from {connection.user_id} to {payload.friend_username}")

    async def _handle_friend_accept(self, connection_id: str, data: Dict[str, Any]):
        connection = self.manager.require_active(connection_id)
        payload = _parse(FriendRequestActionPayload, data)

        request = await self.friends.accept(payload.request_id, connection.user_id)

        await self.manager.signaling.notify_user(request.user_id, "friend_accepted", {
            "request": request.to_wire(),
            "byUserId": connection.user_id,
            "byUsername": connection.username,
        })
        await self._reply(connection_id, "friend_request_accepted", {"request": request.to_wire()})
        logger.info(f"Friend request {payload.request_id} accepted by {connection.user_id}")

    async def _handle_friend_decline(self, connection_id: str, data: Dict[str, Any]):
        connection = self.manager.require_active(connection_id)
        payload = _parse(FriendRequestActionPayload, data)

        await self.friends.decline(payload.request_id, connection.user_id)

        await self._reply(connection_id, "friend_request_declined", {"requestId": payload.request_id})
        logger.info(f"Friend request {payload.request_id} declined by {connection.user_id}")

    # -------------------------------------------------------------------------
    # Direct messages
    # -------------------------------------------------------------------------

    async def _handle_dm_open(self, connection_id: str, data: Dict[str, Any]):
        connection = self.manager.require_active(connection_id)
        payload = _parse(DMOpenPayload, data)

        dm_channel = await self.dms.open_dm(connection.user_id, payload.recipient_id)

        await self.manager.signaling.notify_user(payload.recipient_id, "dm_opened", {
            "channel": dm_channel.to_wire(),
            "fromUserId": connection.user_id,
            "fromUsername": connection.username,
        })
        await self._reply(connection_id, "dm_opened", {
            "channel": dm_channel.to_wire(),
            "toUserId": payload.recipient_id,
        })
        logger.info(f"DM channel opened between {connection.user_id} and {payload.recipient_id}")

    async def _handle_group_dm_open(self, connection_id: str, data: Dict[str, Any]):
        connection = self.manager.require_active(connection_id)
        payload = _parse(GroupDMOpenPayload, data)

        group_dm = await self.dms.open_group_dm(connection.user_id, payload.recipient_ids, payload.name)

        for recipient_id in dict.fromkeys(payload.recipient_ids):
            if recipient_id == connection.user_id:
                continue
            await self.manager.signaling.notify_user(recipient_id, "group_dm_opened", {
                "channel": group_dm.to_wire(),
                "fromUserId": connection.user_id,
                "fromUsername": connection.username,
            })

        await self._reply(connection_id, "group_dm_opened", {
            "channel": group_dm.to_wire(),
            "toUserIds": payload.recipient_ids,
        })
        logger.info(f"Group DM opened by {connection.user_id} with {len(payload.recipient_ids)} recipients")
