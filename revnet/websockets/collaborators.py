"""
Interfaces of the stores the gateway talks to.

The SQL implementations live in ``revnet.services``; tests substitute
in-memory fakes. Every call here is a potential suspension point.
"""

from typing import List, Optional, Protocol, Tuple

from revnet.schemas.records import ChannelRead, DMChannelRead, FriendRequestRead, MessageRead
from revnet.websockets.session_registry import Identity


class AuthVerifier(Protocol):
    async def verify(self, token: str) -> Identity:
        """Resolve a token to an identity or raise UnauthenticatedException."""
        ...


class MembershipStore(Protocol):
    async def list_rooms_for_user(self, user_id: str) -> List[str]:
        ...


class AuthorizationCheck(Protocol):
    async def can_join(self, user_id: str, room_key: str) -> bool:
        ...


class ChannelDirectory(Protocol):
    async def get_channel(self, channel_id: str) -> Optional[ChannelRead]:
        ...


class MessageStore(Protocol):
    async def append(self, channel_id: str, author_id: str, content: str, type: int = 0) -> MessageRead:
        ...

    async def recent(self, channel_id: str, limit: int) -> Tuple[List[MessageRead], int]:
        ...

    async def edit(self, message_id: str, user_id: str, content: str) -> MessageRead:
        ...

    async def delete(self, message_id: str, user_id: str) -> MessageRead:
        ...


class FriendStore(Protocol):
    async def send_request(self, user_id: str, friend_username: str) -> FriendRequestRead:
        ...

    async def accept(self, request_id: str, user_id: str) -> FriendRequestRead:
        ...

    async def decline(self, request_id: str, user_id: str) -> FriendRequestRead:
        ...


class DMStore(Protocol):
    async def open_dm(self, user_id: str, recipient_id: str) -> DMChannelRead:
        ...

    async def open_group_dm(
        self,
        user_id: str,
        recipient_ids: List[str],
        name: Optional[str] = None
    ) -> DMChannelRead:
        ...
