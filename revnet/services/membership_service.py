"""
Room membership and channel lookups backed by the relational store.

Implements the membership-listing, authorization and channel-directory
collaborators of the gateway.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revnet.models.channels import Channel
from revnet.models.dm_channels import DMChannel
from revnet.models.servers import Server, ServerMember
from revnet.schemas.records import ChannelRead
from revnet.websockets.room_manager import RoomKind, parse_room_key, room_key

logger = logging.getLogger(__name__)


class MembershipService:

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def list_rooms_for_user(self, user_id: str) -> List[str]:
        """``server:<id>`` for every active server the user owns or belongs to"""
        async with self.session_factory() as db:
            member_of = select(ServerMember.server_id).where(ServerMember.user_id == user_id)
            result = await db.execute(
                select(Server.id)
                .where(
                    Server.is_active.is_(True),
                    or_(Server.owner_id == user_id, Server.id.in_(member_of))
                )
                .order_by(Server.created_at.desc())
            )
            return [room_key(RoomKind.SERVER, server_id) for server_id in result.scalars().all()]

    async def can_join(self, user_id: str, key: str) -> bool:
        try:
            kind, target_id = parse_room_key(key)
        except ValueError:
            return False

        async with self.session_factory() as db:
            if kind is RoomKind.SERVER:
                return await self._is_server_member(db, user_id, target_id)

            channel = await self._find_active_channel(db, target_id)
            if channel is None:
                return False
            if channel.server_id is not None:
                return await self._is_server_member(db, user_id, channel.server_id)
            return await self._is_dm_recipient(db, user_id, channel.id)

    async def get_channel(self, channel_id: str) -> Optional[ChannelRead]:
        async with self.session_factory() as db:
            channel = await self._find_active_channel(db, channel_id)
            return ChannelRead.model_validate(channel) if channel else None

    @staticmethod
    async def _find_active_channel(db: AsyncSession, channel_id: str) -> Optional[Channel]:
        result = await db.execute(
            select(Channel).where(Channel.id == channel_id, Channel.is_active.is_(True))
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _is_server_member(db: AsyncSession, user_id: str, server_id: str) -> bool:
        server = await db.get(Server, server_id)
        if server is None or not server.is_active:
            return False
        if server.owner_id == user_id:
            return True
        member = await db.get(ServerMember, (server_id, user_id))
        return member is not None

    @staticmethod
    async def _is_dm_recipient(db: AsyncSession, user_id: str, channel_id: str) -> bool:
        result = await db.execute(
            select(DMChannel).where(DMChannel.channel_id == channel_id, DMChannel.is_closed.is_(False))
        )
        dm_channel = result.scalar_one_or_none()
        return dm_channel is not None and user_id in (dm_channel.recipient_ids or [])
