import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revnet.core.errors import ConflictException, InvalidPayloadException, NotFoundException
from revnet.models.channels import Channel, ChannelType
from revnet.models.dm_channels import DMChannel
from revnet.models.users import User
from revnet.schemas.records import DMChannelRead

logger = logging.getLogger(__name__)


def participant_key(user_id: str, other_id: str) -> str:
    """Order-independent key of a 1:1 DM"""
    return ":".join(sorted([user_id, other_id]))


class DMService:
    """Direct message channels (1:1 and group)"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def open_dm(self, user_id: str, recipient_id: str) -> DMChannelRead:
        """Return the existing 1:1 channel between the users, or create one"""
        if user_id == recipient_id:
            raise InvalidPayloadException("Cannot open a DM with yourself")

        async with self.session_factory() as db:
            await self._ensure_users_exist(db, [recipient_id])

            existing = await self._find_direct_channel(db, user_id, recipient_id)
            if existing is not None:
                return DMChannelRead.model_validate(existing)

            dm_channel = await self._create(db, ChannelType.DM, "dm", [user_id, recipient_id])
            logger.info(f"Created DM channel {dm_channel.channel_id} for {user_id} and {recipient_id}")
            return DMChannelRead.model_validate(dm_channel)

    async def open_group_dm(
        self,
        user_id: str,
        recipient_ids: List[str],
        name: Optional[str] = None
    ) -> DMChannelRead:
        participants = list(dict.fromkeys([user_id, *recipient_ids]))
        if len(participants) < 2:
            raise ConflictException("Group DM must have at least 2 recipients")

        group_name = name or f"Group DM ({len(participants)})"

        async with self.session_factory() as db:
            await self._ensure_users_exist(db, participants[1:])
            dm_channel = await self._create(db, ChannelType.GROUP_DM, group_name, participants, is_group=True)
            return DMChannelRead.model_validate(dm_channel)

    @staticmethod
    async def _create(
        db: AsyncSession,
        channel_type: ChannelType,
        name: str,
        recipient_ids: List[str],
        is_group: bool = False
    ) -> DMChannel:
        channel = Channel(name=name, type=int(channel_type), server_id=None, is_active=True)
        db.add(channel)
        await db.flush()

        dm_channel = DMChannel(
            channel_id=channel.id,
            recipient_ids=recipient_ids,
            participant_key=None if is_group else participant_key(*recipient_ids),
            name=name if is_group else None,
            is_group=is_group
        )
        db.add(dm_channel)
        await db.commit()
        await db.refresh(dm_channel)
        return dm_channel

    @staticmethod
    async def _ensure_users_exist(db: AsyncSession, user_ids: List[str]):
        result = await db.execute(select(User.id).where(User.id.in_(user_ids)))
        missing = set(user_ids) - set(result.scalars().all())
        if missing:
            raise NotFoundException("User not found", {"userIds": sorted(missing)})

    @staticmethod
    async def _find_direct_channel(db: AsyncSession, user_id: str, recipient_id: str) -> Optional[DMChannel]:
        result = await db.execute(
            select(DMChannel)
            .where(
                DMChannel.participant_key == participant_key(user_id, recipient_id),
                DMChannel.is_group.is_(False),
                DMChannel.is_closed.is_(False)
            )
            .order_by(DMChannel.created_at)
            .limit(1)
        )
        return result.scalar_one_or_none()
