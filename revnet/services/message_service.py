import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revnet.core.config import settings
from revnet.core.errors import ForbiddenException, NotFoundException
from revnet.models.channels import Channel
from revnet.models.messages import Message
from revnet.models.servers import Server
from revnet.schemas.records import MessageRead

logger = logging.getLogger(__name__)


class MessageService:
    """Channel message persistence"""

    def __init__(self, session_factory: async_sessionmaker, edit_window_hours: Optional[int] = None):
        self.session_factory = session_factory
        self.edit_window = timedelta(
            hours=edit_window_hours if edit_window_hours is not None else settings.message_edit_window_hours
        )

    async def append(self, channel_id: str, author_id: str, content: str, type: int = 0) -> MessageRead:
        """
        Store a new message.

        Args:
            channel_id: target channel, must exist and be active
            author_id: sending user
            content: message text
            type: message type code (0 = default)

        Returns:
            MessageRead: the stored message
        """
        async with self.session_factory() as db:
            channel = await db.get(Channel, channel_id)
            if channel is None or not channel.is_active:
                raise NotFoundException("Channel not found")

            message = Message(
                channel_id=channel_id,
                author_id=author_id,
                content=content,
                type=type,
                created_at=datetime.utcnow()
            )
            db.add(message)
            await db.commit()
            await db.refresh(message)
            return MessageRead.model_validate(message)

    async def recent(self, channel_id: str, limit: int) -> Tuple[List[MessageRead], int]:
        """Latest ``limit`` active messages in chronological order, plus the total count"""
        async with self.session_factory() as db:
            total = await db.scalar(
                select(func.count(Message.id)).where(
                    Message.channel_id == channel_id, Message.is_active.is_(True)
                )
            )
            result = await db.execute(
                select(Message)
                .where(Message.channel_id == channel_id, Message.is_active.is_(True))
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(limit)
            )
            messages = [MessageRead.model_validate(m) for m in result.scalars().all()]
            messages.reverse()
            return messages, total or 0

    async def edit(self, message_id: str, user_id: str, content: str) -> MessageRead:
        async with self.session_factory() as db:
            message = await self._find_active_message(db, message_id)

            if message.author_id != user_id:
                raise ForbiddenException("You can only edit your own messages")

            if datetime.utcnow() - message.created_at > self.edit_window:
                raise ForbiddenException(
                    f"Messages can only be edited within {int(self.edit_window.total_seconds() // 3600)} hours of posting"
                )

            message.content = content
            message.edited_timestamp = datetime.utcnow()
            await db.commit()
            await db.refresh(message)
            return MessageRead.model_validate(message)

    async def delete(self, message_id: str, user_id: str) -> MessageRead:
        """Soft delete; allowed for the author or the owner of the channel's server"""
        async with self.session_factory() as db:
            message = await self._find_active_message(db, message_id)

            if message.author_id != user_id and not await self._is_server_owner(db, message.channel_id, user_id):
                raise ForbiddenException("You can only delete your own messages or be a server owner")

            message.is_active = False
            await db.commit()
            await db.refresh(message)
            return MessageRead.model_validate(message)

    @staticmethod
    async def _find_active_message(db: AsyncSession, message_id: str) -> Message:
        result = await db.execute(
            select(Message).where(Message.id == message_id, Message.is_active.is_(True))
        )
        message = result.scalar_one_or_none()
        if message is None:
            raise NotFoundException("Message not found")
        return message

    @staticmethod
    async def _is_server_owner(db: AsyncSession, channel_id: str, user_id: str) -> bool:
        result = await db.execute(
            select(Server.owner_id)
            .join(Channel, Channel.server_id == Server.id)
            .where(Channel.id == channel_id)
        )
        return result.scalar_one_or_none() == user_id
