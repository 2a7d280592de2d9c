import logging
from datetime import datetime

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from revnet.core.errors import ConflictException, InvalidPayloadException, NotFoundException
from revnet.models.friends import Friend, FriendStatus
from revnet.models.users import User
from revnet.schemas.records import FriendRequestRead

logger = logging.getLogger(__name__)

_EXISTING_FRIENDSHIP_ERRORS = {
    FriendStatus.ACCEPTED.value: "Users are already friends",
    FriendStatus.PENDING.value: "Friend request already pending",
    FriendStatus.BLOCKED.value: "Cannot send friend request to blocked user",
}


class FriendshipService:
    """Friend requests"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def send_request(self, user_id: str, friend_username: str) -> FriendRequestRead:
        """
        Send a friend request by username.

        Args:
            user_id: requesting user
            friend_username: username of the addressee

        Returns:
            FriendRequestRead: the pending request
        """
        async with self.session_factory() as db:
            result = await db.execute(select(User).where(User.username == friend_username))
            friend = result.scalar_one_or_none()
            if friend is None:
                raise NotFoundException("User not found")

            if friend.id == user_id:
                raise InvalidPayloadException("Cannot send friend request to yourself")

            existing = await self._find_friendship(db, user_id, friend.id)
            if existing is not None and existing.status in _EXISTING_FRIENDSHIP_ERRORS:
                raise ConflictException(_EXISTING_FRIENDSHIP_ERRORS[existing.status])

            request = Friend(
                user_id=user_id,
                friend_id=friend.id,
                status=FriendStatus.PENDING.value,
                created_at=datetime.utcnow(),
                updated_at=datetime.utcnow()
            )
            db.add(request)
            await db.commit()
            await db.refresh(request)
            return FriendRequestRead.model_validate(request)

    async def accept(self, request_id: str, user_id: str) -> FriendRequestRead:
        """Only the addressee of a pending request can accept it"""
        return await self._resolve(request_id, user_id, FriendStatus.ACCEPTED)

    async def decline(self, request_id: str, user_id: str) -> FriendRequestRead:
        return await self._resolve(request_id, user_id, FriendStatus.DECLINED)

    async def _resolve(self, request_id: str, user_id: str, status: FriendStatus) -> FriendRequestRead:
        async with self.session_factory() as db:
            result = await db.execute(
                select(Friend).where(
                    Friend.id == request_id,
                    Friend.friend_id == user_id,
                    Friend.status == FriendStatus.PENDING.value
                )
            )
            request = result.scalar_one_or_none()
            if request is None:
                raise NotFoundException("Friend request not found")

            request.status = status.value
            request.updated_at = datetime.utcnow()
            await db.commit()
            await db.refresh(request)
            return FriendRequestRead.model_validate(request)

    @staticmethod
    async def _find_friendship(db: AsyncSession, user_id_1: str, user_id_2: str):
        """Most recent relation between two users, in either direction"""
        result = await db.execute(
            select(Friend)
            .where(
                or_(
                    and_(Friend.user_id == user_id_1, Friend.friend_id == user_id_2),
                    and_(Friend.user_id == user_id_2, Friend.friend_id == user_id_1)
                )
            )
            .order_by(Friend.created_at.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()
