import enum
from datetime import datetime
from sqlalchemy import Column, String, DateTime
from revnet.database.sql import Base
from revnet.models._ids import new_id


class FriendStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    BLOCKED = "blocked"


class Friend(Base):
    __tablename__ = "friends"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), nullable=False, index=True)  # requester
    friend_id = Column(String(36), nullable=False, index=True)  # addressee
    status = Column(String(20), default=FriendStatus.PENDING.value)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Friend(user_id={self.user_id}, friend_id={self.friend_id}, status={self.status})>"
