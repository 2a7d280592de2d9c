from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, Boolean, ForeignKey
from revnet.database.sql import Base
from revnet.models._ids import new_id


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=new_id)
    channel_id = Column(String(36), ForeignKey("channels.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String(36), nullable=False, index=True)
    content = Column(Text, nullable=False)
    type = Column(Integer, default=0)
    pinned = Column(Boolean, default=False)
    is_active = Column(Boolean, default=True)  # soft delete flag
    edited_timestamp = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<Message(id={self.id}, channel_id={self.channel_id}, author_id={self.author_id})>"
