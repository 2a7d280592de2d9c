import enum
from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from revnet.database.sql import Base
from revnet.models._ids import new_id


class ChannelType(enum.IntEnum):
    TEXT = 0
    DM = 1
    VOICE = 2
    GROUP_DM = 3
    CATEGORY = 4


class Channel(Base):
    __tablename__ = "channels"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    type = Column(Integer, default=ChannelType.TEXT, nullable=False)
    position = Column(Integer, default=0)
    is_active = Column(Boolean, default=True)
    server_id = Column(String(36), ForeignKey("servers.id", ondelete="CASCADE"), nullable=True, index=True)  # None for DMs
    created_at = Column(DateTime, default=datetime.utcnow)

    server = relationship("Server", back_populates="channels")

    def __repr__(self):
        return f"<Channel(id={self.id}, name={self.name}, type={self.type})>"
