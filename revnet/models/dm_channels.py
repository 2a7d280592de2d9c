from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, JSON, ForeignKey
from revnet.database.sql import Base
from revnet.models._ids import new_id


class DMChannel(Base):
    __tablename__ = "dm_channels"

    id = Column(String(36), primary_key=True, default=new_id)
    channel_id = Column(String(36), ForeignKey("channels.id", ondelete="CASCADE"), nullable=False, index=True)
    recipient_ids = Column(JSON, nullable=False, default=list)
    participant_key = Column(String(80), nullable=True, index=True)  # "<low id>:<high id>", 1:1 DMs only
    name = Column(String(100), nullable=True)  # group DMs only
    is_group = Column(Boolean, default=False)
    is_closed = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<DMChannel(id={self.id}, channel_id={self.channel_id}, is_group={self.is_group})>"
