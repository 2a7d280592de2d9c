from datetime import datetime
from sqlalchemy import Column, String, DateTime, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from revnet.database.sql import Base
from revnet.models._ids import new_id


class Server(Base):
    __tablename__ = "servers"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), unique=True, nullable=False)
    owner_id = Column(String(36), nullable=True, index=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    channels = relationship("Channel", back_populates="server")

    def __repr__(self):
        return f"<Server(id={self.id}, name={self.name}, owner_id={self.owner_id})>"


class ServerMember(Base):
    __tablename__ = "server_members"

    server_id = Column(String(36), ForeignKey("servers.id", ondelete="CASCADE"), primary_key=True)
    user_id = Column(String(36), primary_key=True, index=True)

    def __repr__(self):
        return f"<ServerMember(server_id={self.server_id}, user_id={self.user_id})>"
