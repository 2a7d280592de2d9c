"""Records returned by the collaborators and sent to clients."""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class RecordModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class ChannelRead(RecordModel):
    id: str
    name: str
    type: int
    server_id: Optional[str] = None
    is_active: bool = True


class MessageRead(RecordModel):
    id: str
    channel_id: str
    author_id: str
    content: str
    type: int = 0
    pinned: bool = False
    edited_timestamp: Optional[datetime] = None
    created_at: datetime


class FriendRequestRead(RecordModel):
    id: str
    user_id: str
    friend_id: str
    status: str
    created_at: Optional[datetime] = None


class DMChannelRead(RecordModel):
    id: str
    channel_id: str
    recipient_ids: List[str] = Field(default_factory=list)
    name: Optional[str] = None
    is_group: bool = False


class ParticipantRead(RecordModel):
    user_id: str
    username: str


class RoomStatus(RecordModel):
    room_key: str
    online_users: List[str]
    online_count: int
    is_active: bool
