"""Inbound WebSocket frames and per-event payloads (camelCase on the wire)."""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InboundFrame(BaseModel):
    """Envelope of every client frame"""
    event: str = Field(..., min_length=1, description="Event name")
    data: Dict[str, Any] = Field(default_factory=dict, description="Event payload")


class AuthenticatePayload(WireModel):
    token: str = Field(..., min_length=1)


class ChannelPayload(WireModel):
    """Payload of events that only name a channel"""
    channel_id: str = Field(..., min_length=1)


class JoinChannelPayload(ChannelPayload):
    server_id: Optional[str] = None


class SendMessagePayload(ChannelPayload):
    content: str = Field(..., min_length=1, max_length=4000)
    type: int = Field(default=0, ge=0)


class EditMessagePayload(WireModel):
    message_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1, max_length=4000)


class DeleteMessagePayload(WireModel):
    message_id: str = Field(..., min_length=1)


class SignalPayload(WireModel):
    channel_id: Optional[str] = None
    target_user_id: str = Field(..., min_length=1)


class VoiceOfferPayload(SignalPayload):
    offer: Any


class VoiceAnswerPayload(SignalPayload):
    answer: Any


class IceCandidatePayload(SignalPayload):
    candidate: Any


class FriendRequestPayload(WireModel):
    friend_username: str = Field(..., min_length=1, max_length=50)


class FriendRequestActionPayload(WireModel):
    request_id: str = Field(..., min_length=1)


class DMOpenPayload(WireModel):
    recipient_id: str = Field(..., min_length=1)


class GroupDMOpenPayload(WireModel):
    recipient_ids: List[str] = Field(..., min_length=1)
    name: Optional[str] = Field(None, max_length=100)
