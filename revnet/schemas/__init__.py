from .events import (
    InboundFrame,
    AuthenticatePayload,
    ChannelPayload,
    JoinChannelPayload,
    SendMessagePayload,
    EditMessagePayload,
    DeleteMessagePayload,
    VoiceOfferPayload,
    VoiceAnswerPayload,
    IceCandidatePayload,
    FriendRequestPayload,
    FriendRequestActionPayload,
    DMOpenPayload,
    GroupDMOpenPayload,
)
from .records import (
    ChannelRead,
    MessageRead,
    FriendRequestRead,
    DMChannelRead,
    ParticipantRead,
    RoomStatus,
)

__all__ = [
    "InboundFrame",
    "AuthenticatePayload",
    "ChannelPayload",
    "JoinChannelPayload",
    "SendMessagePayload",
    "EditMessagePayload",
    "DeleteMessagePayload",
    "VoiceOfferPayload",
    "VoiceAnswerPayload",
    "IceCandidatePayload",
    "FriendRequestPayload",
    "FriendRequestActionPayload",
    "DMOpenPayload",
    "GroupDMOpenPayload",
    "ChannelRead",
    "MessageRead",
    "FriendRequestRead",
    "DMChannelRead",
    "ParticipantRead",
    "RoomStatus",
]
