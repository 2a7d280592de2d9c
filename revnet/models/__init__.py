from .users import User
from .servers import Server, ServerMember
from .channels import Channel, ChannelType
from .messages import Message
from .friends import Friend, FriendStatus
from .dm_channels import DMChannel

__all__ = [
    "User",
    "Server",
    "ServerMember",
    "Channel",
    "ChannelType",
    "Message",
    "Friend",
    "FriendStatus",
    "DMChannel",
]
