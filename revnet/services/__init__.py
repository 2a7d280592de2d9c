from .membership_service import MembershipService
from .message_service import MessageService
from .friendship_service import FriendshipService
from .dm_service import DMService

__all__ = [
    "MembershipService",
    "MessageService",
    "FriendshipService",
    "DMService",
]
