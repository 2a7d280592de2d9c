import pytest

from revnet.core.errors import ConflictException, InvalidPayloadException, NotFoundException
from revnet.models.friends import FriendStatus
from revnet.services.friendship_service import FriendshipService


class TestFriendshipService:
    """Friend request lifecycle"""

    @pytest.mark.asyncio
    async def test_send_request(self, session_factory, seeded):
        service = FriendshipService(session_factory)

        request = await service.send_request("member", "outsider")

        assert request.user_id == "member"
        assert request.friend_id == "outsider"
        assert request.status == FriendStatus.PENDING.value

    @pytest.mark.asyncio
    async def test_send_request_unknown_user(self, session_factory, seeded):
        service = FriendshipService(session_factory)

        with pytest.raises(NotFoundException):
            await service.send_request("member", "nobody")

    @pytest.mark.asyncio
    async def test_send_request_to_self(self, session_factory, seeded):
        service = FriendshipService(session_factory)

        with pytest.raises(InvalidPayloadException):
            await service.send_request("member", "member")

    @pytest.mark.asyncio
    async def test_duplicate_pending_request(self, session_factory, seeded):
        """A pending request blocks a new one in either direction"""
        service = FriendshipService(session_factory)
        await service.send_request("member", "outsider")

        with pytest.raises(ConflictException) as exc_info:
            await service.send_request("outsider", "member")
        assert exc_info.value.message == "Friend request already pending"

    @pytest.mark.asyncio
    async def test_accept_by_addressee(self, session_factory, seeded):
        service = FriendshipService(session_factory)
        request = await service.send_request("member", "outsider")

        accepted = await service.accept(request.id, "outsider")

        assert accepted.status == FriendStatus.ACCEPTED.value
        with pytest.raises(ConflictException) as exc_info:
            await service.send_request("member", "outsider")
        assert exc_info.value.message == "Users are already friends"

    @pytest.mark.asyncio
    async def test_accept_by_requester_is_rejected(self, session_factory, seeded):
        service = FriendshipService(session_factory)
        request = await service.send_request("member", "outsider")

        with pytest.raises(NotFoundException):
            await service.accept(request.id, "member")

    @pytest.mark.asyncio
    async def test_decline_then_request_again(self, session_factory, seeded):
        service = FriendshipService(session_factory)
        request = await service.send_request("member", "outsider")

        declined = await service.decline(request.id, "outsider")
        assert declined.status == FriendStatus.DECLINED.value

        # a resolved request cannot be resolved twice
        with pytest.raises(NotFoundException):
            await service.accept(request.id, "outsider")

        again = await service.send_request("member", "outsider")
        assert again.id != request.id
