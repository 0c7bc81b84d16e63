import pytest

from fraterna.domain.social import policy
from fraterna.domain.social.exceptions import (
	AlreadyFriends,
	RequestAlreadyPending,
	RequestForbidden,
	RequestNotFound,
	RequestNotPending,
	SelfRequest,
	SocialRateLimitExceeded,
)
from fraterna.domain.social.models import Friendship, FriendshipStatus
from fraterna.settings import settings

ALICE = "11111111-1111-1111-1111-111111111111"
BOB = "22222222-2222-2222-2222-222222222222"
CAROL = "33333333-3333-3333-3333-333333333333"


def _edge(status: FriendshipStatus, requester: str = ALICE, addressee: str = BOB) -> Friendship:
	return Friendship(id="f-1", requester_id=requester, addressee_id=addressee, status=status)


@pytest.mark.asyncio
async def test_enforce_action_limit_per_minute(fake_redis, monkeypatch):
	monkeypatch.setattr(settings, "friend_actions_per_minute", 3)
	for _ in range(3):
		await policy.enforce_action_limit(ALICE)
	with pytest.raises(SocialRateLimitExceeded) as exc_info:
		await policy.enforce_action_limit(ALICE)
	assert "per_minute" in str(exc_info.value)


def test_guard_not_self():
	with pytest.raises(SelfRequest):
		policy.guard_not_self(ALICE, ALICE)
	policy.guard_not_self(ALICE, BOB)


def test_guard_can_request_states():
	policy.guard_can_request(None)
	policy.guard_can_request(_edge(FriendshipStatus.BLOCKED))
	with pytest.raises(AlreadyFriends):
		policy.guard_can_request(_edge(FriendshipStatus.ACCEPTED))
	with pytest.raises(RequestAlreadyPending):
		policy.guard_can_request(_edge(FriendshipStatus.PENDING))


def test_only_addressee_may_answer_pending_request():
	edge = _edge(FriendshipStatus.PENDING)
	assert policy.guard_addressee_pending(edge, BOB) is edge
	with pytest.raises(RequestForbidden):
		policy.guard_addressee_pending(edge, ALICE)
	with pytest.raises(RequestNotFound):
		policy.guard_addressee_pending(edge, CAROL)
	with pytest.raises(RequestNotFound):
		policy.guard_addressee_pending(None, BOB)


def test_answered_request_is_not_pending():
	with pytest.raises(RequestNotPending):
		policy.guard_addressee_pending(_edge(FriendshipStatus.ACCEPTED), BOB)


def test_guard_party_rejects_outsiders():
	edge = _edge(FriendshipStatus.ACCEPTED)
	assert policy.guard_party(edge, ALICE) is edge
	with pytest.raises(RequestNotFound):
		policy.guard_party(edge, CAROL)
