"""Guard checks for friendship actions."""

from __future__ import annotations

import asyncpg

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
from fraterna.infra import rate_limit
from fraterna.settings import settings


async def enforce_action_limit(user_id: str) -> None:
	if not await rate_limit.allow("friends", user_id, limit=settings.friend_actions_per_minute, window_seconds=60):
		raise SocialRateLimitExceeded("per_minute")


def guard_not_self(user_id: str, target_id: str) -> None:
	if str(user_id) == str(target_id):
		raise SelfRequest()


def guard_can_request(existing: Friendship | None) -> None:
	"""A new request is allowed when there is no edge or the edge was blocked."""
	if existing is None or existing.status is FriendshipStatus.BLOCKED:
		return
	if existing.status is FriendshipStatus.ACCEPTED:
		raise AlreadyFriends()
	raise RequestAlreadyPending()


def guard_addressee_pending(friendship: Friendship | None, user_id: str) -> Friendship:
	if friendship is None or not friendship.involves(user_id):
		raise RequestNotFound()
	if friendship.addressee_id != user_id:
		raise RequestForbidden()
	if friendship.status is not FriendshipStatus.PENDING:
		raise RequestNotPending()
	return friendship


def guard_party(friendship: Friendship | None, user_id: str) -> Friendship:
	if friendship is None or not friendship.involves(user_id):
		raise RequestNotFound()
	return friendship


async def ensure_member_exists(conn: asyncpg.Connection, user_id: str) -> None:
	found = await conn.fetchval(
		"SELECT 1 FROM users WHERE id = $1::uuid AND is_active AND is_verified",
		user_id,
	)
	if not found:
		raise RequestNotFound("member_missing")
