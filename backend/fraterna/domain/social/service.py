"""Friend requests, friendship transitions and the location allowlist.

Every transition that can change who sees whom on the map publishes a
location change notification.
"""

from __future__ import annotations

import logging
from typing import List, Optional

import asyncpg

from fraterna.domain.proximity import changes
from fraterna.domain.social import policy, sockets
from fraterna.domain.social.models import (
	AllowlistEntry,
	FriendEntry,
	Friendship,
	FriendshipStatus,
	FriendsOverview,
)
from fraterna.infra.postgres import get_pool
from fraterna.obs import metrics as obs_metrics

logger = logging.getLogger(__name__)

_EDGE_FOR_PAIR_SQL = """
SELECT * FROM friendships
WHERE (requester_id = $1::uuid AND addressee_id = $2::uuid)
	OR (requester_id = $2::uuid AND addressee_id = $1::uuid)
FOR UPDATE
"""

_OVERVIEW_SQL = """
SELECT f.id, f.requester_id, f.addressee_id, f.status, f.updated_at,
	u.id AS other_id, u.full_name, u.city, u.lodge
FROM friendships f
JOIN users u ON u.id = CASE WHEN f.requester_id = $1::uuid THEN f.addressee_id ELSE f.requester_id END
WHERE (f.requester_id = $1::uuid OR f.addressee_id = $1::uuid)
	AND f.status IN ('pending', 'accepted')
ORDER BY u.full_name
"""


async def _load_edge(conn: asyncpg.Connection, friendship_id: str) -> Optional[Friendship]:
	row = await conn.fetchrow("SELECT * FROM friendships WHERE id = $1::uuid FOR UPDATE", friendship_id)
	return Friendship.from_record(row) if row else None


async def _set_status(conn: asyncpg.Connection, friendship_id: str, status: FriendshipStatus) -> Friendship:
	row = await conn.fetchrow(
		"UPDATE friendships SET status = $2, updated_at = now() WHERE id = $1::uuid RETURNING *",
		friendship_id,
		status.value,
	)
	return Friendship.from_record(row)


def _payload(friendship: Friendship) -> dict:
	return {
		"id": friendship.id,
		"requester_id": friendship.requester_id,
		"addressee_id": friendship.addressee_id,
		"status": friendship.status.value,
	}


async def _announce(friendship: Friendship, event: str, *, visibility_changed: bool) -> None:
	payload = _payload(friendship)
	await sockets.emit_friend_event(friendship.requester_id, event, payload)
	await sockets.emit_friend_event(friendship.addressee_id, event, payload)
	if visibility_changed:
		await changes.publish_change("friendship", friendship.id)


async def list_friends(user_id: str) -> FriendsOverview:
	pool = await get_pool()
	rows = await pool.fetch(_OVERVIEW_SQL, user_id)
	overview = FriendsOverview(incoming=[], outgoing=[], friends=[])
	for row in rows:
		entry = FriendEntry(
			friendship_id=str(row["id"]),
			user_id=str(row["other_id"]),
			full_name=row["full_name"],
			city=row["city"],
			lodge=row["lodge"],
			status=FriendshipStatus(row["status"]),
			updated_at=row["updated_at"],
		)
		if entry.status is FriendshipStatus.ACCEPTED:
			overview.friends.append(entry)
		elif str(row["addressee_id"]) == user_id:
			overview.incoming.append(entry)
		else:
			overview.outgoing.append(entry)
	return overview


async def send_request(user_id: str, target_id: str) -> Friendship:
	"""Open a pending request, or reopen a blocked edge with the caller as requester."""
	policy.guard_not_self(user_id, target_id)
	await policy.enforce_action_limit(user_id)
	pool = await get_pool()
	async with pool.acquire() as conn:
		async with conn.transaction():
			await policy.ensure_member_exists(conn, target_id)
			row = await conn.fetchrow(_EDGE_FOR_PAIR_SQL, user_id, target_id)
			existing = Friendship.from_record(row) if row else None
			policy.guard_can_request(existing)
			if existing is None:
				row = await conn.fetchrow(
					"""
					INSERT INTO friendships (requester_id, addressee_id, status)
					VALUES ($1::uuid, $2::uuid, 'pending')
					RETURNING *
					""",
					user_id,
					target_id,
				)
			else:
				row = await conn.fetchrow(
					"""
					UPDATE friendships
					SET requester_id = $2::uuid, addressee_id = $3::uuid, status = 'pending', updated_at = now()
					WHERE id = $1::uuid
					RETURNING *
					""",
					existing.id,
					user_id,
					target_id,
				)
	friendship = Friendship.from_record(row)
	obs_metrics.inc_friend_action("request")
	logger.info("friend_request_sent", extra={"friendship_id": friendship.id})
	await _announce(friendship, "friend:request", visibility_changed=False)
	return friendship


async def accept_request(user_id: str, friendship_id: str) -> Friendship:
	await policy.enforce_action_limit(user_id)
	pool = await get_pool()
	async with pool.acquire() as conn:
		async with conn.transaction():
			policy.guard_addressee_pending(await _load_edge(conn, friendship_id), user_id)
			friendship = await _set_status(conn, friendship_id, FriendshipStatus.ACCEPTED)
	obs_metrics.inc_friend_action("accept")
	await _announce(friendship, "friend:update", visibility_changed=True)
	return friendship


async def decline_request(user_id: str, friendship_id: str) -> Friendship:
	await policy.enforce_action_limit(user_id)
	pool = await get_pool()
	async with pool.acquire() as conn:
		async with conn.transaction():
			policy.guard_addressee_pending(await _load_edge(conn, friendship_id), user_id)
			friendship = await _set_status(conn, friendship_id, FriendshipStatus.BLOCKED)
	obs_metrics.inc_friend_action("decline")
	await _announce(friendship, "friend:update", visibility_changed=False)
	return friendship


async def block(user_id: str, friendship_id: str) -> Friendship:
	await policy.enforce_action_limit(user_id)
	pool = await get_pool()
	async with pool.acquire() as conn:
		async with conn.transaction():
			edge = policy.guard_party(await _load_edge(conn, friendship_id), user_id)
			was_accepted = edge.status is FriendshipStatus.ACCEPTED
			friendship = await _set_status(conn, friendship_id, FriendshipStatus.BLOCKED)
	obs_metrics.inc_friend_action("block")
	await _announce(friendship, "friend:update", visibility_changed=was_accepted)
	return friendship


async def remove(user_id: str, friendship_id: str) -> Friendship:
	await policy.enforce_action_limit(user_id)
	pool = await get_pool()
	async with pool.acquire() as conn:
		async with conn.transaction():
			edge = policy.guard_party(await _load_edge(conn, friendship_id), user_id)
			await conn.execute("DELETE FROM friendships WHERE id = $1::uuid", friendship_id)
	obs_metrics.inc_friend_action("remove")
	await _announce(edge, "friend:removed", visibility_changed=edge.status is FriendshipStatus.ACCEPTED)
	return edge


async def list_allowlist(owner_id: str) -> List[AllowlistEntry]:
	pool = await get_pool()
	rows = await pool.fetch(
		"""
		SELECT a.owner_id, a.viewer_id, a.created_at, u.full_name
		FROM location_allowlist a
		JOIN users u ON u.id = a.viewer_id
		WHERE a.owner_id = $1::uuid
		ORDER BY u.full_name
		""",
		owner_id,
	)
	return [
		AllowlistEntry(
			owner_id=str(row["owner_id"]),
			viewer_id=str(row["viewer_id"]),
			full_name=row["full_name"],
			created_at=row["created_at"],
		)
		for row in rows
	]


async def add_to_allowlist(owner_id: str, viewer_id: str) -> AllowlistEntry:
	policy.guard_not_self(owner_id, viewer_id)
	await policy.enforce_action_limit(owner_id)
	pool = await get_pool()
	async with pool.acquire() as conn:
		async with conn.transaction():
			await policy.ensure_member_exists(conn, viewer_id)
			row = await conn.fetchrow(
				"""
				INSERT INTO location_allowlist (owner_id, viewer_id)
				VALUES ($1::uuid, $2::uuid)
				ON CONFLICT (owner_id, viewer_id) DO UPDATE SET owner_id = EXCLUDED.owner_id
				RETURNING owner_id, viewer_id, created_at
				""",
				owner_id,
				viewer_id,
			)
	obs_metrics.inc_friend_action("allowlist_add")
	await changes.publish_change("allowlist", owner_id)
	return AllowlistEntry(owner_id=str(row["owner_id"]), viewer_id=str(row["viewer_id"]), created_at=row["created_at"])


async def remove_from_allowlist(owner_id: str, viewer_id: str) -> bool:
	await policy.enforce_action_limit(owner_id)
	pool = await get_pool()
	status = await pool.execute(
		"DELETE FROM location_allowlist WHERE owner_id = $1::uuid AND viewer_id = $2::uuid",
		owner_id,
		viewer_id,
	)
	removed = status.endswith(" 1")
	if removed:
		obs_metrics.inc_friend_action("allowlist_remove")
		await changes.publish_change("allowlist", owner_id)
	return removed
