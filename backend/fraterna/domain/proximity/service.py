"""Server-side visible-set resolution and the Postgres-backed map gateway."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from fraterna.domain.members import service as members_service
from fraterna.domain.proximity import publisher
from fraterna.domain.proximity.geo import distance_km
from fraterna.domain.proximity.models import (
	LocationRecord,
	MalformedRecord,
	OwnerProfile,
	ViewerSettings,
)
from fraterna.domain.proximity.visibility import (
	AllowlistIndex,
	AllowlistLookup,
	FriendshipIndex,
	FriendshipLookup,
	UnavailableIndex,
	VisibilitySnapshot,
	resolve_snapshot,
)
from fraterna.infra.postgres import get_pool
from fraterna.obs import metrics as obs_metrics
from fraterna.settings import settings

logger = logging.getLogger(__name__)

# Only verified, active owners are ever candidates.
_CANDIDATES_SQL = """
SELECT l.user_id, l.lat, l.lng, l.accuracy_meters, l.updated_at,
	u.full_name, u.stealth_mode, u.tracking_enabled, u.location_visibility_mode
FROM locations l
JOIN users u ON u.id = l.user_id
WHERE l.user_id <> $1::uuid
	AND u.is_verified
	AND u.is_active
"""


@dataclass(slots=True)
class VisibleLocation:
	owner_id: str
	display_name: Optional[str]
	lat: float
	lng: float
	accuracy_m: int
	updated_at: Optional[datetime]
	distance_km: Optional[float] = None


@dataclass(slots=True)
class EmergencyStatus:
	available: bool
	others_count: int


async def load_own_location(user_id: str) -> Optional[LocationRecord]:
	pool = await get_pool()
	row = await pool.fetchrow(
		"SELECT user_id, lat, lng, accuracy_meters, updated_at FROM locations WHERE user_id = $1::uuid",
		user_id,
	)
	if row is None:
		return None
	try:
		return LocationRecord.from_record(row)
	except MalformedRecord:
		logger.warning("own_location_malformed", extra={"user_id": user_id})
		return None


async def load_friendships(viewer_id: str, owner_ids: Sequence[str]) -> FriendshipIndex:
	index = FriendshipIndex()
	if not owner_ids:
		return index
	pool = await get_pool()
	rows = await pool.fetch(
		"""
		SELECT requester_id, addressee_id
		FROM friendships
		WHERE status = 'accepted'
			AND (
				(requester_id = $1::uuid AND addressee_id = ANY($2::uuid[]))
				OR (addressee_id = $1::uuid AND requester_id = ANY($2::uuid[]))
			)
		""",
		viewer_id,
		list(owner_ids),
	)
	for row in rows:
		index.add(str(row["requester_id"]), str(row["addressee_id"]))
	return index


async def load_allowlist(viewer_id: str, owner_ids: Sequence[str]) -> AllowlistIndex:
	index = AllowlistIndex()
	if not owner_ids:
		return index
	pool = await get_pool()
	rows = await pool.fetch(
		"""
		SELECT owner_id, viewer_id
		FROM location_allowlist
		WHERE viewer_id = $1::uuid AND owner_id = ANY($2::uuid[])
		""",
		viewer_id,
		list(owner_ids),
	)
	for row in rows:
		index.add(str(row["owner_id"]), str(row["viewer_id"]))
	return index


async def load_snapshot(viewer_id: str) -> VisibilitySnapshot:
	"""Load candidates plus the relationship indexes the resolver needs.

	A failed candidate query propagates. A failed relationship query yields an
	index that raises on use, so the resolver hides whoever depends on it.
	"""
	pool = await get_pool()
	rows = await pool.fetch(_CANDIDATES_SQL, viewer_id)
	snapshot = VisibilitySnapshot()
	for row in rows:
		try:
			record = LocationRecord.from_record(row)
			profile = OwnerProfile.from_record(row)
		except (MalformedRecord, KeyError):
			logger.debug("location_row_skipped", extra={"owner_id": str(row.get("user_id"))})
			continue
		snapshot.candidates.append(record)
		snapshot.profiles[record.owner_id] = profile
	owner_ids = [record.owner_id for record in snapshot.candidates]

	friendships: FriendshipLookup
	allowlist: AllowlistLookup
	try:
		friendships = await load_friendships(viewer_id, owner_ids)
	except Exception:
		logger.warning("friendship_index_unavailable", extra={"viewer_id": viewer_id}, exc_info=True)
		friendships = UnavailableIndex("friendships")
	try:
		allowlist = await load_allowlist(viewer_id, owner_ids)
	except Exception:
		logger.warning("allowlist_index_unavailable", extra={"viewer_id": viewer_id}, exc_info=True)
		allowlist = UnavailableIndex("allowlist")
	snapshot.friendships = friendships
	snapshot.allowlist = allowlist
	return snapshot


async def get_visible_locations(viewer_id: str) -> List[VisibleLocation]:
	snapshot = await load_snapshot(viewer_id)
	visible = resolve_snapshot(viewer_id, snapshot)
	obs_metrics.observe_visible_fetch("ok", len(visible))
	own = await load_own_location(viewer_id)
	results: List[VisibleLocation] = []
	for record in visible:
		results.append(
			VisibleLocation(
				owner_id=record.owner_id,
				display_name=snapshot.display_name(record.owner_id),
				lat=record.lat,
				lng=record.lng,
				accuracy_m=record.accuracy_m,
				updated_at=record.updated_at,
				distance_km=distance_km(own.lat, own.lng, record.lat, record.lng) if own else None,
			)
		)
	results.sort(key=lambda item: (item.distance_km is None, item.distance_km or 0.0))
	return results


def count_nearby(
	origin: LocationRecord,
	visible: Sequence[LocationRecord],
	*,
	radius_km: float,
	fresh_after: datetime,
) -> int:
	count = 0
	for record in visible:
		if record.updated_at is None or record.updated_at < fresh_after:
			continue
		if distance_km(origin.lat, origin.lng, record.lat, record.lng) <= radius_km:
			count += 1
	return count


async def emergency_status(viewer_id: str, *, now: Optional[datetime] = None) -> EmergencyStatus:
	"""Whether enough members are close by to open the emergency channel.

	Only members the caller can already see are counted, so the answer never
	reveals anyone hidden from them.
	"""
	closed = EmergencyStatus(available=False, others_count=0)
	try:
		own = await load_own_location(viewer_id)
		if own is None:
			return closed
		snapshot = await load_snapshot(viewer_id)
	except Exception:
		logger.warning("emergency_status_unavailable", extra={"viewer_id": viewer_id}, exc_info=True)
		return closed
	now = now or datetime.now(timezone.utc)
	others = count_nearby(
		own,
		resolve_snapshot(viewer_id, snapshot),
		radius_km=settings.emergency_radius_km,
		fresh_after=now - timedelta(minutes=settings.emergency_fresh_minutes),
	)
	return EmergencyStatus(available=others + 1 >= settings.emergency_min_members, others_count=others)


class PostgresLocationGateway:
	"""Map controller gateway backed by the service functions above."""

	async def load_snapshot(self, viewer_id: str) -> VisibilitySnapshot:
		return await load_snapshot(viewer_id)

	async def publish_location(self, owner_id: str, lat: float, lng: float, accuracy_m: Optional[float]) -> None:
		await publisher.publish_location(owner_id, lat, lng, accuracy_m)

	async def load_viewer_settings(self, viewer_id: str) -> ViewerSettings:
		member = await members_service.require_member(viewer_id)
		return member.viewer_settings()

	async def set_stealth(self, viewer_id: str, enabled: bool) -> None:
		await members_service.set_stealth(viewer_id, enabled)
