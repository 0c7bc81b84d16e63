"""Member profile reads and map-settings writes."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fraterna.domain.members.models import MemberProfile, MemberSummary, RADIUS_CHOICES_KM
from fraterna.domain.proximity import changes, publisher
from fraterna.domain.proximity.models import VisibilityMode
from fraterna.infra.postgres import get_pool

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 20

_PROFILE_SQL = """
SELECT u.*,
	COALESCE(
		(SELECT array_agg(r.role ORDER BY r.role) FROM user_roles r WHERE r.user_id = u.id),
		ARRAY[]::text[]
	) AS roles
FROM users u
WHERE u.id = $1::uuid
"""

# column name -> whether the change can alter someone else's visible set
_SETTINGS_COLUMNS = {
	"tracking_enabled": True,
	"stealth_mode": True,
	"location_visibility_mode": True,
	"proximity_alerts_enabled": False,
	"proximity_radius_km": False,
}


class InvalidSettings(ValueError):
	reason = "invalid_settings"


class MemberNotFound(LookupError):
	reason = "member_not_found"


async def get_member(user_id: str) -> Optional[MemberProfile]:
	pool = await get_pool()
	row = await pool.fetchrow(_PROFILE_SQL, user_id)
	if row is None:
		return None
	return MemberProfile.from_record(dict(row))


async def require_member(user_id: str) -> MemberProfile:
	member = await get_member(user_id)
	if member is None:
		raise MemberNotFound()
	return member


def _normalise_changes(changes_in: Dict[str, Any]) -> Dict[str, Any]:
	updates: Dict[str, Any] = {}
	for key, value in changes_in.items():
		if value is None:
			continue
		if key in ("visibility_mode", "location_visibility_mode"):
			try:
				key, value = "location_visibility_mode", VisibilityMode(value).value
			except ValueError:
				raise InvalidSettings("visibility_mode") from None
		elif key == "proximity_radius_km":
			if int(value) not in RADIUS_CHOICES_KM:
				raise InvalidSettings("radius")
			value = int(value)
		elif key not in _SETTINGS_COLUMNS:
			raise InvalidSettings(key)
		else:
			value = bool(value)
		updates[key] = value
	return updates


async def update_settings(user_id: str, **changes_in: Any) -> MemberProfile:
	"""Apply map/privacy settings and announce changes that affect visibility.

	Switching tracking off also removes the stored location.
	"""
	updates = _normalise_changes(changes_in)
	if not updates:
		return await require_member(user_id)
	columns = list(updates)
	assignments = ", ".join(f"{column} = ${idx + 2}" for idx, column in enumerate(columns))
	pool = await get_pool()
	status = await pool.execute(
		f"UPDATE users SET {assignments}, updated_at = now() WHERE id = $1::uuid",
		user_id,
		*[updates[column] for column in columns],
	)
	if status.endswith(" 0"):
		raise MemberNotFound()
	if updates.get("tracking_enabled") is False:
		await publisher.clear_location(user_id)
	if any(_SETTINGS_COLUMNS[column] for column in columns):
		await changes.publish_change("privacy", user_id)
	logger.info("member_settings_updated", extra={"user_id": user_id, "fields": columns})
	return await require_member(user_id)


async def set_stealth(user_id: str, enabled: bool) -> MemberProfile:
	return await update_settings(user_id, stealth_mode=enabled)


async def search_members(viewer_id: str, query: str, *, limit: int = SEARCH_LIMIT) -> List[MemberSummary]:
	term = (query or "").strip()
	if len(term) < 2:
		return []
	pattern = "%" + term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_") + "%"
	pool = await get_pool()
	rows = await pool.fetch(
		"""
		SELECT id, full_name, city, lodge
		FROM users
		WHERE id <> $1::uuid
			AND is_active
			AND is_verified
			AND (full_name ILIKE $2 OR email ILIKE $2)
		ORDER BY full_name
		LIMIT $3
		""",
		viewer_id,
		pattern,
		max(1, min(limit, SEARCH_LIMIT)),
	)
	return [MemberSummary.from_record(row) for row in rows]


async def members_exist(*user_ids: str) -> bool:
	unique_ids = list({str(uid) for uid in user_ids})
	if not unique_ids:
		return False
	pool = await get_pool()
	rows = await pool.fetch("SELECT id FROM users WHERE id = ANY($1::uuid[]) AND is_active", unique_ids)
	return len(rows) == len(unique_ids)
