"""Writes of a member's own location."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from fraterna.domain.proximity import changes
from fraterna.domain.proximity.geo import is_valid_coordinate
from fraterna.infra.postgres import get_pool
from fraterna.obs import metrics as obs_metrics
from fraterna.settings import settings

logger = logging.getLogger(__name__)


class LocationPaused(Exception):
	"""The owner is in stealth mode or has tracking switched off."""

	reason = "location_paused"


class InvalidLocation(ValueError):
	reason = "invalid_location"


@dataclass(slots=True)
class StoredLocation:
	owner_id: str
	lat: float
	lng: float
	accuracy_m: int
	updated_at: datetime


def clamp_accuracy(raw: Optional[float]) -> int:
	"""Coarsen a reported accuracy into the published band.

	Missing or non-finite values get the coarsest setting.
	"""
	low, high = settings.location_accuracy_min_m, settings.location_accuracy_max_m
	if raw is None or isinstance(raw, bool):
		return high
	try:
		value = float(raw)
	except (TypeError, ValueError):
		return high
	if not math.isfinite(value):
		return high
	return int(min(high, max(low, round(value))))


_UPSERT_SQL = """
INSERT INTO locations (user_id, lat, lng, accuracy_meters, updated_at)
VALUES ($1::uuid, $2, $3, $4, now())
ON CONFLICT (user_id) DO UPDATE SET
	lat = EXCLUDED.lat,
	lng = EXCLUDED.lng,
	accuracy_meters = EXCLUDED.accuracy_meters,
	updated_at = EXCLUDED.updated_at
RETURNING user_id, lat, lng, accuracy_meters, updated_at
"""


async def publish_location(user_id: str, lat: float, lng: float, accuracy: Optional[float] = None) -> StoredLocation:
	if not is_valid_coordinate(lat, lng):
		obs_metrics.inc_location_publish("invalid")
		raise InvalidLocation()
	accuracy_m = clamp_accuracy(accuracy)
	pool = await get_pool()
	async with pool.acquire() as conn:
		async with conn.transaction():
			flags = await conn.fetchrow(
				"SELECT stealth_mode, tracking_enabled FROM users WHERE id = $1::uuid FOR UPDATE",
				user_id,
			)
			if flags is None or flags["stealth_mode"] or not flags["tracking_enabled"]:
				obs_metrics.inc_location_publish("paused")
				raise LocationPaused()
			row = await conn.fetchrow(_UPSERT_SQL, user_id, float(lat), float(lng), accuracy_m)
			await conn.execute("UPDATE users SET last_seen_at = now() WHERE id = $1::uuid", user_id)
	obs_metrics.inc_location_publish("ok")
	await changes.publish_change("location", user_id)
	return StoredLocation(
		owner_id=str(row["user_id"]),
		lat=float(row["lat"]),
		lng=float(row["lng"]),
		accuracy_m=int(row["accuracy_meters"]),
		updated_at=row["updated_at"],
	)


async def clear_location(user_id: str) -> bool:
	pool = await get_pool()
	status = await pool.execute("DELETE FROM locations WHERE user_id = $1::uuid", user_id)
	removed = status.endswith(" 1")
	if removed:
		obs_metrics.inc_location_publish("cleared")
		await changes.publish_change("location", user_id)
	return removed
