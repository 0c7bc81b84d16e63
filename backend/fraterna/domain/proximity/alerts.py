"""Proximity alert evaluation."""

from __future__ import annotations

import logging
import math
import time
from typing import Iterable, List, Mapping, Optional

from fraterna.domain.proximity.geo import distance_km
from fraterna.domain.proximity.models import LocationRecord, ProximityAlert, ProximityAlertState, ViewerPosition

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 5.0
DEFAULT_COOLDOWN_SECONDS = 120.0


def check_alerts(
	viewer_position: Optional[ViewerPosition],
	visible: Iterable[LocationRecord],
	radius_km: Optional[float],
	cooldown_seconds: float,
	state: ProximityAlertState,
	*,
	now: Optional[float] = None,
	max_position_age: Optional[float] = None,
	names: Optional[Mapping[str, Optional[str]]] = None,
) -> List[ProximityAlert]:
	"""Return the alerts to emit and record them in ``state``.

	A radius of zero means the viewer switched alerts off. ``None`` falls back
	to the default radius. Nothing is evaluated without a viewer position, or
	when that position is older than ``max_position_age`` seconds.
	"""

	radius = DEFAULT_RADIUS_KM if radius_km is None else float(radius_km)
	if radius <= 0 or viewer_position is None:
		return []
	now = time.time() if now is None else now
	if max_position_age is not None and now - viewer_position.acquired_at > max_position_age:
		logger.debug("proximity_alerts_skipped_stale_position", extra={"age_s": round(now - viewer_position.acquired_at, 1)})
		return []

	alerts: List[ProximityAlert] = []
	for record in visible:
		if not (math.isfinite(record.lat) and math.isfinite(record.lng)):
			continue
		distance = distance_km(viewer_position.lat, viewer_position.lng, record.lat, record.lng)
		if distance > radius:
			continue
		if not state.is_due(record.owner_id, now, cooldown_seconds):
			continue
		state.record(record.owner_id, now)
		alerts.append(
			ProximityAlert(
				owner_id=record.owner_id,
				display_name=(names or {}).get(record.owner_id),
				distance_km=distance,
				radius_km=radius,
			)
		)
	return alerts
