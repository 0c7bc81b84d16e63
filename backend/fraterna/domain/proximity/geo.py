"""Great-circle distance helpers."""

from __future__ import annotations

import math

EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
	"""Return the haversine distance between two points in kilometres."""

	phi1, phi2 = math.radians(lat1), math.radians(lat2)
	dphi = math.radians(lat2 - lat1)
	dlambda = math.radians(lng2 - lng1)
	a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
	# rounding can push a just outside [0, 1] for antipodal points
	a = min(1.0, max(0.0, a))
	return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def is_valid_coordinate(lat: object, lng: object) -> bool:
	if isinstance(lat, bool) or isinstance(lng, bool):
		return False
	try:
		lat_f, lng_f = float(lat), float(lng)  # type: ignore[arg-type]
	except (TypeError, ValueError):
		return False
	if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
		return False
	return -90.0 <= lat_f <= 90.0 and -180.0 <= lng_f <= 180.0
