"""Domain models used by the member map."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from fraterna.domain.proximity.geo import is_valid_coordinate


class VisibilityMode(str, Enum):
	"""Who may see an owner's location."""

	PUBLIC = "public"
	FRIENDS = "friends"
	FRIENDS_SELECTED = "friends_selected"


DEFAULT_VISIBILITY_MODE = VisibilityMode.FRIENDS


def parse_visibility_mode(raw: Any) -> Optional[VisibilityMode]:
	"""Return the mode, or None for anything unrecognised."""
	if isinstance(raw, VisibilityMode):
		return raw
	try:
		return VisibilityMode(str(raw))
	except ValueError:
		return None


class MalformedRecord(ValueError):
	"""A stored row could not be turned into a domain object."""


@dataclass(slots=True)
class ViewerPosition:
	lat: float
	lng: float
	acquired_at: float


@dataclass(slots=True)
class LocationRecord:
	"""One member's last published, accuracy-coarsened location."""

	owner_id: str
	lat: float
	lng: float
	accuracy_m: int
	updated_at: Optional[datetime] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "LocationRecord":
		try:
			owner_id = str(record["user_id"])
			lat = float(record["lat"])
			lng = float(record["lng"])
			accuracy = int(record["accuracy_meters"])
		except (KeyError, TypeError, ValueError) as exc:
			raise MalformedRecord(str(exc)) from exc
		if not owner_id or not is_valid_coordinate(lat, lng):
			raise MalformedRecord("invalid_coordinates")
		return cls(
			owner_id=owner_id,
			lat=lat,
			lng=lng,
			accuracy_m=accuracy,
			updated_at=record.get("updated_at"),
		)


@dataclass(slots=True)
class OwnerProfile:
	"""Privacy attributes of a location owner, as seen by the resolver."""

	owner_id: str
	stealth_mode: bool = False
	tracking_enabled: bool = True
	visibility_mode: Optional[VisibilityMode] = DEFAULT_VISIBILITY_MODE
	display_name: Optional[str] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "OwnerProfile":
		return cls(
			owner_id=str(record["user_id"]),
			stealth_mode=bool(record.get("stealth_mode")),
			tracking_enabled=bool(record.get("tracking_enabled", False)),
			visibility_mode=parse_visibility_mode(record.get("location_visibility_mode")),
			display_name=record.get("full_name"),
		)


@dataclass(slots=True)
class ViewerSettings:
	"""The viewer's own map preferences."""

	stealth_mode: bool = False
	tracking_enabled: bool = True
	alerts_enabled: bool = True
	radius_km: Optional[float] = None

	@property
	def publishing_enabled(self) -> bool:
		return self.tracking_enabled and not self.stealth_mode

	def alert_radius_km(self, default: float) -> float:
		if not self.alerts_enabled:
			return 0.0
		if self.radius_km is None:
			return default
		return float(self.radius_km)


@dataclass(slots=True)
class ProximityAlert:
	owner_id: str
	display_name: Optional[str]
	distance_km: float
	radius_km: float

	def to_payload(self) -> Dict[str, Any]:
		return {
			"owner_id": self.owner_id,
			"display_name": self.display_name,
			"distance_km": round(self.distance_km, 2),
			"radius_km": self.radius_km,
		}


@dataclass
class ProximityAlertState:
	"""Per-viewer record of when each owner last triggered an alert.

	Lives in memory only and is owned by whoever evaluates alerts for the viewer.
	"""

	last_notified: Dict[str, float] = field(default_factory=dict)

	def is_due(self, owner_id: str, now: float, cooldown_seconds: float) -> bool:
		last = self.last_notified.get(owner_id)
		return last is None or now - last >= cooldown_seconds

	def record(self, owner_id: str, now: float) -> None:
		self.last_notified[owner_id] = now

	def clear(self) -> None:
		self.last_notified.clear()


@dataclass(slots=True)
class Marker:
	owner_id: str
	lat: float
	lng: float
	accuracy_m: int
	display_name: Optional[str] = None

	def to_payload(self) -> Dict[str, Any]:
		return {
			"owner_id": self.owner_id,
			"lat": self.lat,
			"lng": self.lng,
			"accuracy_m": self.accuracy_m,
			"display_name": self.display_name,
		}
