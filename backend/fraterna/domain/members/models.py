"""Member profile model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional, Tuple

from fraterna.domain.proximity.models import (
	DEFAULT_VISIBILITY_MODE,
	VisibilityMode,
	ViewerSettings,
	parse_visibility_mode,
)


class VerificationStatus(str, Enum):
	PENDING = "pending"
	VERIFIED = "verified"
	BLOCKED = "blocked"
	MANUAL_REVIEW = "manual_review"


# 0 switches proximity alerts off
RADIUS_CHOICES_KM = (0, 1, 5, 10)
MODERATOR_ROLES = ("admin", "ceo")


@dataclass(slots=True)
class MemberProfile:
	id: str
	email: str
	full_name: str
	city: str
	country: str
	lodge: str
	is_verified: bool = False
	verification_status: VerificationStatus = VerificationStatus.PENDING
	is_active: bool = True
	tracking_enabled: bool = True
	stealth_mode: bool = False
	visibility_mode: VisibilityMode = DEFAULT_VISIBILITY_MODE
	proximity_alerts_enabled: bool = True
	proximity_radius_km: int = 5
	roles: Tuple[str, ...] = ()
	last_seen_at: Optional[datetime] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "MemberProfile":
		roles = record.get("roles") or ()
		return cls(
			id=str(record["id"]),
			email=record["email"],
			full_name=record["full_name"],
			city=record["city"],
			country=record["country"],
			lodge=record["lodge"],
			is_verified=bool(record["is_verified"]),
			verification_status=VerificationStatus(record["verification_status"]),
			is_active=bool(record["is_active"]),
			tracking_enabled=bool(record["tracking_enabled"]),
			stealth_mode=bool(record["stealth_mode"]),
			visibility_mode=parse_visibility_mode(record["location_visibility_mode"]) or DEFAULT_VISIBILITY_MODE,
			proximity_alerts_enabled=bool(record["proximity_alerts_enabled"]),
			proximity_radius_km=int(record["proximity_radius_km"]),
			roles=tuple(str(role) for role in roles),
			last_seen_at=record.get("last_seen_at"),
		)

	@property
	def is_moderator(self) -> bool:
		return any(role in MODERATOR_ROLES for role in self.roles)

	def viewer_settings(self) -> ViewerSettings:
		return ViewerSettings(
			stealth_mode=self.stealth_mode,
			tracking_enabled=self.tracking_enabled,
			alerts_enabled=self.proximity_alerts_enabled,
			radius_km=float(self.proximity_radius_km),
		)


@dataclass(slots=True)
class MemberSummary:
	id: str
	full_name: str
	city: str
	lodge: str

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "MemberSummary":
		return cls(
			id=str(record["id"]),
			full_name=record["full_name"],
			city=record["city"],
			lodge=record["lodge"],
		)
