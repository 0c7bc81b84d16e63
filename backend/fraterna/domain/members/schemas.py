"""Pydantic schemas for profile endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from fraterna.domain.members.models import RADIUS_CHOICES_KM


class ProfileResponse(BaseModel):
    id: str
    email: str
    full_name: str
    city: str
    country: str
    lodge: str
    is_verified: bool
    verification_status: str
    tracking_enabled: bool
    stealth_mode: bool
    visibility_mode: str
    proximity_alerts_enabled: bool
    proximity_radius_km: int
    roles: List[str] = Field(default_factory=list)
    last_seen_at: Optional[datetime] = None


class SettingsPatch(BaseModel):
    tracking_enabled: Optional[bool] = None
    stealth_mode: Optional[bool] = None
    visibility_mode: Optional[Literal["public", "friends", "friends_selected"]] = None
    proximity_alerts_enabled: Optional[bool] = None
    proximity_radius_km: Optional[int] = None

    @field_validator("proximity_radius_km")
    @classmethod
    def _radius_choice(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value not in RADIUS_CHOICES_KM:
            raise ValueError(f"radius must be one of {RADIUS_CHOICES_KM}")
        return value


class MemberSummaryResponse(BaseModel):
    id: str
    full_name: str
    city: str
    lodge: str
