"""Pydantic schemas for the locations API."""

from __future__ import annotations

import math
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class PublishLocationRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(default=None, ge=0)

    @field_validator("lat", "lng")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinate must be finite")
        return value


class StoredLocationResponse(BaseModel):
    owner_id: str
    lat: float
    lng: float
    accuracy_m: int
    updated_at: datetime


class VisibleLocationItem(BaseModel):
    owner_id: str
    display_name: Optional[str] = None
    lat: float
    lng: float
    accuracy_m: int
    updated_at: Optional[datetime] = None
    distance_km: Optional[float] = None


class VisibleLocationsResponse(BaseModel):
    items: List[VisibleLocationItem]


class EmergencyStatusResponse(BaseModel):
    available: bool
    others_count: int
