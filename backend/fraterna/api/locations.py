"""REST API surface for the member map."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from fraterna.domain.members.models import MemberProfile
from fraterna.domain.proximity import publisher, service
from fraterna.domain.proximity.schemas import (
	EmergencyStatusResponse,
	PublishLocationRequest,
	StoredLocationResponse,
	VisibleLocationItem,
	VisibleLocationsResponse,
)
from fraterna.api.security_deps import get_verified_member

router = APIRouter()


@router.post("/locations/me", response_model=StoredLocationResponse)
async def publish_own_location(
	payload: PublishLocationRequest,
	member: MemberProfile = Depends(get_verified_member),
) -> StoredLocationResponse:
	try:
		stored = await publisher.publish_location(member.id, payload.lat, payload.lng, payload.accuracy)
	except publisher.LocationPaused as exc:
		raise HTTPException(status.HTTP_409_CONFLICT, exc.reason) from None
	except publisher.InvalidLocation as exc:
		raise HTTPException(status.HTTP_400_BAD_REQUEST, exc.reason) from None
	return StoredLocationResponse(
		owner_id=stored.owner_id,
		lat=stored.lat,
		lng=stored.lng,
		accuracy_m=stored.accuracy_m,
		updated_at=stored.updated_at,
	)


@router.delete("/locations/me", status_code=status.HTTP_204_NO_CONTENT)
async def clear_own_location(member: MemberProfile = Depends(get_verified_member)) -> None:
	await publisher.clear_location(member.id)


@router.get("/locations/visible", response_model=VisibleLocationsResponse)
async def visible_locations(member: MemberProfile = Depends(get_verified_member)) -> VisibleLocationsResponse:
	try:
		items = await service.get_visible_locations(member.id)
	except Exception:
		raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, "locations_unavailable") from None
	return VisibleLocationsResponse(
		items=[
			VisibleLocationItem(
				owner_id=item.owner_id,
				display_name=item.display_name,
				lat=item.lat,
				lng=item.lng,
				accuracy_m=item.accuracy_m,
				updated_at=item.updated_at,
				distance_km=round(item.distance_km, 2) if item.distance_km is not None else None,
			)
			for item in items
		]
	)


@router.get("/emergency/status", response_model=EmergencyStatusResponse)
async def emergency_status(member: MemberProfile = Depends(get_verified_member)) -> EmergencyStatusResponse:
	result = await service.emergency_status(member.id)
	return EmergencyStatusResponse(available=result.available, others_count=result.others_count)
