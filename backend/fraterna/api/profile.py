"""Profile and map-settings endpoints."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from fraterna.api.security_deps import get_member, get_verified_member
from fraterna.domain.members import service
from fraterna.domain.members.models import MemberProfile
from fraterna.domain.members.schemas import MemberSummaryResponse, ProfileResponse, SettingsPatch
from fraterna.domain.proximity import sockets as map_sockets

router = APIRouter()


def _to_response(member: MemberProfile) -> ProfileResponse:
    return ProfileResponse(
        id=member.id,
        email=member.email,
        full_name=member.full_name,
        city=member.city,
        country=member.country,
        lodge=member.lodge,
        is_verified=member.is_verified,
        verification_status=member.verification_status.value,
        tracking_enabled=member.tracking_enabled,
        stealth_mode=member.stealth_mode,
        visibility_mode=member.visibility_mode.value,
        proximity_alerts_enabled=member.proximity_alerts_enabled,
        proximity_radius_km=member.proximity_radius_km,
        roles=list(member.roles),
        last_seen_at=member.last_seen_at,
    )


@router.get("/profile/me", response_model=ProfileResponse)
async def get_profile(member: MemberProfile = Depends(get_member)) -> ProfileResponse:
    return _to_response(member)


@router.patch("/profile/me/settings", response_model=ProfileResponse)
async def patch_settings(
    payload: SettingsPatch,
    member: MemberProfile = Depends(get_verified_member),
) -> ProfileResponse:
    try:
        updated = await service.update_settings(member.id, **payload.model_dump(exclude_none=True))
    except service.InvalidSettings as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason) from None
    except service.MemberNotFound:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="member_not_found") from None
    await map_sockets.reload_viewer_settings(member.id)
    return _to_response(updated)


@router.get("/members/search", response_model=List[MemberSummaryResponse])
async def search_members(
    q: str = Query(..., min_length=2, max_length=80),
    member: MemberProfile = Depends(get_verified_member),
) -> List[MemberSummaryResponse]:
    results = await service.search_members(member.id, q)
    return [MemberSummaryResponse(id=r.id, full_name=r.full_name, city=r.city, lodge=r.lodge) for r in results]
