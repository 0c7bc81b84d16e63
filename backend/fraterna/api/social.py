"""REST API surface for friendships and the location allowlist."""

from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status

from fraterna.api.security_deps import get_verified_member
from fraterna.domain.members.models import MemberProfile
from fraterna.domain.social import service
from fraterna.domain.social.exceptions import (
	RequestConflict,
	RequestForbidden,
	RequestNotFound,
	RequestNotPending,
	SocialError,
	SocialRateLimitExceeded,
)
from fraterna.domain.social.models import AllowlistEntry, FriendEntry, Friendship
from fraterna.domain.social.schemas import (
	AllowlistEntryResponse,
	FriendEntryResponse,
	FriendRequestCreate,
	FriendsOverviewResponse,
	FriendshipResponse,
)

router = APIRouter()


def _map_error(exc: Exception) -> HTTPException:
	if isinstance(exc, SocialRateLimitExceeded):
		return HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, detail=getattr(exc, "reason", "rate_limited"))
	if isinstance(exc, (RequestConflict, RequestNotPending)):
		return HTTPException(status.HTTP_409_CONFLICT, detail=exc.reason)
	if isinstance(exc, RequestForbidden):
		return HTTPException(status.HTTP_403_FORBIDDEN, detail=exc.reason)
	if isinstance(exc, RequestNotFound):
		return HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.reason)
	if isinstance(exc, SocialError):
		return HTTPException(status.HTTP_400_BAD_REQUEST, detail=exc.reason)
	raise exc


def _friendship(friendship: Friendship) -> FriendshipResponse:
	return FriendshipResponse(
		id=friendship.id,
		requester_id=friendship.requester_id,
		addressee_id=friendship.addressee_id,
		status=friendship.status.value,
	)


def _entry(entry: FriendEntry) -> FriendEntryResponse:
	return FriendEntryResponse(
		friendship_id=entry.friendship_id,
		user_id=entry.user_id,
		full_name=entry.full_name,
		city=entry.city,
		lodge=entry.lodge,
		status=entry.status.value,
		updated_at=entry.updated_at,
	)


def _allow_entry(entry: AllowlistEntry) -> AllowlistEntryResponse:
	return AllowlistEntryResponse(
		owner_id=entry.owner_id,
		viewer_id=entry.viewer_id,
		full_name=entry.full_name,
		created_at=entry.created_at,
	)


@router.get("/friends", response_model=FriendsOverviewResponse)
async def list_friends(member: MemberProfile = Depends(get_verified_member)) -> FriendsOverviewResponse:
	overview = await service.list_friends(member.id)
	return FriendsOverviewResponse(
		incoming=[_entry(e) for e in overview.incoming],
		outgoing=[_entry(e) for e in overview.outgoing],
		friends=[_entry(e) for e in overview.friends],
	)


@router.post("/friends/requests", response_model=FriendshipResponse, status_code=status.HTTP_201_CREATED)
async def send_request(
	payload: FriendRequestCreate,
	member: MemberProfile = Depends(get_verified_member),
) -> FriendshipResponse:
	try:
		return _friendship(await service.send_request(member.id, str(payload.target_id)))
	except (SocialError, SocialRateLimitExceeded) as exc:
		raise _map_error(exc) from None


@router.post("/friends/requests/{friendship_id}/accept", response_model=FriendshipResponse)
async def accept_request(
	friendship_id: UUID,
	member: MemberProfile = Depends(get_verified_member),
) -> FriendshipResponse:
	try:
		return _friendship(await service.accept_request(member.id, str(friendship_id)))
	except (SocialError, SocialRateLimitExceeded) as exc:
		raise _map_error(exc) from None


@router.post("/friends/requests/{friendship_id}/decline", response_model=FriendshipResponse)
async def decline_request(
	friendship_id: UUID,
	member: MemberProfile = Depends(get_verified_member),
) -> FriendshipResponse:
	try:
		return _friendship(await service.decline_request(member.id, str(friendship_id)))
	except (SocialError, SocialRateLimitExceeded) as exc:
		raise _map_error(exc) from None


@router.post("/friends/{friendship_id}/block", response_model=FriendshipResponse)
async def block_friend(
	friendship_id: UUID,
	member: MemberProfile = Depends(get_verified_member),
) -> FriendshipResponse:
	try:
		return _friendship(await service.block(member.id, str(friendship_id)))
	except (SocialError, SocialRateLimitExceeded) as exc:
		raise _map_error(exc) from None


@router.delete("/friends/{friendship_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_friend(
	friendship_id: UUID,
	member: MemberProfile = Depends(get_verified_member),
) -> None:
	try:
		await service.remove(member.id, str(friendship_id))
	except (SocialError, SocialRateLimitExceeded) as exc:
		raise _map_error(exc) from None


@router.get("/friends/allowlist", response_model=List[AllowlistEntryResponse])
async def list_allowlist(member: MemberProfile = Depends(get_verified_member)) -> List[AllowlistEntryResponse]:
	return [_allow_entry(entry) for entry in await service.list_allowlist(member.id)]


@router.put("/friends/allowlist/{viewer_id}", response_model=AllowlistEntryResponse)
async def add_to_allowlist(
	viewer_id: UUID,
	member: MemberProfile = Depends(get_verified_member),
) -> AllowlistEntryResponse:
	try:
		return _allow_entry(await service.add_to_allowlist(member.id, str(viewer_id)))
	except (SocialError, SocialRateLimitExceeded) as exc:
		raise _map_error(exc) from None


@router.delete("/friends/allowlist/{viewer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_from_allowlist(
	viewer_id: UUID,
	member: MemberProfile = Depends(get_verified_member),
) -> None:
	try:
		removed = await service.remove_from_allowlist(member.id, str(viewer_id))
	except (SocialError, SocialRateLimitExceeded) as exc:
		raise _map_error(exc) from None
	if not removed:
		raise HTTPException(status.HTTP_404_NOT_FOUND, detail="not_found")
