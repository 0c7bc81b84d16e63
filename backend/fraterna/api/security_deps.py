"""Member-level dependencies layered on top of token authentication."""

from __future__ import annotations

from fastapi import Depends, HTTPException, status

from fraterna.domain.members import service as members_service
from fraterna.domain.members.models import MemberProfile
from fraterna.infra.auth import AuthenticatedUser, get_current_user


async def get_member(user: AuthenticatedUser = Depends(get_current_user)) -> MemberProfile:
    """The caller's profile. Inactive (banned) accounts are refused."""
    member = await members_service.get_member(user.id)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="member_not_found")
    if not member.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="account_inactive")
    return member


async def get_verified_member(member: MemberProfile = Depends(get_member)) -> MemberProfile:
    if not member.is_verified:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="verification_required")
    return member
