"""Pydantic schemas for friendship endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class FriendRequestCreate(BaseModel):
	target_id: UUID


class FriendshipResponse(BaseModel):
	id: str
	requester_id: str
	addressee_id: str
	status: str


class FriendEntryResponse(BaseModel):
	friendship_id: str
	user_id: str
	full_name: str
	city: str
	lodge: str
	status: str
	updated_at: Optional[datetime] = None


class FriendsOverviewResponse(BaseModel):
	incoming: List[FriendEntryResponse]
	outgoing: List[FriendEntryResponse]
	friends: List[FriendEntryResponse]


class AllowlistEntryResponse(BaseModel):
	owner_id: str
	viewer_id: str
	full_name: Optional[str] = None
	created_at: Optional[datetime] = None
