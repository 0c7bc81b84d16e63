"""Domain models for friendships and allowlist entries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, List, Mapping, Optional


class FriendshipStatus(str, Enum):
	"""Friendship states tracked in the database.

	Declining and blocking both land in BLOCKED; a new request reopens the edge.
	"""

	PENDING = "pending"
	ACCEPTED = "accepted"
	BLOCKED = "blocked"


@dataclass(slots=True)
class Friendship:
	"""The single edge between two members. Directional while pending."""

	id: str
	requester_id: str
	addressee_id: str
	status: FriendshipStatus
	created_at: Optional[datetime] = None
	updated_at: Optional[datetime] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "Friendship":
		return cls(
			id=str(record["id"]),
			requester_id=str(record["requester_id"]),
			addressee_id=str(record["addressee_id"]),
			status=FriendshipStatus(record["status"]),
			created_at=record.get("created_at"),
			updated_at=record.get("updated_at"),
		)

	def involves(self, user_id: str) -> bool:
		return user_id in (self.requester_id, self.addressee_id)

	def other(self, user_id: str) -> str:
		return self.addressee_id if user_id == self.requester_id else self.requester_id


@dataclass(slots=True)
class FriendEntry:
	friendship_id: str
	user_id: str
	full_name: str
	city: str
	lodge: str
	status: FriendshipStatus
	updated_at: Optional[datetime] = None


@dataclass(slots=True)
class FriendsOverview:
	incoming: List[FriendEntry]
	outgoing: List[FriendEntry]
	friends: List[FriendEntry]


@dataclass(slots=True)
class AllowlistEntry:
	owner_id: str
	viewer_id: str
	full_name: Optional[str] = None
	created_at: Optional[datetime] = None
