"""Chat message models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional


class ChatError(Exception):
	reason = "chat_error"

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class ChatNotFound(ChatError):
	reason = "message_not_found"


class ChatForbidden(ChatError):
	reason = "forbidden"


class InvalidMessage(ChatError):
	reason = "invalid_message"


class EmergencyUnavailable(ChatError):
	reason = "emergency_unavailable"


@dataclass(slots=True)
class ChatMessage:
	id: str
	user_id: str
	content: str
	created_at: datetime
	expires_at: datetime
	author_name: Optional[str] = None
	city: Optional[str] = None

	@classmethod
	def from_record(cls, record: Mapping[str, Any]) -> "ChatMessage":
		return cls(
			id=str(record["id"]),
			user_id=str(record["user_id"]),
			content=record["content"],
			created_at=record["created_at"],
			expires_at=record["expires_at"],
			author_name=record.get("full_name"),
			city=record.get("city"),
		)

	def to_payload(self) -> Dict[str, Any]:
		payload: Dict[str, Any] = {
			"id": self.id,
			"user_id": self.user_id,
			"author_name": self.author_name,
			"content": self.content,
			"created_at": self.created_at.isoformat(),
			"expires_at": self.expires_at.isoformat(),
		}
		if self.city is not None:
			payload["city"] = self.city
		return payload
