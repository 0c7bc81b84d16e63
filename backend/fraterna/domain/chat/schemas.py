"""Pydantic schemas for chat endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class SendMessageRequest(BaseModel):
	content: str = Field(..., min_length=1, max_length=1000)


class ChatMessageResponse(BaseModel):
	id: str
	user_id: str
	author_name: Optional[str] = None
	content: str
	created_at: datetime
	expires_at: datetime
	city: Optional[str] = None


class ChatMessagesResponse(BaseModel):
	items: List[ChatMessageResponse]
