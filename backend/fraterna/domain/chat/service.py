"""Chat service: 24h global chat and the proximity-gated emergency channel."""

from __future__ import annotations

import logging
from typing import List

from fraterna.domain.chat import sockets
from fraterna.domain.chat.models import (
	ChatForbidden,
	ChatMessage,
	ChatNotFound,
	EmergencyUnavailable,
	InvalidMessage,
)
from fraterna.domain.proximity import service as proximity_service
from fraterna.infra import rate_limit
from fraterna.infra.postgres import get_pool
from fraterna.obs import metrics as obs_metrics
from fraterna.settings import settings

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 200


def _clean(content: str) -> str:
	text = (content or "").strip()
	if not text or len(text) > settings.chat_max_length:
		raise InvalidMessage()
	return text


async def _enforce_send_limit(user_id: str) -> None:
	if not await rate_limit.allow("chat", user_id, limit=settings.chat_send_per_minute, window_seconds=60):
		raise rate_limit.RateLimitExceeded("chat")


async def list_messages(*, limit: int = HISTORY_LIMIT) -> List[ChatMessage]:
	pool = await get_pool()
	rows = await pool.fetch(
		"""
		SELECT * FROM (
			SELECT m.id, m.user_id, m.content, m.created_at, m.expires_at, u.full_name
			FROM chat_messages m
			JOIN users u ON u.id = m.user_id
			WHERE NOT m.deleted_by_admin AND m.expires_at > now()
			ORDER BY m.created_at DESC
			LIMIT $1
		) recent
		ORDER BY created_at ASC
		""",
		max(1, min(limit, HISTORY_LIMIT)),
	)
	return [ChatMessage.from_record(row) for row in rows]


async def send_message(user_id: str, content: str) -> ChatMessage:
	text = _clean(content)
	await _enforce_send_limit(user_id)
	pool = await get_pool()
	row = await pool.fetchrow(
		"""
		WITH inserted AS (
			INSERT INTO chat_messages (user_id, content, expires_at)
			VALUES ($1::uuid, $2, now() + make_interval(hours => $3))
			RETURNING id, user_id, content, created_at, expires_at
		)
		SELECT inserted.*, u.full_name FROM inserted JOIN users u ON u.id = inserted.user_id
		""",
		user_id,
		text,
		settings.chat_message_ttl_hours,
	)
	message = ChatMessage.from_record(row)
	obs_metrics.inc_chat_send("global")
	await sockets.emit_global(message)
	return message


async def delete_message(user_id: str, message_id: str, *, is_moderator: bool) -> None:
	"""Hide a message. Authors may hide their own; moderators may hide any."""
	pool = await get_pool()
	async with pool.acquire() as conn:
		async with conn.transaction():
			author = await conn.fetchval(
				"SELECT user_id FROM chat_messages WHERE id = $1::uuid AND NOT deleted_by_admin FOR UPDATE",
				message_id,
			)
			if author is None:
				raise ChatNotFound()
			if str(author) != user_id and not is_moderator:
				raise ChatForbidden()
			await conn.execute("UPDATE chat_messages SET deleted_by_admin = true WHERE id = $1::uuid", message_id)
	logger.info("chat_message_hidden", extra={"message_id": message_id, "moderator": is_moderator})
	await sockets.emit_deleted(message_id)


async def list_emergency(city: str, *, limit: int = HISTORY_LIMIT) -> List[ChatMessage]:
	pool = await get_pool()
	rows = await pool.fetch(
		"""
		SELECT m.id, m.user_id, m.city, m.content, m.created_at, m.expires_at, u.full_name
		FROM emergency_messages m
		JOIN users u ON u.id = m.user_id
		WHERE m.city = $1 AND m.expires_at > now()
		ORDER BY m.created_at ASC
		LIMIT $2
		""",
		city,
		max(1, min(limit, HISTORY_LIMIT)),
	)
	return [ChatMessage.from_record(row) for row in rows]


async def send_emergency(user_id: str, city: str, content: str) -> ChatMessage:
	text = _clean(content)
	status = await proximity_service.emergency_status(user_id)
	if not status.available:
		raise EmergencyUnavailable()
	await _enforce_send_limit(user_id)
	pool = await get_pool()
	row = await pool.fetchrow(
		"""
		WITH inserted AS (
			INSERT INTO emergency_messages (user_id, city, content, expires_at)
			VALUES ($1::uuid, $2, $3, now() + make_interval(hours => $4))
			RETURNING id, user_id, city, content, created_at, expires_at
		)
		SELECT inserted.*, u.full_name FROM inserted JOIN users u ON u.id = inserted.user_id
		""",
		user_id,
		city,
		text,
		settings.chat_message_ttl_hours,
	)
	message = ChatMessage.from_record(row)
	obs_metrics.inc_chat_send("emergency")
	logger.info("emergency_message_sent", extra={"others_nearby": status.others_count})
	await sockets.emit_emergency(message)
	return message
