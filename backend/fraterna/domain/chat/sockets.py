"""Socket.IO namespace fanning out chat messages."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import socketio

from fraterna.domain.chat.models import ChatMessage
from fraterna.domain.members import service as members_service
from fraterna.infra.auth import AuthenticatedUser, authenticate_socket
from fraterna.obs import sockets_obs

logger = logging.getLogger(__name__)

GLOBAL_ROOM = "chat:global"

_namespace: Optional["ChatNamespace"] = None


class ChatNamespace(socketio.AsyncNamespace):
	def __init__(self) -> None:
		super().__init__("/chat")
		self._sessions: Dict[str, AuthenticatedUser] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		try:
			user = authenticate_socket(environ, auth)
			member = await members_service.get_member(user.id)
		except Exception:
			raise ConnectionRefusedError("unauthorized") from None
		if member is None or not member.is_verified or not member.is_active:
			raise ConnectionRefusedError("verification_required")
		sockets_obs.connected(self.namespace)
		self._sessions[sid] = user
		await self.enter_room(sid, GLOBAL_ROOM)
		await self.enter_room(sid, self.city_room(member.city))
		await self.emit("chat:ack", {"ok": True}, room=sid)

	async def on_disconnect(self, sid: str, *args: Any) -> None:
		if self._sessions.pop(sid, None) is not None:
			sockets_obs.disconnected(self.namespace)

	@staticmethod
	def city_room(city: str) -> str:
		return f"city:{city.strip().lower()}"


def set_namespace(ns: Optional[ChatNamespace]) -> None:
	global _namespace
	_namespace = ns


async def _emit(event: str, payload: Dict[str, Any], room: str) -> None:
	if _namespace is None:
		return
	sockets_obs.event(_namespace.namespace, event)
	try:
		await _namespace.emit(event, payload, room=room)
	except Exception:
		logger.warning("chat_emit_failed", extra={"event": event}, exc_info=True)


async def emit_global(message: ChatMessage) -> None:
	await _emit("chat:message", message.to_payload(), GLOBAL_ROOM)


async def emit_deleted(message_id: str) -> None:
	await _emit("chat:deleted", {"id": message_id}, GLOBAL_ROOM)


async def emit_emergency(message: ChatMessage) -> None:
	await _emit("emergency:message", message.to_payload(), ChatNamespace.city_room(message.city or ""))
