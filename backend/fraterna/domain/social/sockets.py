"""Socket.IO namespace for friendship updates."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import socketio

from fraterna.infra.auth import AuthenticatedUser, authenticate_socket
from fraterna.obs import sockets_obs

logger = logging.getLogger(__name__)

_namespace: Optional["SocialNamespace"] = None


class SocialNamespace(socketio.AsyncNamespace):
	"""Namespace that keeps each client in their personal room."""

	def __init__(self) -> None:
		super().__init__("/social")
		self._sessions: Dict[str, AuthenticatedUser] = {}

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		try:
			user = authenticate_socket(environ, auth)
		except Exception:
			raise ConnectionRefusedError("unauthorized") from None
		sockets_obs.connected(self.namespace)
		self._sessions[sid] = user
		await self.enter_room(sid, self.user_room(user.id))
		await self.emit("social:ack", {"ok": True}, room=sid)

	async def on_disconnect(self, sid: str, *args: Any) -> None:
		user = self._sessions.pop(sid, None)
		if user:
			sockets_obs.disconnected(self.namespace)
			await self.leave_room(sid, self.user_room(user.id))

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"user:{user_id}"


def set_namespace(ns: Optional[SocialNamespace]) -> None:
	global _namespace
	_namespace = ns


async def emit_friend_event(user_id: str, event: str, payload: Dict[str, Any]) -> None:
	if _namespace is None:
		return
	sockets_obs.event(_namespace.namespace, event)
	try:
		await _namespace.emit(event, payload, room=SocialNamespace.user_room(user_id))
	except Exception:
		logger.warning("social_emit_failed", extra={"event": event}, exc_info=True)
