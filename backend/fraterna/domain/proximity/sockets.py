"""Socket.IO namespace driving one map controller per connection."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import socketio

from fraterna.domain.members import service as members_service
from fraterna.domain.proximity.controller import Fix, GeolocationError, MapViewController
from fraterna.domain.proximity.models import Marker, ProximityAlert, ProximityAlertState
from fraterna.domain.proximity.service import PostgresLocationGateway
from fraterna.infra.auth import AuthenticatedUser, authenticate_socket
from fraterna.obs import sockets_obs
from fraterna.settings import settings

logger = logging.getLogger(__name__)

NAMESPACE = "/map"

_namespace: Optional["MapNamespace"] = None


class SocketPositionSource:
	"""Ask the connected client for a device fix."""

	def __init__(self, namespace: socketio.AsyncNamespace, sid: str) -> None:
		self._namespace = namespace
		self._sid = sid

	async def acquire(self) -> Fix:
		reply = await self._namespace.call(
			"position:request",
			{},
			to=self._sid,
			timeout=settings.geolocation_timeout_seconds,
		)
		if not isinstance(reply, dict) or reply.get("error"):
			raise GeolocationError(str(reply.get("error")) if isinstance(reply, dict) else "no_fix")
		return reply.get("lat"), reply.get("lng"), reply.get("accuracy")


class SocketMarkerLayer:
	def __init__(self, namespace: socketio.AsyncNamespace, sid: str) -> None:
		self._namespace = namespace
		self._sid = sid

	async def _emit(self, event: str, payload: Dict[str, Any]) -> None:
		sockets_obs.event(NAMESPACE, event)
		await self._namespace.emit(event, payload, room=self._sid)

	async def set_self(self, lat: float, lng: float) -> None:
		await self._emit("marker:self", {"lat": lat, "lng": lng})

	async def add(self, marker: Marker) -> None:
		await self._emit("marker:add", marker.to_payload())

	async def move(self, marker: Marker) -> None:
		await self._emit("marker:move", marker.to_payload())

	async def remove(self, owner_id: str) -> None:
		await self._emit("marker:remove", {"owner_id": owner_id})


class SocketNotifier:
	def __init__(self, namespace: socketio.AsyncNamespace, sid: str) -> None:
		self._namespace = namespace
		self._sid = sid

	async def alert(self, alert: ProximityAlert) -> None:
		sockets_obs.event(NAMESPACE, "proximity:alert")
		await self._namespace.emit("proximity:alert", alert.to_payload(), room=self._sid)

	async def warn(self, code: str) -> None:
		sockets_obs.event(NAMESPACE, "sys.warn")
		await self._namespace.emit("sys.warn", {"code": code}, room=self._sid)


class MapNamespace(socketio.AsyncNamespace):
	def __init__(self, gateway: Optional[Any] = None) -> None:
		super().__init__(NAMESPACE)
		self.gateway = gateway or PostgresLocationGateway()
		self.users: Dict[str, AuthenticatedUser] = {}
		self.controllers: Dict[str, MapViewController] = {}
		# cooldowns outlive a single connection; reset only on restart
		self.alert_states: Dict[str, ProximityAlertState] = {}

	async def _authorise(self, environ: dict, auth: Optional[dict]) -> AuthenticatedUser:
		user = authenticate_socket(environ, auth)
		member = await members_service.get_member(user.id)
		if member is None or not member.is_active or not member.is_verified:
			raise PermissionError("verification_required")
		return user

	def build_controller(self, sid: str, user: AuthenticatedUser) -> MapViewController:
		return MapViewController(
			user.id,
			positions=SocketPositionSource(self, sid),
			gateway=self.gateway,
			markers=SocketMarkerLayer(self, sid),
			notifier=SocketNotifier(self, sid),
			alert_state=self.alert_states.setdefault(user.id, ProximityAlertState()),
		)

	async def on_connect(self, sid: str, environ: dict, auth: Optional[dict] = None) -> None:
		try:
			user = await self._authorise(environ, auth)
		except Exception:
			logger.info("map connect refused sid=%s", sid)
			raise ConnectionRefusedError("unauthorized") from None
		sockets_obs.connected(self.namespace)
		self.users[sid] = user
		controller = self.build_controller(sid, user)
		self.controllers[sid] = controller
		await self.enter_room(sid, self.user_room(user.id))
		logger.info("map connect sid=%s user=%s", sid, user.id)
		await self.emit("sys.ok", {"me": {"id": user.id}}, room=sid)
		await controller.start()

	async def on_disconnect(self, sid: str, *args: Any) -> None:
		user = self.users.pop(sid, None)
		controller = self.controllers.pop(sid, None)
		if user is None:
			return
		sockets_obs.disconnected(self.namespace)
		if controller is not None:
			await controller.close()
		logger.info("map disconnect sid=%s user=%s", sid, user.id)

	async def on_locate(self, sid: str, data: Optional[dict] = None) -> None:
		sockets_obs.event(self.namespace, "locate")
		controller = self.controllers.get(sid)
		if controller is None:
			await self.emit("sys.warn", {"code": "unauthorized"}, room=sid)
			return
		await controller.update_position()

	async def on_stealth_set(self, sid: str, data: Optional[dict] = None) -> None:
		sockets_obs.event(self.namespace, "stealth_set")
		controller = self.controllers.get(sid)
		if controller is None:
			await self.emit("sys.warn", {"code": "unauthorized"}, room=sid)
			return
		if not isinstance(data, dict) or not isinstance(data.get("enabled"), bool):
			await self.emit("sys.warn", {"code": "invalid_payload"}, room=sid)
			return
		ok = await controller.set_stealth(data["enabled"])
		await self.emit(
			"stealth:ack",
			{"ok": ok, "enabled": controller.settings.stealth_mode},
			room=sid,
		)

	async def on_settings_reload(self, sid: str, data: Optional[dict] = None) -> None:
		sockets_obs.event(self.namespace, "settings_reload")
		controller = self.controllers.get(sid)
		if controller is None:
			return
		await controller.reload_settings()

	async def on_refresh(self, sid: str, data: Optional[dict] = None) -> None:
		sockets_obs.event(self.namespace, "refresh")
		controller = self.controllers.get(sid)
		if controller is not None:
			controller.request_refresh()

	def notify_change(self) -> None:
		for controller in list(self.controllers.values()):
			controller.notify_change()

	@staticmethod
	def user_room(user_id: str) -> str:
		return f"user:{user_id}"


def set_namespace(ns: Optional[MapNamespace]) -> None:
	global _namespace
	_namespace = ns


def notify_change() -> None:
	"""Invalidate every connected viewer's visible set."""
	if _namespace is None:
		return
	_namespace.notify_change()


async def reload_viewer_settings(user_id: str) -> None:
	"""Pick up settings written through the REST API for live map sessions."""
	if _namespace is None:
		return
	for controller in list(_namespace.controllers.values()):
		if controller.viewer_id == user_id:
			await controller.reload_settings()
