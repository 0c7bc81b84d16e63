"""Per-viewer map controller.

Owns the viewer's position and publish cadence, keeps the visible set fresh
through a RefreshCoordinator and pushes marker diffs and proximity alerts to
the viewer. The socket namespace creates one controller per connection and
supplies the adapters declared below.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Mapping, Optional, Protocol, Tuple

from fraterna.domain.proximity import alerts as alert_rules
from fraterna.domain.proximity.geo import is_valid_coordinate
from fraterna.domain.proximity.models import (
	LocationRecord,
	Marker,
	ProximityAlert,
	ProximityAlertState,
	ViewerPosition,
	ViewerSettings,
)
from fraterna.domain.proximity.publisher import LocationPaused
from fraterna.domain.proximity.refresh import RefreshCoordinator
from fraterna.domain.proximity.visibility import VisibilitySnapshot, resolve_snapshot
from fraterna.obs import metrics as obs_metrics
from fraterna.settings import settings

logger = logging.getLogger(__name__)

Fix = Tuple[float, float, Optional[float]]


class GeolocationError(Exception):
	"""The device did not produce a usable position."""

	reason = "geolocation_unavailable"


class PositionSource(Protocol):
	async def acquire(self) -> Fix:
		"""Return (lat, lng, accuracy_m)."""
		...


class LocationGateway(Protocol):
	async def load_snapshot(self, viewer_id: str) -> VisibilitySnapshot:
		...

	async def publish_location(self, owner_id: str, lat: float, lng: float, accuracy_m: Optional[float]) -> None:
		...

	async def load_viewer_settings(self, viewer_id: str) -> ViewerSettings:
		...

	async def set_stealth(self, viewer_id: str, enabled: bool) -> None:
		...


class MarkerLayer(Protocol):
	async def set_self(self, lat: float, lng: float) -> None:
		...

	async def add(self, marker: Marker) -> None:
		...

	async def move(self, marker: Marker) -> None:
		...

	async def remove(self, owner_id: str) -> None:
		...


class Notifier(Protocol):
	async def alert(self, alert: ProximityAlert) -> None:
		...

	async def warn(self, code: str) -> None:
		...


@dataclass
class MarkerDiff:
	added: List[Marker] = field(default_factory=list)
	moved: List[Marker] = field(default_factory=list)
	removed: List[str] = field(default_factory=list)

	def __bool__(self) -> bool:
		return bool(self.added or self.moved or self.removed)


def diff_markers(current: Mapping[str, Marker], desired: Mapping[str, Marker]) -> MarkerDiff:
	"""Compute the marker operations that turn ``current`` into ``desired``.

	Markers whose position and accuracy did not change produce no operation.
	"""
	diff = MarkerDiff()
	for owner_id, marker in desired.items():
		existing = current.get(owner_id)
		if existing is None:
			diff.added.append(marker)
		elif (existing.lat, existing.lng, existing.accuracy_m) != (marker.lat, marker.lng, marker.accuracy_m):
			diff.moved.append(marker)
	diff.removed.extend(owner_id for owner_id in current if owner_id not in desired)
	return diff


class MapViewController:
	def __init__(
		self,
		viewer_id: str,
		*,
		positions: PositionSource,
		gateway: LocationGateway,
		markers: MarkerLayer,
		notifier: Notifier,
		alert_state: Optional[ProximityAlertState] = None,
		clock: Callable[[], float] = time.time,
		debounce_seconds: Optional[float] = None,
		publish_interval: Optional[float] = None,
		initial_delay: Optional[float] = None,
		geolocation_timeout: Optional[float] = None,
		cooldown_seconds: Optional[float] = None,
		max_position_age: Optional[float] = None,
		default_radius_km: Optional[float] = None,
	) -> None:
		self.viewer_id = viewer_id
		self._positions = positions
		self._gateway = gateway
		self._markers = markers
		self._notifier = notifier
		self.alert_state = alert_state or ProximityAlertState()
		self._clock = clock
		self._publish_interval = settings.map_publish_interval_seconds if publish_interval is None else publish_interval
		self._initial_delay = settings.map_initial_publish_delay_seconds if initial_delay is None else initial_delay
		self._geo_timeout = settings.geolocation_timeout_seconds if geolocation_timeout is None else geolocation_timeout
		self._cooldown = settings.proximity_alert_cooldown_seconds if cooldown_seconds is None else cooldown_seconds
		self._max_position_age = (
			settings.proximity_self_position_max_age_seconds if max_position_age is None else max_position_age
		)
		self._default_radius = settings.proximity_default_radius_km if default_radius_km is None else default_radius_km
		self.settings = ViewerSettings()
		self.position: Optional[ViewerPosition] = None
		self.rendered: Dict[str, Marker] = {}
		self._visible: List[LocationRecord] = []
		self._names: Dict[str, Optional[str]] = {}
		self.refresh = RefreshCoordinator(
			self._fetch,
			debounce_seconds=settings.map_refresh_debounce_seconds if debounce_seconds is None else debounce_seconds,
			name=f"map-refresh:{viewer_id}",
		)
		self._ticker: Optional[asyncio.Task] = None
		self._closed = False

	@property
	def visible(self) -> List[LocationRecord]:
		return list(self._visible)

	async def start(self) -> None:
		await self.reload_settings()
		self.refresh.request_refresh()
		self._ticker = asyncio.create_task(self._tick_loop(), name=f"map-ticker:{self.viewer_id}")

	async def close(self) -> None:
		self._closed = True
		ticker, self._ticker = self._ticker, None
		if ticker is not None:
			ticker.cancel()
			with suppress(asyncio.CancelledError):
				await ticker
		await self.refresh.close()

	async def reload_settings(self) -> ViewerSettings:
		try:
			self.settings = await self._gateway.load_viewer_settings(self.viewer_id)
		except Exception:
			logger.warning("map_settings_load_failed", extra={"viewer_id": self.viewer_id}, exc_info=True)
		return self.settings

	def notify_change(self) -> None:
		self.refresh.notify()

	def request_refresh(self) -> None:
		self.refresh.request_refresh()

	async def _tick_loop(self) -> None:
		await asyncio.sleep(self._initial_delay)
		while not self._closed:
			try:
				if self.settings.publishing_enabled:
					await self.update_position()
			except asyncio.CancelledError:
				raise
			except Exception:
				logger.exception("map_tick_failed", extra={"viewer_id": self.viewer_id})
			await asyncio.sleep(self._publish_interval)

	async def _acquire(self) -> Tuple[ViewerPosition, Optional[float]]:
		try:
			lat, lng, accuracy = await asyncio.wait_for(self._positions.acquire(), timeout=self._geo_timeout)
		except asyncio.TimeoutError as exc:
			raise GeolocationError("timeout") from exc
		except GeolocationError:
			raise
		except Exception as exc:
			raise GeolocationError(type(exc).__name__) from exc
		if not is_valid_coordinate(lat, lng):
			raise GeolocationError("invalid_fix")
		return ViewerPosition(lat=float(lat), lng=float(lng), acquired_at=self._clock()), accuracy

	async def update_position(self, *, publish: bool = True) -> Optional[ViewerPosition]:
		"""Acquire a fix, publish it when allowed, then re-check alerts.

		A failed or timed-out fix warns the viewer and skips this cycle.
		"""
		try:
			position, accuracy = await self._acquire()
		except GeolocationError as exc:
			logger.info("geolocation_failed", extra={"viewer_id": self.viewer_id, "cause": str(exc)})
			await self._warn(GeolocationError.reason)
			return None
		self.position = position
		try:
			await self._markers.set_self(position.lat, position.lng)
		except Exception:
			logger.warning("marker_self_failed", extra={"viewer_id": self.viewer_id}, exc_info=True)
		if publish and self.settings.publishing_enabled:
			try:
				await self._gateway.publish_location(self.viewer_id, position.lat, position.lng, accuracy)
			except LocationPaused:
				logger.debug("location_publish_paused", extra={"viewer_id": self.viewer_id})
			except Exception:
				logger.warning("location_publish_failed", extra={"viewer_id": self.viewer_id}, exc_info=True)
		await self._evaluate_alerts()
		return position

	async def set_stealth(self, enabled: bool) -> bool:
		"""Toggle stealth, reverting the local flag when the write fails."""
		previous = self.settings.stealth_mode
		self.settings.stealth_mode = bool(enabled)
		try:
			await self._gateway.set_stealth(self.viewer_id, bool(enabled))
		except Exception:
			self.settings.stealth_mode = previous
			logger.warning("stealth_update_failed", extra={"viewer_id": self.viewer_id}, exc_info=True)
			await self._warn("stealth_update_failed")
			return False
		if previous and not enabled:
			await self.update_position()
		return True

	async def _fetch(self) -> None:
		obs_metrics.inc_refresh_fetch("map")
		try:
			snapshot = await self._gateway.load_snapshot(self.viewer_id)
		except Exception:
			obs_metrics.observe_visible_fetch("error")
			logger.warning("map_fetch_failed", extra={"viewer_id": self.viewer_id}, exc_info=True)
			return
		visible = resolve_snapshot(self.viewer_id, snapshot)
		obs_metrics.observe_visible_fetch("ok", len(visible))
		names = {record.owner_id: snapshot.display_name(record.owner_id) for record in visible}
		desired = {
			record.owner_id: Marker(
				owner_id=record.owner_id,
				lat=record.lat,
				lng=record.lng,
				accuracy_m=record.accuracy_m,
				display_name=names[record.owner_id],
			)
			for record in visible
		}
		await self._apply(diff_markers(self.rendered, desired))
		self._visible = visible
		self._names = names
		await self._evaluate_alerts()

	async def _apply(self, diff: MarkerDiff) -> None:
		for owner_id in diff.removed:
			self.rendered.pop(owner_id, None)
			await self._marker_call(self._markers.remove(owner_id))
		for marker in diff.added:
			self.rendered[marker.owner_id] = marker
			await self._marker_call(self._markers.add(marker))
		for marker in diff.moved:
			self.rendered[marker.owner_id] = marker
			await self._marker_call(self._markers.move(marker))

	async def _marker_call(self, call) -> None:
		try:
			await call
		except Exception:
			logger.warning("marker_update_failed", extra={"viewer_id": self.viewer_id}, exc_info=True)

	async def _evaluate_alerts(self) -> None:
		found = alert_rules.check_alerts(
			self.position,
			self._visible,
			self.settings.alert_radius_km(self._default_radius),
			self._cooldown,
			self.alert_state,
			now=self._clock(),
			max_position_age=self._max_position_age,
			names=self._names,
		)
		obs_metrics.inc_proximity_alerts(len(found))
		for alert in found:
			try:
				await self._notifier.alert(alert)
			except Exception:
				logger.warning("proximity_alert_delivery_failed", extra={"viewer_id": self.viewer_id}, exc_info=True)

	async def _warn(self, code: str) -> None:
		try:
			await self._notifier.warn(code)
		except Exception:
			logger.warning("map_warn_delivery_failed", extra={"viewer_id": self.viewer_id, "code": code}, exc_info=True)
