import asyncio
from typing import List, Optional

import pytest

from fraterna.domain.proximity.controller import GeolocationError, MapViewController, diff_markers
from fraterna.domain.proximity.models import (
	LocationRecord,
	Marker,
	OwnerProfile,
	ViewerSettings,
	VisibilityMode,
)
from fraterna.domain.proximity.publisher import LocationPaused
from fraterna.domain.proximity.visibility import FriendshipIndex, VisibilitySnapshot

VIEWER = "viewer-1"
FRIEND = "friend-1"
ORIGIN = (40.4168, -3.7038)
# ~2 km north
FRIEND_LAT = ORIGIN[0] + 2.0 / 111.195


class Clock:
	def __init__(self, now: float = 1_700_000_000.0) -> None:
		self.now = now

	def __call__(self) -> float:
		return self.now


class FakePositions:
	def __init__(self, fix=(ORIGIN[0], ORIGIN[1], 35.0)) -> None:
		self.fix = fix
		self.error: Optional[Exception] = None
		self.delay = 0.0

	async def acquire(self):
		if self.delay:
			await asyncio.sleep(self.delay)
		if self.error is not None:
			raise self.error
		return self.fix


class FakeGateway:
	def __init__(self) -> None:
		self.friend_profile = OwnerProfile(
			owner_id=FRIEND,
			visibility_mode=VisibilityMode.FRIENDS,
			display_name="H. Andrés",
		)
		self.friend_location = LocationRecord(owner_id=FRIEND, lat=FRIEND_LAT, lng=ORIGIN[1], accuracy_m=100)
		self.viewer_settings = ViewerSettings(radius_km=5)
		self.published: List[tuple] = []
		self.stealth_calls: List[bool] = []
		self.fail_stealth = False
		self.fail_snapshot = False
		self.paused = False

	async def load_snapshot(self, viewer_id: str) -> VisibilitySnapshot:
		if self.fail_snapshot:
			raise ConnectionError("db down")
		return VisibilitySnapshot(
			candidates=[self.friend_location],
			profiles={FRIEND: self.friend_profile},
			friendships=FriendshipIndex([(VIEWER, FRIEND)]),
		)

	async def publish_location(self, owner_id, lat, lng, accuracy_m) -> None:
		if self.paused:
			raise LocationPaused()
		self.published.append((owner_id, lat, lng, accuracy_m))

	async def load_viewer_settings(self, viewer_id: str) -> ViewerSettings:
		return ViewerSettings(
			stealth_mode=self.viewer_settings.stealth_mode,
			tracking_enabled=self.viewer_settings.tracking_enabled,
			alerts_enabled=self.viewer_settings.alerts_enabled,
			radius_km=self.viewer_settings.radius_km,
		)

	async def set_stealth(self, viewer_id: str, enabled: bool) -> None:
		if self.fail_stealth:
			raise ConnectionError("write failed")
		self.stealth_calls.append(enabled)
		self.viewer_settings.stealth_mode = enabled


class FakeMarkers:
	def __init__(self) -> None:
		self.events: List[tuple] = []

	async def set_self(self, lat, lng) -> None:
		self.events.append(("self", lat, lng))

	async def add(self, marker: Marker) -> None:
		self.events.append(("add", marker.owner_id))

	async def move(self, marker: Marker) -> None:
		self.events.append(("move", marker.owner_id))

	async def remove(self, owner_id: str) -> None:
		self.events.append(("remove", owner_id))

	def of(self, kind: str) -> List[tuple]:
		return [event for event in self.events if event[0] == kind]


class FakeNotifier:
	def __init__(self) -> None:
		self.alerts = []
		self.warnings: List[str] = []

	async def alert(self, alert) -> None:
		self.alerts.append(alert)

	async def warn(self, code: str) -> None:
		self.warnings.append(code)


@pytest.fixture
def parts():
	return FakePositions(), FakeGateway(), FakeMarkers(), FakeNotifier(), Clock()


def _controller(parts, **kwargs) -> MapViewController:
	positions, gateway, markers, notifier, clock = parts
	options = dict(
		positions=positions,
		gateway=gateway,
		markers=markers,
		notifier=notifier,
		clock=clock,
		debounce_seconds=0.01,
		publish_interval=3600,
		initial_delay=3600,
		geolocation_timeout=0.05,
		cooldown_seconds=120,
		max_position_age=300,
		default_radius_km=5,
	)
	options.update(kwargs)
	return MapViewController(VIEWER, **options)


async def _settle(controller: MapViewController) -> None:
	await asyncio.wait_for(controller.refresh.wait_idle(), timeout=1)


@pytest.mark.asyncio
async def test_friend_within_two_km_shows_marker_and_alerts_once(parts):
	positions, gateway, markers, notifier, clock = parts
	controller = _controller(parts)
	await controller.start()
	await _settle(controller)
	try:
		assert markers.of("add") == [("add", FRIEND)]
		assert notifier.alerts == []

		await controller.update_position()
		assert markers.of("self") == [("self", ORIGIN[0], ORIGIN[1])]
		assert gateway.published == [(VIEWER, ORIGIN[0], ORIGIN[1], 35.0)]
		assert len(notifier.alerts) == 1
		alert = notifier.alerts[0]
		assert alert.owner_id == FRIEND
		assert alert.display_name == "H. Andrés"
		assert alert.distance_km == pytest.approx(2.0, abs=0.01)

		# another fetch inside the cooldown window does not alert again
		clock.now += 60
		controller.notify_change()
		await asyncio.sleep(0.03)
		await _settle(controller)
		assert len(notifier.alerts) == 1
		assert markers.of("move") == []
	finally:
		await controller.close()


@pytest.mark.asyncio
async def test_owner_moving_emits_move(parts):
	positions, gateway, markers, notifier, clock = parts
	controller = _controller(parts)
	await controller.start()
	await _settle(controller)
	try:
		gateway.friend_location = LocationRecord(owner_id=FRIEND, lat=FRIEND_LAT + 0.001, lng=ORIGIN[1], accuracy_m=100)
		controller.notify_change()
		await asyncio.sleep(0.03)
		await _settle(controller)
		assert markers.of("move") == [("move", FRIEND)]
		assert controller.rendered[FRIEND].lat == pytest.approx(FRIEND_LAT + 0.001)
	finally:
		await controller.close()


@pytest.mark.asyncio
async def test_owner_entering_stealth_disappears(parts):
	positions, gateway, markers, notifier, clock = parts
	controller = _controller(parts)
	await controller.start()
	await _settle(controller)
	try:
		assert FRIEND in controller.rendered
		gateway.friend_profile.stealth_mode = True
		controller.notify_change()
		await asyncio.sleep(0.03)
		await _settle(controller)
		assert markers.of("remove") == [("remove", FRIEND)]
		assert controller.rendered == {}
		assert controller.visible == []
	finally:
		await controller.close()


@pytest.mark.asyncio
async def test_failed_fetch_keeps_previous_markers(parts):
	positions, gateway, markers, notifier, clock = parts
	controller = _controller(parts)
	await controller.start()
	await _settle(controller)
	try:
		gateway.fail_snapshot = True
		controller.request_refresh()
		await _settle(controller)
		assert FRIEND in controller.rendered
		assert markers.of("remove") == []
	finally:
		await controller.close()


@pytest.mark.asyncio
async def test_geolocation_timeout_warns_and_skips_cycle(parts):
	positions, gateway, markers, notifier, clock = parts
	positions.delay = 1.0
	controller = _controller(parts)
	result = await controller.update_position()
	assert result is None
	assert notifier.warnings == [GeolocationError.reason]
	assert gateway.published == []
	assert markers.of("self") == []


@pytest.mark.asyncio
async def test_geolocation_error_warns(parts):
	positions, gateway, markers, notifier, clock = parts
	positions.error = GeolocationError("denied")
	controller = _controller(parts)
	assert await controller.update_position() is None
	assert notifier.warnings == [GeolocationError.reason]


@pytest.mark.asyncio
async def test_invalid_fix_is_rejected(parts):
	positions, gateway, markers, notifier, clock = parts
	positions.fix = (float("nan"), 0.0, None)
	controller = _controller(parts)
	assert await controller.update_position() is None
	assert notifier.warnings == [GeolocationError.reason]


@pytest.mark.asyncio
async def test_stealth_viewer_does_not_publish_but_still_gets_alerts(parts):
	positions, gateway, markers, notifier, clock = parts
	gateway.viewer_settings.stealth_mode = True
	controller = _controller(parts)
	await controller.start()
	await _settle(controller)
	try:
		await controller.update_position()
		assert gateway.published == []
		assert len(notifier.alerts) == 1
	finally:
		await controller.close()


@pytest.mark.asyncio
async def test_paused_publish_is_not_an_error(parts):
	positions, gateway, markers, notifier, clock = parts
	gateway.paused = True
	controller = _controller(parts)
	position = await controller.update_position()
	assert position is not None
	assert notifier.warnings == []


@pytest.mark.asyncio
async def test_set_stealth_reverts_when_write_fails(parts):
	positions, gateway, markers, notifier, clock = parts
	gateway.fail_stealth = True
	controller = _controller(parts)
	ok = await controller.set_stealth(True)
	assert ok is False
	assert controller.settings.stealth_mode is False
	assert notifier.warnings == ["stealth_update_failed"]


@pytest.mark.asyncio
async def test_leaving_stealth_publishes_immediately(parts):
	positions, gateway, markers, notifier, clock = parts
	gateway.viewer_settings.stealth_mode = True
	controller = _controller(parts)
	await controller.reload_settings()
	assert await controller.set_stealth(False) is True
	assert gateway.stealth_calls == [False]
	assert gateway.published == [(VIEWER, ORIGIN[0], ORIGIN[1], 35.0)]


@pytest.mark.asyncio
async def test_alerts_disabled_means_no_alerts(parts):
	positions, gateway, markers, notifier, clock = parts
	gateway.viewer_settings.alerts_enabled = False
	controller = _controller(parts)
	await controller.start()
	await _settle(controller)
	try:
		await controller.update_position()
		assert notifier.alerts == []
	finally:
		await controller.close()


@pytest.mark.asyncio
async def test_stale_own_position_stops_alerts(parts):
	positions, gateway, markers, notifier, clock = parts
	controller = _controller(parts, cooldown_seconds=0)
	await controller.start()
	await _settle(controller)
	try:
		await controller.update_position()
		assert len(notifier.alerts) == 1
		clock.now += 301
		controller.request_refresh()
		await _settle(controller)
		assert len(notifier.alerts) == 1
	finally:
		await controller.close()


def test_diff_markers():
	current = {
		"a": Marker("a", 1.0, 1.0, 100),
		"b": Marker("b", 2.0, 2.0, 100),
		"c": Marker("c", 3.0, 3.0, 100),
	}
	desired = {
		"a": Marker("a", 1.0, 1.0, 100, display_name="renamed"),
		"b": Marker("b", 2.5, 2.0, 100),
		"d": Marker("d", 4.0, 4.0, 100),
	}
	diff = diff_markers(current, desired)
	assert [m.owner_id for m in diff.added] == ["d"]
	assert [m.owner_id for m in diff.moved] == ["b"]
	assert diff.removed == ["c"]


def test_accuracy_change_counts_as_move():
	diff = diff_markers({"a": Marker("a", 1.0, 1.0, 100)}, {"a": Marker("a", 1.0, 1.0, 200)})
	assert [m.owner_id for m in diff.moved] == ["a"]
	assert not diff_markers({"a": Marker("a", 1.0, 1.0, 100)}, {"a": Marker("a", 1.0, 1.0, 100)})
