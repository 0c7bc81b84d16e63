from datetime import datetime, timezone

import pytest

from fraterna.domain.proximity import publisher, service
from fraterna.domain.proximity.models import LocationRecord
from fraterna.domain.proximity.publisher import StoredLocation
from fraterna.domain.proximity.service import EmergencyStatus, VisibleLocation

UPDATED = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_requires_authentication(api_client):
	response = await api_client.get("/locations/visible")
	assert response.status_code == 401
	assert response.json()["detail"] == "invalid_token"


@pytest.mark.asyncio
async def test_unverified_member_is_refused(api_client, signed_in, member_profile):
	member_profile.is_verified = False
	response = await api_client.get("/locations/visible", headers=signed_in)
	assert response.status_code == 403
	assert response.json()["detail"] == "verification_required"


@pytest.mark.asyncio
async def test_inactive_member_is_refused(api_client, signed_in, member_profile):
	member_profile.is_active = False
	response = await api_client.get("/locations/visible", headers=signed_in)
	assert response.status_code == 403
	assert response.json()["detail"] == "account_inactive"


@pytest.mark.asyncio
async def test_visible_locations(monkeypatch, api_client, signed_in):
	async def fake_visible(viewer_id):
		return [
			VisibleLocation(
				owner_id="22222222-2222-2222-2222-222222222222",
				display_name="H. Andrés",
				lat=40.43,
				lng=-3.70,
				accuracy_m=100,
				updated_at=UPDATED,
				distance_km=1.23456,
			)
		]

	monkeypatch.setattr(service, "get_visible_locations", fake_visible)
	response = await api_client.get("/locations/visible", headers=signed_in)
	assert response.status_code == 200
	item = response.json()["items"][0]
	assert item["display_name"] == "H. Andrés"
	assert item["distance_km"] == 1.23
	assert response.headers.get("X-Request-Id")


@pytest.mark.asyncio
async def test_visible_locations_unavailable(monkeypatch, api_client, signed_in):
	async def broken(viewer_id):
		raise ConnectionError("db down")

	monkeypatch.setattr(service, "get_visible_locations", broken)
	response = await api_client.get("/locations/visible", headers=signed_in)
	assert response.status_code == 503


@pytest.mark.asyncio
async def test_publish_own_location(monkeypatch, api_client, signed_in, member_profile):
	calls = []

	async def fake_publish(user_id, lat, lng, accuracy=None):
		calls.append((user_id, lat, lng, accuracy))
		return StoredLocation(owner_id=user_id, lat=lat, lng=lng, accuracy_m=100, updated_at=UPDATED)

	monkeypatch.setattr(publisher, "publish_location", fake_publish)
	response = await api_client.post(
		"/locations/me",
		json={"lat": 40.4, "lng": -3.7, "accuracy": 20},
		headers=signed_in,
	)
	assert response.status_code == 200
	assert response.json()["accuracy_m"] == 100
	assert calls == [(member_profile.id, 40.4, -3.7, 20)]


@pytest.mark.asyncio
async def test_publish_while_paused_conflicts(monkeypatch, api_client, signed_in):
	async def paused(*args, **kwargs):
		raise publisher.LocationPaused()

	monkeypatch.setattr(publisher, "publish_location", paused)
	response = await api_client.post("/locations/me", json={"lat": 1, "lng": 1}, headers=signed_in)
	assert response.status_code == 409
	assert response.json()["detail"] == "location_paused"


@pytest.mark.asyncio
async def test_publish_validates_coordinates(api_client, signed_in):
	response = await api_client.post("/locations/me", json={"lat": 91, "lng": 0}, headers=signed_in)
	assert response.status_code == 422


@pytest.mark.asyncio
async def test_clear_own_location(monkeypatch, api_client, signed_in):
	async def fake_clear(user_id):
		return True

	monkeypatch.setattr(publisher, "clear_location", fake_clear)
	response = await api_client.delete("/locations/me", headers=signed_in)
	assert response.status_code == 204


@pytest.mark.asyncio
async def test_emergency_status(monkeypatch, api_client, signed_in):
	async def fake_status(viewer_id, *, now=None):
		return EmergencyStatus(available=True, others_count=3)

	monkeypatch.setattr(service, "emergency_status", fake_status)
	response = await api_client.get("/emergency/status", headers=signed_in)
	assert response.status_code == 200
	assert response.json() == {"available": True, "others_count": 3}


@pytest.mark.asyncio
async def test_emergency_status_closed_when_database_is_down(monkeypatch, api_client, signed_in, member_profile):
	async def own(user_id):
		return LocationRecord(owner_id=member_profile.id, lat=40.4168, lng=-3.7038, accuracy_m=100, updated_at=UPDATED)

	async def broken(viewer_id):
		raise ConnectionError("db down")

	monkeypatch.setattr(service, "load_own_location", own)
	monkeypatch.setattr(service, "load_snapshot", broken)
	response = await api_client.get("/emergency/status", headers=signed_in)
	assert response.status_code == 200
	assert response.json() == {"available": False, "others_count": 0}
