import dataclasses

import pytest

from fraterna.domain.members import service
from fraterna.domain.members.models import MemberSummary
from fraterna.domain.proximity import sockets as map_sockets
from fraterna.domain.proximity.models import VisibilityMode


@pytest.mark.asyncio
async def test_get_profile(api_client, signed_in, member_profile):
    response = await api_client.get("/profile/me", headers=signed_in)
    assert response.status_code == 200
    body = response.json()
    assert body["id"] == member_profile.id
    assert body["visibility_mode"] == "friends"
    assert body["proximity_radius_km"] == 5


@pytest.mark.asyncio
async def test_unverified_member_can_read_own_profile(api_client, signed_in, member_profile):
    member_profile.is_verified = False
    response = await api_client.get("/profile/me", headers=signed_in)
    assert response.status_code == 200
    assert response.json()["is_verified"] is False


@pytest.mark.asyncio
async def test_unknown_member(api_client, signed_in):
    response = await api_client.get("/profile/me", headers={"X-User-Id": "99999999-9999-9999-9999-999999999999"})
    assert response.status_code == 404
    assert response.json()["detail"] == "member_not_found"


@pytest.mark.asyncio
async def test_patch_settings_reloads_live_sessions(monkeypatch, api_client, signed_in, member_profile):
    seen = {}
    reloaded = []

    async def fake_update(user_id, **changes):
        seen.update(changes)
        return dataclasses.replace(member_profile, stealth_mode=True, visibility_mode=VisibilityMode.PUBLIC)

    async def fake_reload(user_id):
        reloaded.append(user_id)

    monkeypatch.setattr(service, "update_settings", fake_update)
    monkeypatch.setattr(map_sockets, "reload_viewer_settings", fake_reload)
    response = await api_client.patch(
        "/profile/me/settings",
        json={"stealth_mode": True, "visibility_mode": "public"},
        headers=signed_in,
    )
    assert response.status_code == 200
    assert seen == {"stealth_mode": True, "visibility_mode": "public"}
    assert reloaded == [member_profile.id]
    assert response.json()["stealth_mode"] is True


@pytest.mark.asyncio
async def test_patch_settings_rejects_unknown_radius(api_client, signed_in):
    response = await api_client.patch("/profile/me/settings", json={"proximity_radius_km": 3}, headers=signed_in)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_search_members(monkeypatch, api_client, signed_in):
    async def fake_search(viewer_id, query, **kwargs):
        assert query == "pe"
        return [MemberSummary(id="m-2", full_name="Pedro Gil", city="Sevilla", lodge="Logia Hiram")]

    monkeypatch.setattr(service, "search_members", fake_search)
    response = await api_client.get("/members/search", params={"q": "pe"}, headers=signed_in)
    assert response.status_code == 200
    assert response.json()[0]["full_name"] == "Pedro Gil"
