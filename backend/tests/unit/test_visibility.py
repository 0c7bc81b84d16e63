import pytest

from fraterna.domain.proximity.models import LocationRecord, OwnerProfile, VisibilityMode
from fraterna.domain.proximity.visibility import (
	AllowlistIndex,
	FriendshipIndex,
	UnavailableIndex,
	VisibilitySnapshot,
	is_visible,
	resolve_snapshot,
	resolve_visible,
)

VIEWER = "viewer"
OWNER = "owner"


def _record(owner_id: str = OWNER, lat: float = 40.0, lng: float = -3.0) -> LocationRecord:
	return LocationRecord(owner_id=owner_id, lat=lat, lng=lng, accuracy_m=150)


def _profile(mode, owner_id: str = OWNER, **kwargs) -> OwnerProfile:
	return OwnerProfile(owner_id=owner_id, visibility_mode=mode, **kwargs)


def test_public_owner_is_visible_to_anyone():
	profile = _profile(VisibilityMode.PUBLIC)
	assert is_visible(VIEWER, OWNER, profile, FriendshipIndex(), AllowlistIndex())


@pytest.mark.parametrize("pair", [(VIEWER, OWNER), (OWNER, VIEWER)])
def test_friends_mode_checks_both_directions(pair):
	profile = _profile(VisibilityMode.FRIENDS)
	assert is_visible(VIEWER, OWNER, profile, FriendshipIndex([pair]), AllowlistIndex())


def test_friends_mode_hides_strangers():
	profile = _profile(VisibilityMode.FRIENDS)
	assert not is_visible(VIEWER, OWNER, profile, FriendshipIndex([(OWNER, "someone")]), AllowlistIndex())


def test_friends_selected_requires_allowlist_entry():
	profile = _profile(VisibilityMode.FRIENDS_SELECTED)
	friends = FriendshipIndex([(VIEWER, OWNER)])
	assert not is_visible(VIEWER, OWNER, profile, friends, AllowlistIndex())
	assert is_visible(VIEWER, OWNER, profile, friends, AllowlistIndex([(OWNER, VIEWER)]))


def test_allowlist_direction_matters():
	profile = _profile(VisibilityMode.FRIENDS_SELECTED)
	assert not is_visible(VIEWER, OWNER, profile, FriendshipIndex(), AllowlistIndex([(VIEWER, OWNER)]))


@pytest.mark.parametrize(
	"flags",
	[{"stealth_mode": True}, {"tracking_enabled": False}],
)
def test_paused_owner_is_hidden_even_when_public(flags):
	profile = _profile(VisibilityMode.PUBLIC, **flags)
	assert not is_visible(VIEWER, OWNER, profile, FriendshipIndex(), AllowlistIndex())


def test_missing_profile_fails_closed():
	assert not is_visible(VIEWER, OWNER, None, FriendshipIndex([(VIEWER, OWNER)]), AllowlistIndex())


def test_unknown_mode_fails_closed():
	profile = _profile(None)
	assert not is_visible(VIEWER, OWNER, profile, FriendshipIndex([(VIEWER, OWNER)]), AllowlistIndex())


def test_failed_lookup_fails_closed():
	friends_profile = _profile(VisibilityMode.FRIENDS)
	selected_profile = _profile(VisibilityMode.FRIENDS_SELECTED)
	broken = UnavailableIndex("friendships")
	assert not is_visible(VIEWER, OWNER, friends_profile, broken, AllowlistIndex())
	assert not is_visible(VIEWER, OWNER, selected_profile, FriendshipIndex(), UnavailableIndex("allowlist"))


def test_failed_lookup_does_not_hide_public_owners():
	profile = _profile(VisibilityMode.PUBLIC)
	assert is_visible(VIEWER, OWNER, profile, UnavailableIndex("friendships"), UnavailableIndex("allowlist"))


def test_resolve_visible_filters_and_skips_viewer():
	candidates = [
		_record("public"),
		_record("friend"),
		_record("stranger"),
		_record("stealthy"),
		_record(VIEWER),
		_record("ghost"),
	]
	profiles = {
		"public": _profile(VisibilityMode.PUBLIC, owner_id="public"),
		"friend": _profile(VisibilityMode.FRIENDS, owner_id="friend"),
		"stranger": _profile(VisibilityMode.FRIENDS, owner_id="stranger"),
		"stealthy": _profile(VisibilityMode.PUBLIC, owner_id="stealthy", stealth_mode=True),
		VIEWER: _profile(VisibilityMode.PUBLIC, owner_id=VIEWER),
	}
	visible = resolve_visible(VIEWER, candidates, FriendshipIndex([("friend", VIEWER)]), AllowlistIndex(), profiles)
	assert sorted(record.owner_id for record in visible) == ["friend", "public"]


def test_resolve_snapshot_and_display_name():
	snapshot = VisibilitySnapshot(
		candidates=[_record("public")],
		profiles={"public": _profile(VisibilityMode.PUBLIC, owner_id="public", display_name="H. Juan")},
	)
	assert [record.owner_id for record in resolve_snapshot(VIEWER, snapshot)] == ["public"]
	assert snapshot.display_name("public") == "H. Juan"
	assert snapshot.display_name("missing") is None


def test_empty_candidates():
	assert resolve_visible(VIEWER, [], FriendshipIndex(), AllowlistIndex(), {}) == []


@pytest.mark.parametrize("row_extra", [{}, {"tracking_enabled": None}])
def test_unknown_tracking_flag_hides_owner(row_extra):
	row = {"user_id": OWNER, "stealth_mode": False, "location_visibility_mode": "public", **row_extra}
	profile = OwnerProfile.from_record(row)
	assert profile.tracking_enabled is False
	assert not is_visible(VIEWER, OWNER, profile, FriendshipIndex(), AllowlistIndex())


def test_tracking_flag_from_row_is_honoured():
	row = {"user_id": OWNER, "stealth_mode": False, "tracking_enabled": True, "location_visibility_mode": "public"}
	assert is_visible(VIEWER, OWNER, OwnerProfile.from_record(row), FriendshipIndex(), AllowlistIndex())
