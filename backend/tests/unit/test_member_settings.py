import pytest

from fraterna.domain.members import service
from fraterna.domain.members.models import MemberProfile, VerificationStatus
from fraterna.domain.proximity.models import VisibilityMode


def _row(**overrides):
    row = {
        "id": "55555555-5555-5555-5555-555555555555",
        "email": "h.juan@example.org",
        "full_name": "Juan Pérez",
        "city": "Madrid",
        "country": "ES",
        "lodge": "Logia Minerva",
        "is_verified": True,
        "verification_status": "verified",
        "is_active": True,
        "tracking_enabled": True,
        "stealth_mode": False,
        "location_visibility_mode": "friends_selected",
        "proximity_alerts_enabled": True,
        "proximity_radius_km": 10,
        "roles": ["admin"],
    }
    row.update(overrides)
    return row


def test_profile_from_record():
    member = MemberProfile.from_record(_row())
    assert member.visibility_mode is VisibilityMode.FRIENDS_SELECTED
    assert member.verification_status is VerificationStatus.VERIFIED
    assert member.is_moderator
    settings = member.viewer_settings()
    assert settings.radius_km == 10
    assert settings.publishing_enabled


def test_unknown_visibility_mode_falls_back_to_friends():
    member = MemberProfile.from_record(_row(location_visibility_mode="everyone", roles=None))
    assert member.visibility_mode is VisibilityMode.FRIENDS
    assert not member.is_moderator


def test_disabled_alerts_have_zero_radius():
    member = MemberProfile.from_record(_row(proximity_alerts_enabled=False))
    assert member.viewer_settings().alert_radius_km(5) == 0


def test_normalise_changes_maps_visibility_mode():
    updates = service._normalise_changes({"visibility_mode": "public", "stealth_mode": 1, "tracking_enabled": None})
    assert updates == {"location_visibility_mode": "public", "stealth_mode": True}


@pytest.mark.parametrize(
    "changes",
    [
        {"visibility_mode": "everyone"},
        {"proximity_radius_km": 3},
        {"is_verified": True},
    ],
)
def test_normalise_changes_rejects_bad_input(changes):
    with pytest.raises(service.InvalidSettings):
        service._normalise_changes(changes)


def test_radius_choices_include_off():
    assert service._normalise_changes({"proximity_radius_km": 0}) == {"proximity_radius_km": 0}
