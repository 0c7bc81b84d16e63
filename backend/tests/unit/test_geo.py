import math

import pytest

from fraterna.domain.proximity.geo import EARTH_RADIUS_KM, distance_km, is_valid_coordinate


def test_distance_to_self_is_zero():
    assert distance_km(40.4168, -3.7038, 40.4168, -3.7038) == 0.0


def test_one_degree_of_latitude():
    expected = EARTH_RADIUS_KM * math.pi / 180
    assert distance_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected, rel=1e-9)


def test_madrid_to_barcelona():
    assert distance_km(40.4168, -3.7038, 41.3874, 2.1686) == pytest.approx(505, abs=5)


def test_distance_is_symmetric():
    a = distance_km(19.4326, -99.1332, 20.6597, -103.3496)
    b = distance_km(20.6597, -103.3496, 19.4326, -99.1332)
    assert a == pytest.approx(b)


def test_antipodal_points_do_not_raise():
    assert distance_km(0.0, 0.0, 0.0, 180.0) == pytest.approx(EARTH_RADIUS_KM * math.pi)


@pytest.mark.parametrize(
    "lat,lng,ok",
    [
        (0, 0, True),
        (90, 180, True),
        (-90.0, -180.0, True),
        (90.1, 0, False),
        (0, 180.5, False),
        (float("nan"), 0, False),
        (0, float("inf"), False),
        (True, 0, False),
        ("abc", 0, False),
        (None, 0, False),
    ],
)
def test_is_valid_coordinate(lat, lng, ok):
    assert is_valid_coordinate(lat, lng) is ok
