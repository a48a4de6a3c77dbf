"""Unit tests for great-circle distance"""

import pytest

from groupbuy_gateway.domain.models import Coordinates
from groupbuy_gateway.domain.proximity import distance_km, within_radius

DADAR = Coordinates(19.0178, 72.8478)
PAREL = Coordinates(18.9966, 72.8397)
ANDHERI = Coordinates(19.1136, 72.8697)


def test_distance_to_self_is_zero():
    assert distance_km(DADAR, DADAR) == pytest.approx(0.0)


def test_distance_is_symmetric():
    assert distance_km(DADAR, ANDHERI) == pytest.approx(distance_km(ANDHERI, DADAR))


def test_one_degree_of_latitude_is_about_111_km():
    assert distance_km(Coordinates(0, 0), Coordinates(1, 0)) == pytest.approx(111.19, abs=0.1)


def test_within_radius_uses_distance():
    # Dadar - Parel ~2.5 km, Dadar - Andheri ~11 km
    assert within_radius(DADAR, PAREL, 3.0)
    assert not within_radius(DADAR, PAREL, 2.0)
    assert not within_radius(DADAR, ANDHERI, 5.0)


def test_missing_coordinates_never_exclude():
    assert within_radius(None, DADAR, 0.1)
    assert within_radius(DADAR, None, 0.1)
