"""
Tests unitaires pour l'évaluation géographique (Haversine, appartenance à une zone).
"""

import math

import pytest

from app.schemas.location_check import GeoPoint, GeoRegion
from app.services.geo_service import distance_meters, is_inside

CENTER = GeoPoint(latitude=50.8466, longitude=4.3528)   # Grand-Place, Bruxelles
PARIS = GeoPoint(latitude=48.8566, longitude=2.3522)


def region(radius: float, center: GeoPoint = CENTER) -> GeoRegion:
    return GeoRegion(latitude=center.latitude, longitude=center.longitude, radius=radius)


# --- distance_meters ---

def test_distance_meme_point_nulle():
    assert distance_meters(CENTER, CENTER) == 0


def test_distance_bruxelles_paris():
    """Bruxelles → Paris ≈ 264 km."""
    assert 260_000 < distance_meters(CENTER, PARIS) < 268_000


def test_distance_symetrique():
    assert distance_meters(CENTER, PARIS) == pytest.approx(distance_meters(PARIS, CENTER))


def test_distance_un_centieme_de_degre_de_latitude():
    """0.01° de latitude ≈ 1112 m."""
    north = GeoPoint(latitude=CENTER.latitude + 0.01, longitude=CENTER.longitude)
    assert distance_meters(CENTER, north) == pytest.approx(1112, rel=0.01)


# --- is_inside ---

def test_point_proche_dans_la_zone():
    point = GeoPoint(latitude=50.8467, longitude=4.3529)  # ~13 m
    assert is_inside(region(50), point) is True


def test_point_eloigne_hors_zone():
    point = GeoPoint(latitude=50.8500, longitude=4.3600)  # ~630 m
    assert is_inside(region(50), point) is False


def test_frontiere_incluse():
    """distance == rayon → dans la zone ; juste en dessous du rayon → hors zone."""
    point = GeoPoint(latitude=50.8470, longitude=4.3528)
    d = distance_meters(CENTER, point)
    assert is_inside(region(d), point) is True
    assert is_inside(region(d - 0.01), point) is False


def test_rayon_nul_au_centre():
    assert is_inside(region(0), CENTER) is True


@pytest.mark.parametrize("latitude, longitude", [
    (math.nan, 4.3528),
    (50.8466, math.nan),
    (91.0, 4.3528),
    (50.8466, 181.0),
])
def test_coordonnees_invalides_jamais_dans_la_zone(latitude, longitude):
    assert is_inside(region(10_000_000), GeoPoint(latitude=latitude, longitude=longitude)) is False


def test_rayon_negatif_ou_nan_jamais_dans_la_zone():
    assert is_inside(region(-1), CENTER) is False
    assert is_inside(region(math.nan), CENTER) is False
