"""
Évaluation géographique : distance orthodromique (formule de Haversine)
et test d'appartenance à une zone circulaire.

Fonctions pures, sans effet de bord. Une coordonnée invalide (NaN, hors
plage) n'est jamais considérée comme "dans la zone".
"""

import math

from app.schemas.location_check import GeoPoint, GeoRegion

EARTH_RADIUS_M = 6371000


def _valid_coordinates(latitude: float, longitude: float) -> bool:
    try:
        lat = float(latitude)
        lng = float(longitude)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat) or math.isnan(lng):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lng <= 180.0


def distance_meters(p1: GeoPoint, p2: GeoPoint) -> float:
    """Distance orthodromique entre deux points, en mètres."""
    lat1 = math.radians(p1.latitude)
    lat2 = math.radians(p2.latitude)
    dlat = lat2 - lat1
    dlng = math.radians(p2.longitude - p1.longitude)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlng / 2) ** 2
    # min() protège asin contre les erreurs d'arrondi (a légèrement > 1)
    c = 2 * math.asin(math.sqrt(min(1.0, a)))
    return EARTH_RADIUS_M * c


def is_inside(region: GeoRegion, point: GeoPoint) -> bool:
    """Vrai si le point est dans la zone ; la frontière (distance == rayon) est incluse."""
    if not _valid_coordinates(point.latitude, point.longitude):
        return False
    if not _valid_coordinates(region.latitude, region.longitude):
        return False
    if math.isnan(region.radius) or region.radius < 0:
        return False
    center = GeoPoint(latitude=region.latitude, longitude=region.longitude)
    return distance_meters(center, point) <= region.radius
