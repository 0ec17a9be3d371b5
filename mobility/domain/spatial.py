"""
Geographic helpers for the provider directory.

Distances are great-circle (haversine) kilometres, not road distances;
the directory only needs them to bound and rank candidates.

Spatial prefilter
-----------------
Providers are binned into H3 cells.  A radius search covers the query
point's cell plus ``k`` rings of neighbours, where ``k`` is the number of
cell-centre spacings (``sqrt(3) x edge length``) needed to reach the
radius, plus one ring of slack for points near a cell edge.  When ``k``
grows past the configured cap the caller falls back to a lat/lng bounding
box instead, since the IN-list of cells grows as O(k^2).
"""

from __future__ import annotations

import math
from typing import Optional

import h3

EARTH_RADIUS_KM = 6_371.0
KM_PER_DEGREE_LAT = 111.32


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in **km** between two points.  O(1)."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = phi2 - phi1
    dlmb = math.radians(lng2 - lng1)
    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def h3_cell(lat: float, lng: float, resolution: int = 7) -> str:
    """Map a geo-point to its H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)


def rings_for_radius(radius_km: float, resolution: int = 7) -> int:
    edge = h3.average_hexagon_edge_length(resolution, unit="km")
    spacing = math.sqrt(3) * edge
    return int(math.ceil(radius_km / spacing)) + 1


def covering_cells(
    lat: float, lng: float, radius_km: float, resolution: int = 7, max_ring: int = 12
) -> Optional[set[str]]:
    """H3 cells covering the circle, or ``None`` when the disk would exceed *max_ring*."""
    k = rings_for_radius(radius_km, resolution)
    if k > max_ring:
        return None
    return set(h3.grid_disk(h3_cell(lat, lng, resolution), k))


def bounding_box(
    lat: float, lng: float, radius_km: float
) -> tuple[float, float, float, float]:
    """(min_lat, max_lat, min_lng, max_lng) enclosing the circle.

    Longitude span widens with latitude; near the poles it covers the
    whole range.
    """
    dlat = radius_km / KM_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(lat))
    if cos_lat < 1e-6:
        return max(-90.0, lat - dlat), min(90.0, lat + dlat), -180.0, 180.0
    dlng = min(180.0, radius_km / (KM_PER_DEGREE_LAT * cos_lat))
    return (
        max(-90.0, lat - dlat),
        min(90.0, lat + dlat),
        max(-180.0, lng - dlng),
        min(180.0, lng + dlng),
    )
