"""
Geofencing Module
Pure geometry over geographic coordinates: point-in-polygon, bounding boxes,
and GeoJSON ring extraction for importing restricted airspace
Uses ray-casting algorithm for point-in-polygon tests
"""

import logging
from typing import Dict, Iterable, List, Sequence, Tuple

logger = logging.getLogger(__name__)

LatLng = Tuple[float, float]


def point_in_polygon(point: LatLng, polygon: Sequence[LatLng]) -> bool:
    """
    Even-odd ray-casting test

    A horizontal ray is cast from the point toward +infinity longitude and
    ring-edge crossings are counted; an odd count means inside. The ring may
    be open or closed. Points lying exactly on an edge give an
    implementation-defined answer, and no epsilon is applied, so points very
    close to an edge are subject to floating-point rounding.

    Args:
        point: (latitude, longitude)
        polygon: List of (latitude, longitude) vertices

    Returns:
        True if point is inside polygon, False otherwise
    """
    lat, lon = point
    n = len(polygon)
    inside = False

    j = n - 1
    for i in range(n):
        lat_i, lon_i = polygon[i]
        lat_j, lon_j = polygon[j]

        # Edge straddles the ray's latitude; horizontal edges never do
        if (lat_i > lat) != (lat_j > lat):
            crossing_lon = (lon_j - lon_i) * (lat - lat_i) / (lat_j - lat_i) + lon_i
            if lon < crossing_lon:
                inside = not inside

        j = i

    return inside


def bounding_box(points: Iterable[LatLng]) -> Dict[str, float]:
    """
    Compute north/south/east/west extrema of a set of points

    An empty input yields the inverted default (north=-90, south=90,
    east=-180, west=180), which contains nothing.
    """
    north, south, east, west = -90.0, 90.0, -180.0, 180.0

    for lat, lon in points:
        north = max(north, lat)
        south = min(south, lat)
        east = max(east, lon)
        west = min(west, lon)

    return {'north': north, 'south': south, 'east': east, 'west': west}


def geojson_to_coordinates(feature_collection: dict) -> List[Dict[str, float]]:
    """
    Extract polygon vertices from a GeoJSON FeatureCollection

    GeoJSON positions are [longitude, latitude]; the result is a flat list of
    {'lat', 'lng'} dicts. For a Polygon only the exterior ring is used, for a
    MultiPolygon only the first polygon's exterior ring.
    """
    coordinates = []

    for feature in feature_collection.get('features', []):
        geometry = feature.get('geometry') or {}
        geometry_type = geometry.get('type')

        if geometry_type == 'Polygon':
            ring = geometry['coordinates'][0]
        elif geometry_type == 'MultiPolygon':
            ring = geometry['coordinates'][0][0]
        else:
            logger.warning(f"Skipping unsupported GeoJSON geometry: {geometry_type}")
            continue

        for position in ring:
            coordinates.append({'lat': position[1], 'lng': position[0]})

    return coordinates


def simplify_coordinates(coordinates: List[dict], step: int = 10) -> List[dict]:
    """
    Keep every `step`-th vertex plus the final one

    Rings with no more than `step` vertices are returned unchanged.
    """
    if len(coordinates) <= step:
        return coordinates

    simplified = coordinates[::step]

    if simplified[-1] is not coordinates[-1]:
        simplified.append(coordinates[-1])

    return simplified
