"""
Airspace Conflict Detection Module
Evaluates proposed flight paths and live positions against restricted-airspace volumes

A geofence volume is its polygon extruded over the inclusive altitude band
[min_altitude, max_altitude]. Inactive geofences never conflict.
"""

from typing import Iterable, List, Sequence
from models import AirspaceConflict, ConflictCheckResult, Coordinate, Geofence
import geofencing


def _ring(geofence: Geofence) -> List[geofencing.LatLng]:
    return [(vertex.lat, vertex.lng) for vertex in geofence.coordinates]


def _in_band(altitude: float, geofence: Geofence) -> bool:
    return geofence.min_altitude <= altitude <= geofence.max_altitude


def check_conflicts(waypoints: Sequence[Coordinate], altitude: float,
                    geofences: Iterable[Geofence]) -> ConflictCheckResult:
    """
    Report every (geofence, waypoint) pair where the waypoint lies inside an
    active geofence's polygon and the altitude lies inside its vertical band

    Conflicts are listed in geofence-then-waypoint order. There is no
    de-duplication and no early exit: a path that re-enters the same zone
    yields one entry per violating waypoint.

    Args:
        waypoints: Ordered path points (lat/lng)
        altitude: Cruise altitude applied to the whole path
        geofences: Candidate geofences; inactive ones are skipped

    Returns:
        ConflictCheckResult with has_conflicts and the conflict list
    """
    conflicts = []

    for geofence in geofences:
        if not geofence.active:
            continue

        ring = _ring(geofence)
        for waypoint in waypoints:
            if (geofencing.point_in_polygon((waypoint.lat, waypoint.lng), ring) and
                    _in_band(altitude, geofence)):
                conflicts.append(AirspaceConflict(
                    geofence_id=geofence.id,
                    geofence_name=geofence.name,
                    type=geofence.type,
                    waypoint=Coordinate(lat=waypoint.lat, lng=waypoint.lng)
                ))

    return ConflictCheckResult(has_conflicts=len(conflicts) > 0, conflicts=conflicts)


def find_violated_geofences(latitude: float, longitude: float, altitude: float,
                            geofences: Iterable[Geofence]) -> List[Geofence]:
    """Active geofences whose volume contains a single live position"""
    return [
        geofence for geofence in geofences
        if geofence.active
        and _in_band(altitude, geofence)
        and geofencing.point_in_polygon((latitude, longitude), _ring(geofence))
    ]
