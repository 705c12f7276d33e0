"""Tests for airspace conflict checks."""

from conflict_detection import check_conflicts, find_violated_geofences
from models import Coordinate, GeofenceCreate

from conftest import SQUARE

INSIDE = Coordinate(lat=37.79, lng=-122.43)
OUTSIDE = Coordinate(lat=37.70, lng=-122.30)


class TestCheckConflicts:

    def test_no_active_geofences_means_no_conflicts(self, storage, no_fly_zone):
        fence = storage.create_geofence(no_fly_zone)
        storage.update_geofence(fence.id, {'active': False})

        for geofences in ([], storage.get_geofences()):
            result = check_conflicts([INSIDE, OUTSIDE, INSIDE], 100, geofences)
            assert result.has_conflicts is False
            assert result.conflicts == []

    def test_waypoint_inside_no_fly_square(self, storage, no_fly_zone):
        fence = storage.create_geofence(no_fly_zone)

        result = check_conflicts([INSIDE], 100, storage.get_geofences())

        assert result.has_conflicts is True
        assert len(result.conflicts) == 1
        conflict = result.conflicts[0]
        assert conflict.geofence_id == fence.id
        assert conflict.geofence_name == "Airport"
        assert conflict.type.value == "no_fly"
        assert (conflict.waypoint.lat, conflict.waypoint.lng) == (37.79, -122.43)

    def test_altitude_band_is_inclusive(self, storage):
        storage.create_geofence(GeofenceCreate(name="Band", type="restricted", coordinates=SQUARE,
                                               min_altitude=50, max_altitude=150))
        geofences = storage.get_geofences()

        assert check_conflicts([INSIDE], 50, geofences).has_conflicts
        assert check_conflicts([INSIDE], 150, geofences).has_conflicts
        assert not check_conflicts([INSIDE], 49.9, geofences).has_conflicts
        assert not check_conflicts([INSIDE], 150.1, geofences).has_conflicts

    def test_repeated_crossings_are_not_deduplicated(self, storage, no_fly_zone):
        storage.create_geofence(no_fly_zone)
        second = Coordinate(lat=37.788, lng=-122.425)

        result = check_conflicts([INSIDE, OUTSIDE, second, INSIDE], 100, storage.get_geofences())

        assert [(c.waypoint.lat, c.waypoint.lng) for c in result.conflicts] == [
            (37.79, -122.43), (37.788, -122.425), (37.79, -122.43)
        ]

    def test_geofence_then_waypoint_order(self, storage, no_fly_zone):
        first = storage.create_geofence(no_fly_zone)
        second = storage.create_geofence(GeofenceCreate(name="Overlay", type="warning", coordinates=SQUARE))

        result = check_conflicts([INSIDE, INSIDE], 100, [first, second])

        assert [c.geofence_id for c in result.conflicts] == [first.id, first.id, second.id, second.id]

    def test_wire_format_is_camel_case(self, storage, no_fly_zone):
        storage.create_geofence(no_fly_zone)
        payload = check_conflicts([INSIDE], 100, storage.get_geofences()).model_dump(by_alias=True)

        assert payload['hasConflicts'] is True
        assert set(payload['conflicts'][0]) == {'geofenceId', 'geofenceName', 'type', 'waypoint'}


class TestFindViolatedGeofences:

    def test_live_position_inside_volume(self, storage, no_fly_zone):
        fence = storage.create_geofence(no_fly_zone)

        assert find_violated_geofences(37.79, -122.43, 120, storage.get_geofences()) == [fence]
        assert find_violated_geofences(37.79, -122.43, 500, storage.get_geofences()) == []
        assert find_violated_geofences(37.70, -122.30, 120, storage.get_geofences()) == []
