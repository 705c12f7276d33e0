"""Tests for the in-memory record store."""

import threading

import pytest
from pydantic import ValidationError

from models import AlertCreate, MissionCreate, MissionStatus
from storage import DuplicateEntityError, InvalidTransitionError, MemStorage

from conftest import make_drone, make_sample


def make_mission(**overrides):
    fields = dict(name="Survey", type="survey", altitude=100,
                  waypoints=[{'lat': 37.70, 'lng': -122.30, 'altitude': 100},
                             {'lat': 37.71, 'lng': -122.31, 'altitude': 100}])
    fields.update(overrides)
    return MissionCreate(**fields)


class TestSeed:

    def test_demo_fleet_loaded(self, seeded_storage):
        assert {d.id for d in seeded_storage.get_drones()} == {'DRN-001', 'DRN-002', 'DRN-003'}
        assert len(seeded_storage.get_geofences()) == 2
        assert len(seeded_storage.get_alerts('DRN-003')) == 1


class TestDrones:

    def test_create_and_get(self, storage):
        created = storage.create_drone(make_drone())
        assert storage.get_drone('DRN-100') == created
        assert storage.get_drone('missing') is None

    def test_duplicate_id_rejected(self, storage):
        storage.create_drone(make_drone())
        with pytest.raises(DuplicateEntityError):
            storage.create_drone(make_drone())

    def test_update_refreshes_last_seen(self, storage):
        created = storage.create_drone(make_drone())
        updated = storage.update_drone('DRN-100', {'battery': 50})

        assert updated.battery == 50
        assert updated.last_seen >= created.last_seen
        assert storage.update_drone('DRN-100', {}).last_seen >= updated.last_seen

    def test_update_unknown_returns_none(self, storage):
        assert storage.update_drone('nope', {'battery': 10}) is None

    def test_invalid_update_leaves_record_untouched(self, storage):
        storage.create_drone(make_drone())
        with pytest.raises(ValidationError):
            storage.update_drone('DRN-100', {'battery': 150})
        assert storage.get_drone('DRN-100').battery == 90

    def test_records_are_frozen(self, storage):
        drone = storage.create_drone(make_drone())
        with pytest.raises(ValidationError):
            drone.battery = 10

    def test_concurrent_updates_do_not_interleave(self, storage):
        storage.create_drone(make_drone())

        def writer(value):
            for _ in range(200):
                storage.update_drone('DRN-100', {'battery': value, 'speed': value})

        threads = [threading.Thread(target=writer, args=(v,)) for v in (10.0, 20.0, 30.0)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        drone = storage.get_drone('DRN-100')
        assert drone.battery == drone.speed


class TestTelemetry:

    def test_ring_buffer_evicts_oldest(self, storage):
        for i in range(1001):
            storage.add_telemetry(make_sample(altitude=float(i)))

        history = storage.get_telemetry('DRN-100', limit=5000)
        assert len(history) == 1000
        altitudes = [sample.altitude for sample in history]
        assert 0.0 not in altitudes
        assert altitudes[0] == 1.0
        assert altitudes[-1] == 1000.0

    def test_limit_returns_newest_oldest_first(self, storage):
        for i in range(10):
            storage.add_telemetry(make_sample(altitude=float(i)))

        assert [s.altitude for s in storage.get_telemetry('DRN-100', limit=3)] == [7.0, 8.0, 9.0]
        assert len(storage.get_telemetry('DRN-100')) == 10
        assert storage.get_telemetry('DRN-100', limit=0) == []

    def test_histories_are_per_drone(self, storage):
        storage.add_telemetry(make_sample('A'))
        storage.add_telemetry(make_sample('B'))
        assert len(storage.get_telemetry('A')) == 1
        assert storage.get_telemetry('C') == []


class TestMissions:

    def test_create_defaults(self, storage):
        mission = storage.create_mission(make_mission())
        assert mission.status == MissionStatus.PLANNED
        assert mission.progress == 0
        assert mission.start_time is None

    def test_requires_two_waypoints(self):
        with pytest.raises(ValidationError):
            make_mission(waypoints=[{'lat': 37.70, 'lng': -122.30, 'altitude': 100}])

    def test_lifecycle_stamps_times(self, storage):
        mission = storage.create_mission(make_mission())

        active = storage.update_mission(mission.id, {'status': MissionStatus.ACTIVE})
        assert active.start_time is not None

        paused = storage.update_mission(mission.id, {'status': MissionStatus.PAUSED})
        resumed = storage.update_mission(mission.id, {'status': MissionStatus.ACTIVE})
        assert resumed.start_time == active.start_time == paused.start_time

        done = storage.update_mission(mission.id, {'status': MissionStatus.COMPLETED})
        assert done.end_time is not None
        assert done.progress == 100

    @pytest.mark.parametrize("path", [
        ['completed'],
        ['paused'],
        ['active', 'completed', 'active'],
        ['cancelled', 'active'],
    ])
    def test_illegal_transitions(self, storage, path):
        mission = storage.create_mission(make_mission())
        with pytest.raises(InvalidTransitionError):
            for status in path:
                storage.update_mission(mission.id, {'status': status})

    def test_rejected_transition_changes_nothing(self, storage):
        mission = storage.create_mission(make_mission())
        with pytest.raises(InvalidTransitionError):
            storage.update_mission(mission.id, {'status': 'completed', 'name': 'Renamed'})
        assert storage.get_mission(mission.id) == mission

    def test_delete_reports_existence(self, storage):
        mission = storage.create_mission(make_mission())
        assert storage.delete_mission(mission.id) is True
        assert storage.delete_mission(mission.id) is False
        assert storage.update_mission(mission.id, {'name': 'x'}) is None


class TestGeofences:

    def test_update_and_delete(self, storage, no_fly_zone):
        fence = storage.create_geofence(no_fly_zone)
        assert storage.update_geofence(fence.id, {'active': False}).active is False
        assert storage.update_geofence('nope', {'active': False}) is None
        assert storage.delete_geofence(fence.id) is True
        assert storage.delete_geofence(fence.id) is False

    def test_band_must_be_ordered(self, storage, no_fly_zone):
        fence = storage.create_geofence(no_fly_zone)
        with pytest.raises(ValidationError):
            storage.update_geofence(fence.id, {'min_altitude': 500})


class TestAlerts:

    def test_acknowledge_is_one_way(self, storage):
        alert = storage.create_alert(AlertCreate(drone_id='DRN-100', type='battery_low', severity='warning',
                                                 title='Low', message='low'))
        assert alert.acknowledged is False
        assert storage.acknowledge_alert(alert.id) is True
        assert storage.acknowledge_alert(alert.id) is True
        assert storage.get_alerts('DRN-100')[0].acknowledged is True
        assert storage.acknowledge_alert('missing') is False

    def test_filter_by_drone(self, storage):
        for drone_id in ('A', 'B', None):
            storage.create_alert(AlertCreate(drone_id=drone_id, type='maintenance_required',
                                             severity='info', title='Service', message='due'))
        assert len(storage.get_alerts()) == 3
        assert len(storage.get_alerts('A')) == 1


def test_custom_telemetry_limit():
    small = MemStorage(seed=False, telemetry_limit=3)
    for i in range(5):
        small.add_telemetry(make_sample(altitude=float(i)))
    assert [s.altitude for s in small.get_telemetry('DRN-100')] == [2.0, 3.0, 4.0]
