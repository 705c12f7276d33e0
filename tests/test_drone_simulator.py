"""Tests for the external telemetry feeder."""

import json
import random

from drone_simulator import (
    FleetSimulator, VirtualDrone, build_fleet, build_telemetry_message, parse_args, reply_for
)
from models import Drone, TelemetryCreate, utcnow

from conftest import make_drone


def snapshot(*drones):
    now = utcnow()
    records = [Drone(**drone.model_dump(), last_seen=now, created_at=now) for drone in drones]
    return {'drones': [record.model_dump(mode="json", by_alias=True) for record in records],
            'missions': [], 'geofences': [], 'alerts': []}


class TestBuildFleet:

    def test_picks_requested_known_drones(self):
        data = snapshot(make_drone('A'), make_drone('B'), make_drone('C'))

        fleet = build_fleet(data, ['C', 'ghost', 'A'], seed=1)

        assert [drone.drone_id for drone in fleet] == ['C', 'A']
        assert fleet[0].drone.signal_strength == -60

    def test_empty_snapshot(self):
        assert build_fleet({}, ['A']) == []


class TestVirtualDrone:

    def test_step_carries_state_forward(self):
        [virtual] = build_fleet(snapshot(make_drone('A', battery=50)), ['A'], seed=3)

        first = virtual.step()
        second = virtual.step()

        assert first.drone_id == second.drone_id == 'A'
        assert virtual.drone.battery == second.battery <= first.battery <= 50
        assert virtual.drone.latitude == second.latitude

    def test_same_seed_same_walk(self):
        data = snapshot(make_drone('A'))
        walks = []
        for _ in range(2):
            [virtual] = build_fleet(data, ['A'], seed=42)
            walks.append([virtual.step() for _ in range(5)])
        assert walks[0] == walks[1]


class TestMessages:

    def test_telemetry_message_is_camel_case(self):
        now = utcnow()
        virtual = VirtualDrone(Drone(**make_drone('A').model_dump(), last_seen=now, created_at=now),
                               random.Random(0))

        message = json.loads(build_telemetry_message(virtual.step()))

        assert message['type'] == 'telemetry'
        assert message['data']['droneId'] == 'A'
        TelemetryCreate.model_validate(message['data'])

    def test_ping_gets_pong(self):
        assert json.loads(reply_for({'type': 'ping'})) == {'type': 'pong'}
        assert reply_for({'type': 'telemetry_update', 'data': {}}) is None


class TestFleetSimulator:

    def test_ws_url(self):
        assert FleetSimulator('http://localhost:8000', ['A']).ws_url == 'ws://localhost:8000/ws'
        assert FleetSimulator('https://fleet.example', ['A']).ws_url == 'wss://fleet.example/ws'

    def test_parse_args(self):
        args = parse_args(['DRN-001', 'DRN-002', '--interval', '0.5', '--seed', '7'])
        assert args.drone_ids == ['DRN-001', 'DRN-002']
        assert (args.interval, args.seed) == (0.5, 7)
        assert args.api_url.startswith('http://')
