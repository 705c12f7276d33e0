"""Shared fixtures for engine tests."""

import pytest

from models import Coordinate, DroneCreate, GeofenceCreate, TelemetryCreate
from storage import MemStorage

# 0.01 x 0.02 degree no-fly box used throughout the airspace tests
SQUARE = [
    Coordinate(lat=37.7849, lng=-122.4394),
    Coordinate(lat=37.7949, lng=-122.4394),
    Coordinate(lat=37.7949, lng=-122.4194),
    Coordinate(lat=37.7849, lng=-122.4194),
]


class FakeSocket:
    """Stands in for a websocket; records every frame sent to it."""

    def __init__(self):
        self.accepted = False
        self.closed = False
        self.sent = []

    async def accept(self):
        self.accepted = True

    async def send_text(self, text):
        self.sent.append(text)

    async def close(self):
        self.closed = True


class BrokenSocket(FakeSocket):
    async def send_text(self, text):
        raise ConnectionResetError("peer went away")


@pytest.fixture
def storage():
    return MemStorage(seed=False)


@pytest.fixture
def seeded_storage():
    return MemStorage()


@pytest.fixture
def no_fly_zone():
    return GeofenceCreate(name="Airport", type="no_fly", coordinates=SQUARE,
                          min_altitude=0, max_altitude=400)


def make_drone(drone_id="DRN-100", **overrides):
    fields = dict(id=drone_id, name="Test Drone", model="Quad X", status="active", battery=90,
                  latitude=37.70, longitude=-122.30, altitude=100, speed=10, heading=90,
                  signal_strength=-60)
    fields.update(overrides)
    return DroneCreate(**fields)


def make_sample(drone_id="DRN-100", **overrides):
    fields = dict(drone_id=drone_id, latitude=37.70, longitude=-122.30, altitude=100, speed=10,
                  heading=90, battery=80, signal_strength=-60)
    fields.update(overrides)
    return TelemetryCreate(**fields)
