"""
Telemetry Pipeline
Synthesizes per-drone telemetry on a fixed interval and runs every sample,
synthesized or ingested, through store -> broadcast -> drone projection -> alerts
"""

from typing import List, Optional
import asyncio
import logging
import random

from models import Drone, MessageType, Telemetry, TelemetryCreate
from storage import MemStorage
from broadcast import BroadcastHub
from alerts import AlertDeduplicator
import config

logger = logging.getLogger(__name__)

# Drone fields overwritten from each sample
PROJECTED_FIELDS = ('latitude', 'longitude', 'altitude', 'speed', 'heading', 'battery', 'signal_strength')


def _jitter(rng: random.Random, amplitude: float) -> float:
    return (rng.random() - 0.5) * amplitude


def synthesize_sample(drone: Drone, rng: random.Random) -> TelemetryCreate:
    """
    Random-walk a drone's kinematic state by one tick

    Position, altitude, heading, speed and signal each get a small independent
    perturbation. Speed and altitude are floored at 0, heading wraps modulo
    360, signal stays at or below 0 dBm, and battery only ever drains.

    Raises:
        ValueError: the drone has no position fix to walk from
    """
    if drone.latitude is None or drone.longitude is None or drone.altitude is None:
        raise ValueError(f"Drone {drone.id} has no position fix")

    speed = drone.speed or 0.0
    signal = drone.signal_strength if drone.signal_strength is not None else 0.0

    heading = ((drone.heading or 0.0) + _jitter(rng, config.HEADING_JITTER)) % 360
    if heading >= 360:  # float modulo of a tiny negative rounds up to 360.0
        heading = 0.0

    return TelemetryCreate(
        drone_id=drone.id,
        latitude=drone.latitude + _jitter(rng, config.LATLNG_JITTER),
        longitude=drone.longitude + _jitter(rng, config.LATLNG_JITTER),
        altitude=max(0.0, drone.altitude + _jitter(rng, config.ALTITUDE_JITTER)),
        speed=max(0.0, speed + _jitter(rng, config.SPEED_JITTER)),
        heading=heading,
        battery=max(0.0, drone.battery - rng.random() * config.BATTERY_MAX_DRAIN),
        signal_strength=min(0.0, signal + _jitter(rng, config.SIGNAL_JITTER)),
    )


class TelemetryProcessor:
    """Shared path for every telemetry sample entering the system"""

    def __init__(self, storage: MemStorage, hub: BroadcastHub, deduplicator: AlertDeduplicator):
        self.storage = storage
        self.hub = hub
        self.deduplicator = deduplicator

    def ingest(self, sample: TelemetryCreate) -> Telemetry:
        """
        Persist a sample, fan it out, project it onto the drone and evaluate alerts

        Raises:
            LookupError: the sample names a drone that does not exist
        """
        previous = self.storage.get_drone(sample.drone_id)
        if previous is None:
            raise LookupError(f"Unknown drone {sample.drone_id}")

        saved = self.storage.add_telemetry(sample)
        self.hub.broadcast(MessageType.TELEMETRY_UPDATE, saved)

        self.storage.update_drone(sample.drone_id, {
            field: getattr(saved, field) for field in PROJECTED_FIELDS
        })

        for alert in self.deduplicator.evaluate(previous, saved):
            self.hub.broadcast(MessageType.ALERT, alert)

        return saved


class TelemetrySynthesizer:
    """Periodic demo telemetry source for drones that are flying"""

    def __init__(self, storage: MemStorage, processor: TelemetryProcessor,
                 interval: float = config.TELEMETRY_INTERVAL, rng: Optional[random.Random] = None):
        self.storage = storage
        self.processor = processor
        self.interval = interval
        self.rng = rng or random.Random()
        self.ticks = 0

    def tick(self) -> List[Telemetry]:
        """
        Advance every active or on-mission drone by one sample

        Each drone is processed independently: a failure for one is logged and
        the rest still get their sample.
        """
        produced = []

        for drone in self.storage.get_drones():
            if drone.status.value not in config.SIMULATED_STATUSES:
                continue

            try:
                sample = synthesize_sample(drone, self.rng)
                produced.append(self.processor.ingest(sample))
            except Exception:
                logger.exception(f"Telemetry tick failed for {drone.id}")

        self.ticks += 1
        return produced

    async def run(self):
        """Tick forever; stopped only by task cancellation at shutdown"""
        logger.info(f"Telemetry synthesizer started (interval: {self.interval}s)")
        try:
            while True:
                self.tick()
                await asyncio.sleep(self.interval)
        finally:
            logger.info(f"Telemetry synthesizer stopped after {self.ticks} ticks")
