"""
Virtual Drone Telemetry Feeder
Connects to the engine's observer channel as an external telemetry source:
takes the fleet snapshot from initial_data, random-walks the chosen drones,
and pushes their samples as {type: "telemetry"} messages
"""

import argparse
import asyncio
import aiohttp
import json
import logging
import random
import time
from typing import Dict, List, Optional

from models import Drone, MessageType, TelemetryCreate
import config
import telemetry

logger = logging.getLogger(__name__)


class VirtualDrone:
    """Local random-walk state for one externally fed drone"""

    def __init__(self, drone: Drone, rng: Optional[random.Random] = None):
        self.drone = drone
        self.rng = rng or random.Random()
        self.samples_sent = 0

    @property
    def drone_id(self) -> str:
        return self.drone.id

    def step(self) -> TelemetryCreate:
        """Advance one tick and carry the new sample over as the next starting state"""
        sample = telemetry.synthesize_sample(self.drone, self.rng)
        self.drone = self.drone.model_copy(update={
            field: getattr(sample, field) for field in telemetry.PROJECTED_FIELDS
        })
        return sample


def build_telemetry_message(sample: TelemetryCreate) -> str:
    return json.dumps({
        'type': MessageType.TELEMETRY.value,
        'data': sample.model_dump(mode="json", by_alias=True)
    })


def build_fleet(initial_data: dict, drone_ids: List[str], seed: Optional[int] = None) -> List[VirtualDrone]:
    """Pick the requested drones out of an initial_data snapshot"""
    rng = random.Random(seed)
    known: Dict[str, Drone] = {
        record['id']: Drone.model_validate(record) for record in initial_data.get('drones', [])
    }

    fleet = []
    for drone_id in drone_ids:
        drone = known.get(drone_id)
        if drone is None:
            logger.warning(f"Drone {drone_id} not present on the server; skipping")
            continue
        fleet.append(VirtualDrone(drone, random.Random(rng.random())))
    return fleet


def reply_for(message: dict) -> Optional[str]:
    """Answer server heartbeats; every other message needs no reply"""
    if message.get('type') == MessageType.PING.value:
        return json.dumps({'type': MessageType.PONG.value})
    return None


class FleetSimulator:
    """Feeds a set of virtual drones into the engine over one websocket"""

    def __init__(self, api_url: str, drone_ids: List[str],
                 interval: float = config.TELEMETRY_INTERVAL, seed: Optional[int] = None):
        self.api_url = api_url
        self.drone_ids = drone_ids
        self.interval = interval
        self.seed = seed
        self.drones: List[VirtualDrone] = []
        self.running = False

    @property
    def ws_url(self) -> str:
        return self.api_url.replace('http://', 'ws://').replace('https://', 'wss://') + '/ws'

    async def run(self):
        """Connect, wait for the snapshot, then feed until stopped or disconnected"""
        self.running = True

        async with aiohttp.ClientSession() as session:
            async with session.ws_connect(self.ws_url, heartbeat=config.WS_HEARTBEAT_INTERVAL) as ws:
                logger.info(f"Connected to observer channel: {self.ws_url}")

                first = await ws.receive_json()
                if first.get('type') != MessageType.INITIAL_DATA.value:
                    raise RuntimeError(f"Expected initial_data, got {first.get('type')}")

                self.drones = build_fleet(first.get('data', {}), self.drone_ids, self.seed)
                logger.info(f"Feeding {len(self.drones)} drones every {self.interval}s")

                await asyncio.gather(self.feed_loop(ws), self.listen_loop(ws))

    async def feed_loop(self, ws: aiohttp.ClientWebSocketResponse):
        while self.running and not ws.closed:
            loop_start = time.time()

            for drone in self.drones:
                try:
                    await ws.send_str(build_telemetry_message(drone.step()))
                    drone.samples_sent += 1
                except ValueError as e:
                    logger.warning(f"Skipping {drone.drone_id}: {e}")

            elapsed = time.time() - loop_start
            await asyncio.sleep(max(0, self.interval - elapsed))

    async def listen_loop(self, ws: aiohttp.ClientWebSocketResponse):
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.TEXT:
                message = msg.json()
                reply = reply_for(message)
                if reply:
                    await ws.send_str(reply)
                elif message.get('type') == MessageType.ALERT.value:
                    alert = message.get('data', {})
                    logger.info(f"Alert for {alert.get('droneId')}: {alert.get('title')}")

            elif msg.type == aiohttp.WSMsgType.ERROR:
                logger.error(f"WebSocket error: {ws.exception()}")
                break

        self.running = False

    def stop(self):
        self.running = False
        logger.info("Stopping telemetry feeder...")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Feed virtual drone telemetry into the fleet engine")
    parser.add_argument('drone_ids', nargs='+', help="Drone ids to simulate (must exist on the server)")
    parser.add_argument('--api-url', default=f"http://{config.API_HOST}:{config.API_PORT}")
    parser.add_argument('--interval', type=float, default=config.TELEMETRY_INTERVAL)
    parser.add_argument('--seed', type=int, default=None)
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None):
    """Main entry point"""
    args = parse_args(argv)
    fleet = FleetSimulator(args.api_url, args.drone_ids, interval=args.interval, seed=args.seed)

    try:
        await fleet.run()
    except aiohttp.ClientError as e:
        logger.error(f"Could not reach fleet engine at {args.api_url}: {e}")
    finally:
        fleet.stop()


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL)
    asyncio.run(main())
