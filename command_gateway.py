"""
Drone Command Gateway (stub)
Stands in for a flight-control link: tracks which drones are "connected" and
simulates command round-trips with latency and an occasional failure.
No real protocol traffic is produced.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
import asyncio
import logging
import random
import time

from models import DroneCommand, MissionStatus, Waypoint
import config

logger = logging.getLogger(__name__)

# Command names as a MAVLink-style autopilot would know them
COMMAND_CODES = {
    DroneCommand.ARM: ("MAV_CMD_COMPONENT_ARM_DISARM", [1]),
    DroneCommand.DISARM: ("MAV_CMD_COMPONENT_ARM_DISARM", [0]),
    DroneCommand.START_MISSION: ("MAV_CMD_MISSION_START", []),
    DroneCommand.PAUSE_MISSION: ("MAV_CMD_DO_PAUSE_CONTINUE", [0]),
    DroneCommand.RESUME_MISSION: ("MAV_CMD_DO_PAUSE_CONTINUE", [1]),
    DroneCommand.RETURN_TO_LAUNCH: ("MAV_CMD_NAV_RETURN_TO_LAUNCH", []),
}


class DroneNotConnectedError(RuntimeError):
    """Raised when commanding a drone without an open link"""


@dataclass
class DroneLink:
    drone_id: str
    connection_string: str
    connected: bool = True
    last_heartbeat: float = field(default_factory=time.time)


class CommandGateway:
    """Simulated command link to the fleet"""

    def __init__(self, success_rate: float = config.COMMAND_SUCCESS_RATE,
                 latency: float = config.COMMAND_LATENCY,
                 upload_latency: float = config.MISSION_UPLOAD_LATENCY,
                 rng: Optional[random.Random] = None):
        self.success_rate = success_rate
        self.latency = latency
        self.upload_latency = upload_latency
        self.rng = rng or random.Random()
        self.links: Dict[str, DroneLink] = {}

    async def connect_drone(self, drone_id: str, connection_string: str) -> bool:
        logger.info(f"Connecting to drone {drone_id} at {connection_string}")
        self.links[drone_id] = DroneLink(drone_id=drone_id, connection_string=connection_string)
        return True

    async def disconnect_drone(self, drone_id: str):
        self.links.pop(drone_id, None)
        logger.info(f"Disconnected from drone {drone_id}")

    def is_connected(self, drone_id: str) -> bool:
        link = self.links.get(drone_id)
        return bool(link and link.connected)

    def get_connected_drones(self) -> List[str]:
        return [drone_id for drone_id, link in self.links.items() if link.connected]

    def _require_link(self, drone_id: str) -> DroneLink:
        if not self.is_connected(drone_id):
            raise DroneNotConnectedError(f"Drone {drone_id} not connected")
        return self.links[drone_id]

    async def send_command(self, drone_id: str, command: str, params: Sequence[float] = ()) -> bool:
        """
        Simulate one command round-trip

        Returns:
            True if the (simulated) autopilot acknowledged the command

        Raises:
            DroneNotConnectedError: no link to the drone
        """
        link = self._require_link(drone_id)
        logger.info(f"Sending command to {drone_id}: {command} {list(params)}")

        await asyncio.sleep(self.latency)
        link.last_heartbeat = time.time()

        accepted = self.rng.random() < self.success_rate
        if not accepted:
            logger.warning(f"Command {command} rejected by {drone_id}")
        return accepted

    async def dispatch(self, drone_id: str, command: DroneCommand) -> bool:
        code, params = COMMAND_CODES[command]
        return await self.send_command(drone_id, code, params)

    async def upload_mission(self, drone_id: str, waypoints: Sequence[Waypoint]) -> bool:
        self._require_link(drone_id)
        logger.info(f"Uploading mission to {drone_id}: {len(waypoints)} waypoints")
        await asyncio.sleep(self.upload_latency)
        return True

    async def start_mission(self, drone_id: str) -> bool:
        return await self.dispatch(drone_id, DroneCommand.START_MISSION)

    async def pause_mission(self, drone_id: str) -> bool:
        return await self.dispatch(drone_id, DroneCommand.PAUSE_MISSION)

    async def resume_mission(self, drone_id: str) -> bool:
        return await self.dispatch(drone_id, DroneCommand.RESUME_MISSION)

    async def return_to_launch(self, drone_id: str) -> bool:
        return await self.dispatch(drone_id, DroneCommand.RETURN_TO_LAUNCH)

    async def apply_mission_transition(self, drone_id: str, previous: MissionStatus, current: MissionStatus,
                                       waypoints: Sequence[Waypoint] = ()) -> Optional[bool]:
        """
        Send the command matching a mission status change to a connected drone

        A first start uploads the mission path before the start command.

        Returns:
            Command result, or None when nothing was sent (no link, or no
            command maps to the transition)
        """
        if not self.is_connected(drone_id):
            return None

        if current == MissionStatus.ACTIVE:
            if previous == MissionStatus.PAUSED:
                return await self.resume_mission(drone_id)
            if waypoints and not await self.upload_mission(drone_id, waypoints):
                return False
            return await self.start_mission(drone_id)
        if current == MissionStatus.PAUSED:
            return await self.pause_mission(drone_id)
        if current == MissionStatus.CANCELLED:
            return await self.return_to_launch(drone_id)
        return None
