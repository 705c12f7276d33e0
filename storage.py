"""
Record Store
In-memory repository of drones, missions, telemetry history, geofences and alerts

Every entity map is guarded by its own lock and every read-modify-write of a
single entity happens under that lock, so concurrent updates to the same
record are serialized. Stored records are frozen pydantic models: readers get
a snapshot and writers replace the whole record.
"""

from collections import deque
from typing import Deque, Dict, List, Optional
import logging
import threading
import uuid

from models import (
    Alert, AlertCreate, Drone, DroneCreate, Geofence, GeofenceCreate,
    Mission, MissionCreate, MissionStatus, Telemetry, TelemetryCreate, utcnow
)
import config

logger = logging.getLogger(__name__)


class DuplicateEntityError(ValueError):
    """Raised when creating a record whose identifier already exists"""


class InvalidTransitionError(ValueError):
    """Raised when a mission status change is not allowed from its current status"""


# planned -> active -> (paused <-> active) -> completed | cancelled
MISSION_TRANSITIONS = {
    MissionStatus.PLANNED: {MissionStatus.ACTIVE, MissionStatus.CANCELLED},
    MissionStatus.ACTIVE: {MissionStatus.PAUSED, MissionStatus.COMPLETED, MissionStatus.CANCELLED},
    MissionStatus.PAUSED: {MissionStatus.ACTIVE, MissionStatus.CANCELLED},
    MissionStatus.COMPLETED: set(),
    MissionStatus.CANCELLED: set(),
}


def _new_id() -> str:
    return str(uuid.uuid4())


class MemStorage:
    """Single source of truth for every entity kind"""

    def __init__(self, seed: bool = True, telemetry_limit: int = config.TELEMETRY_HISTORY_LIMIT):
        self.telemetry_limit = telemetry_limit

        self._drones: Dict[str, Drone] = {}
        self._missions: Dict[str, Mission] = {}
        self._telemetry: Dict[str, Deque[Telemetry]] = {}
        self._geofences: Dict[str, Geofence] = {}
        self._alerts: Dict[str, Alert] = {}

        self._drones_lock = threading.RLock()
        self._missions_lock = threading.RLock()
        self._telemetry_lock = threading.RLock()
        self._geofences_lock = threading.RLock()
        self._alerts_lock = threading.RLock()

        if seed:
            self.seed()

    def seed(self):
        """Load the demo fleet, airspace and alerts from config"""
        for drone in config.SEED_DRONES:
            self.create_drone(DroneCreate(**drone))
        for geofence in config.SEED_GEOFENCES:
            self.create_geofence(GeofenceCreate(**geofence))
        for alert in config.SEED_ALERTS:
            self.create_alert(AlertCreate(**alert))

        logger.info(f"Seeded {len(config.SEED_DRONES)} drones, "
                    f"{len(config.SEED_GEOFENCES)} geofences, {len(config.SEED_ALERTS)} alerts")

    # ------------------------------------------------------------------
    # Drones
    # ------------------------------------------------------------------

    def get_drones(self) -> List[Drone]:
        with self._drones_lock:
            return list(self._drones.values())

    def get_drone(self, drone_id: str) -> Optional[Drone]:
        with self._drones_lock:
            return self._drones.get(drone_id)

    def create_drone(self, drone: DroneCreate) -> Drone:
        now = utcnow()
        with self._drones_lock:
            if drone.id in self._drones:
                raise DuplicateEntityError(f"Drone {drone.id} already exists")
            record = Drone(**drone.model_dump(), last_seen=now, created_at=now)
            self._drones[record.id] = record
        return record

    def update_drone(self, drone_id: str, updates: dict) -> Optional[Drone]:
        """
        Merge partial fields into a drone; last_seen is always refreshed

        Raises pydantic.ValidationError when the merged record is invalid.
        """
        with self._drones_lock:
            drone = self._drones.get(drone_id)
            if drone is None:
                return None

            fields = {**drone.model_dump(), **updates, 'id': drone_id, 'last_seen': utcnow()}
            updated = Drone.model_validate(fields)
            self._drones[drone_id] = updated
            return updated

    # ------------------------------------------------------------------
    # Missions
    # ------------------------------------------------------------------

    def get_missions(self) -> List[Mission]:
        with self._missions_lock:
            return list(self._missions.values())

    def get_mission(self, mission_id: str) -> Optional[Mission]:
        with self._missions_lock:
            return self._missions.get(mission_id)

    def create_mission(self, mission: MissionCreate) -> Mission:
        now = utcnow()
        record = Mission(**mission.model_dump(), id=_new_id(), created_at=now, updated_at=now)
        with self._missions_lock:
            self._missions[record.id] = record
        return record

    def update_mission(self, mission_id: str, updates: dict) -> Optional[Mission]:
        """
        Merge partial fields into a mission, enforcing the status state machine

        Raises:
            InvalidTransitionError: status change not allowed from the current status
        """
        with self._missions_lock:
            mission = self._missions.get(mission_id)
            if mission is None:
                return None

            now = utcnow()
            fields = {**mission.model_dump(), **updates, 'id': mission_id, 'updated_at': now}

            new_status = MissionStatus(fields['status'])
            if new_status != mission.status:
                if new_status not in MISSION_TRANSITIONS[mission.status]:
                    raise InvalidTransitionError(
                        f"Mission {mission_id} cannot go from {mission.status.value} to {new_status.value}"
                    )
                if new_status == MissionStatus.ACTIVE and mission.start_time is None:
                    fields['start_time'] = now
                if new_status in (MissionStatus.COMPLETED, MissionStatus.CANCELLED):
                    fields['end_time'] = now
                if new_status == MissionStatus.COMPLETED:
                    fields['progress'] = 100.0

            updated = Mission.model_validate(fields)
            self._missions[mission_id] = updated
            return updated

    def delete_mission(self, mission_id: str) -> bool:
        with self._missions_lock:
            return self._missions.pop(mission_id, None) is not None

    # ------------------------------------------------------------------
    # Telemetry
    # ------------------------------------------------------------------

    def get_telemetry(self, drone_id: str, limit: int = config.TELEMETRY_DEFAULT_QUERY_LIMIT) -> List[Telemetry]:
        """Newest `limit` samples for a drone, oldest first"""
        if limit <= 0:
            return []
        with self._telemetry_lock:
            history = list(self._telemetry.get(drone_id, ()))
        return history[-limit:]

    def add_telemetry(self, sample: TelemetryCreate) -> Telemetry:
        """Append a sample; the per-drone ring evicts its oldest entry once full"""
        record = Telemetry(**sample.model_dump(), id=_new_id(), timestamp=utcnow())
        with self._telemetry_lock:
            history = self._telemetry.get(record.drone_id)
            if history is None:
                history = deque(maxlen=self.telemetry_limit)
                self._telemetry[record.drone_id] = history
            history.append(record)
        return record

    # ------------------------------------------------------------------
    # Geofences
    # ------------------------------------------------------------------

    def get_geofences(self) -> List[Geofence]:
        with self._geofences_lock:
            return list(self._geofences.values())

    def get_geofence(self, geofence_id: str) -> Optional[Geofence]:
        with self._geofences_lock:
            return self._geofences.get(geofence_id)

    def create_geofence(self, geofence: GeofenceCreate) -> Geofence:
        record = Geofence(**geofence.model_dump(), id=_new_id(), created_at=utcnow())
        with self._geofences_lock:
            self._geofences[record.id] = record
        return record

    def update_geofence(self, geofence_id: str, updates: dict) -> Optional[Geofence]:
        with self._geofences_lock:
            geofence = self._geofences.get(geofence_id)
            if geofence is None:
                return None

            updated = Geofence.model_validate({**geofence.model_dump(), **updates, 'id': geofence_id})
            self._geofences[geofence_id] = updated
            return updated

    def delete_geofence(self, geofence_id: str) -> bool:
        with self._geofences_lock:
            return self._geofences.pop(geofence_id, None) is not None

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------

    def get_alerts(self, drone_id: Optional[str] = None) -> List[Alert]:
        with self._alerts_lock:
            alerts = list(self._alerts.values())
        if drone_id:
            return [alert for alert in alerts if alert.drone_id == drone_id]
        return alerts

    def create_alert(self, alert: AlertCreate) -> Alert:
        record = Alert(**alert.model_dump(), id=_new_id(), acknowledged=False, created_at=utcnow())
        with self._alerts_lock:
            self._alerts[record.id] = record
        return record

    def acknowledge_alert(self, alert_id: str) -> bool:
        """One-way: there is no way to un-acknowledge an alert"""
        with self._alerts_lock:
            alert = self._alerts.get(alert_id)
            if alert is None:
                return False
            if not alert.acknowledged:
                self._alerts[alert_id] = alert.model_copy(update={'acknowledged': True})
            return True
