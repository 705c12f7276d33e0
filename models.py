"""
Data Models for the Fleet Operations Engine
Uses Pydantic for validation and serialization

Python attributes are snake_case; the wire format (HTTP bodies and observer
messages) is camelCase, produced by serializing with by_alias=True.
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel
from typing import Any, List, Optional
from datetime import datetime, timezone
from enum import Enum

import config


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Record(CamelModel):
    """Stored entity; frozen so readers only ever hold a snapshot"""
    model_config = ConfigDict(frozen=True)


# ============================================================================
# ENUMERATIONS
# ============================================================================

class DroneStatus(str, Enum):
    """Drone operational states"""
    OFFLINE = "offline"
    IDLE = "idle"
    ACTIVE = "active"
    MISSION = "mission"
    WARNING = "warning"
    ERROR = "error"
    CALIBRATING = "calibrating"


class MissionStatus(str, Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class MissionType(str, Enum):
    SURVEY = "survey"
    PATROL = "patrol"
    DELIVERY = "delivery"
    INSPECTION = "inspection"


class GeofenceType(str, Enum):
    NO_FLY = "no_fly"
    RESTRICTED = "restricted"
    WARNING = "warning"


class AlertType(str, Enum):
    BATTERY_LOW = "battery_low"
    SIGNAL_WEAK = "signal_weak"
    GEOFENCE_VIOLATION = "geofence_violation"
    MAINTENANCE_REQUIRED = "maintenance_required"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class MessageType(str, Enum):
    """Observer channel envelope types"""
    INITIAL_DATA = "initial_data"
    TELEMETRY_UPDATE = "telemetry_update"
    DRONE_UPDATE = "drone_update"
    ALERT = "alert"
    PING = "ping"
    PONG = "pong"
    TELEMETRY = "telemetry"  # inbound only


# ============================================================================
# GEOMETRY
# ============================================================================

class Coordinate(CamelModel):
    """2D geographic point"""
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class Waypoint(Coordinate):
    """Single point in a mission path"""
    altitude: float = Field(..., ge=0)


# ============================================================================
# DRONES
# ============================================================================

class DroneCreate(CamelModel):
    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    model: str = Field(..., min_length=1)
    status: DroneStatus = DroneStatus.OFFLINE
    battery: float = Field(0.0, ge=0, le=100)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    altitude: Optional[float] = None
    speed: Optional[float] = Field(None, ge=0)
    heading: Optional[float] = Field(None, ge=0, lt=360)
    signal_strength: Optional[float] = Field(None, le=0)  # dBm


class Drone(Record, DroneCreate):
    last_seen: datetime
    created_at: datetime


class DroneUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    model: Optional[str] = Field(None, min_length=1)
    status: Optional[DroneStatus] = None
    battery: Optional[float] = Field(None, ge=0, le=100)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    altitude: Optional[float] = None
    speed: Optional[float] = Field(None, ge=0)
    heading: Optional[float] = Field(None, ge=0, lt=360)
    signal_strength: Optional[float] = Field(None, le=0)


# ============================================================================
# TELEMETRY
# ============================================================================

class TelemetryCreate(CamelModel):
    """One observation of a drone's kinematic and health state"""
    drone_id: str = Field(..., min_length=1)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    altitude: float
    speed: float = Field(..., ge=0)
    heading: float = Field(..., ge=0, lt=360)
    battery: float = Field(..., ge=0, le=100)
    signal_strength: float = Field(..., le=0)


class Telemetry(Record, TelemetryCreate):
    id: str
    timestamp: datetime


# ============================================================================
# GEOFENCES
# ============================================================================

class GeofenceCreate(CamelModel):
    name: str = Field(..., min_length=1)
    type: GeofenceType
    coordinates: List[Coordinate] = Field(..., min_length=3)
    min_altitude: float = config.GEOFENCE_DEFAULT_MIN_ALTITUDE
    max_altitude: float = config.GEOFENCE_DEFAULT_MAX_ALTITUDE
    active: bool = True

    @model_validator(mode="after")
    def check_band(self):
        if self.min_altitude > self.max_altitude:
            raise ValueError("minAltitude must not exceed maxAltitude")
        return self


class Geofence(Record, GeofenceCreate):
    id: str
    created_at: datetime


class GeofenceUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    type: Optional[GeofenceType] = None
    coordinates: Optional[List[Coordinate]] = Field(None, min_length=3)
    min_altitude: Optional[float] = None
    max_altitude: Optional[float] = None
    active: Optional[bool] = None


class GeoJSONImport(CamelModel):
    """Create a geofence from a GeoJSON FeatureCollection"""
    name: str = Field(..., min_length=1)
    type: GeofenceType
    geojson: dict
    min_altitude: float = config.GEOFENCE_DEFAULT_MIN_ALTITUDE
    max_altitude: float = config.GEOFENCE_DEFAULT_MAX_ALTITUDE
    simplify_step: int = Field(config.GEOJSON_SIMPLIFY_STEP, ge=1)


# ============================================================================
# MISSIONS
# ============================================================================

class MissionCreate(CamelModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    drone_id: Optional[str] = None
    type: MissionType
    waypoints: List[Waypoint] = Field(..., min_length=2)
    geofences: Optional[List[List[Coordinate]]] = None
    altitude: float = Field(..., ge=0)
    speed: float = Field(config.MISSION_DEFAULT_SPEED, gt=0)


class Mission(Record, MissionCreate):
    id: str
    status: MissionStatus = MissionStatus.PLANNED
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    progress: float = Field(0.0, ge=0, le=100)
    created_at: datetime
    updated_at: datetime


class MissionUpdate(CamelModel):
    name: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    drone_id: Optional[str] = None
    status: Optional[MissionStatus] = None
    waypoints: Optional[List[Waypoint]] = Field(None, min_length=2)
    altitude: Optional[float] = Field(None, ge=0)
    speed: Optional[float] = Field(None, gt=0)
    progress: Optional[float] = Field(None, ge=0, le=100)


# ============================================================================
# ALERTS
# ============================================================================

class AlertCreate(CamelModel):
    drone_id: Optional[str] = None
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str


class Alert(Record, AlertCreate):
    id: str
    acknowledged: bool = False
    created_at: datetime


# ============================================================================
# AIRSPACE CHECK
# ============================================================================

class AirspaceCheckRequest(CamelModel):
    waypoints: List[Coordinate]
    altitude: float


class AirspaceConflict(CamelModel):
    """A waypoint that falls inside an active geofence's volume"""
    geofence_id: str
    geofence_name: str
    type: GeofenceType
    waypoint: Coordinate


class ConflictCheckResult(CamelModel):
    has_conflicts: bool
    conflicts: List[AirspaceConflict] = []


# ============================================================================
# COMMANDS
# ============================================================================

class DroneCommand(str, Enum):
    ARM = "arm"
    DISARM = "disarm"
    START_MISSION = "start_mission"
    PAUSE_MISSION = "pause_mission"
    RESUME_MISSION = "resume_mission"
    RETURN_TO_LAUNCH = "return_to_launch"


class CommandRequest(CamelModel):
    command: DroneCommand


class ConnectRequest(CamelModel):
    connection_string: str = "udp://127.0.0.1:14550"


# ============================================================================
# OBSERVER CHANNEL
# ============================================================================

class InitialData(CamelModel):
    """Snapshot pushed to an observer when its connection opens"""
    drones: List[Drone]
    missions: List[Mission]
    geofences: List[Geofence]
    alerts: List[Alert]


class Envelope(BaseModel):
    type: MessageType
    data: Optional[Any] = None
