"""
Fleet Operations Engine - FastAPI Backend
Serves the dashboard's HTTP routes and the /ws observer channel, and runs the
telemetry synthesizer and heartbeat in the background
"""

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request, Response, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from pydantic import ValidationError
from typing import List, Optional
import asyncio
import logging
import time

from models import (
    AirspaceCheckRequest, Alert, CommandRequest, ConflictCheckResult, ConnectRequest,
    Drone, DroneCreate, DroneStatus, DroneUpdate, Envelope, Geofence, GeofenceCreate,
    GeofenceUpdate, GeoJSONImport, InitialData, MessageType, Mission, MissionCreate,
    MissionStatus, MissionUpdate, Telemetry, TelemetryCreate
)
from storage import DuplicateEntityError, MemStorage
from broadcast import BroadcastHub, ObserverConnection
from alerts import AlertDeduplicator
from telemetry import TelemetryProcessor, TelemetrySynthesizer
from command_gateway import CommandGateway, DroneNotConnectedError
import config
import conflict_detection
import geofencing

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Drone status implied by each mission status
MISSION_DRONE_STATUS = {
    MissionStatus.ACTIVE: DroneStatus.MISSION,
    MissionStatus.PAUSED: DroneStatus.MISSION,
    MissionStatus.COMPLETED: DroneStatus.IDLE,
    MissionStatus.CANCELLED: DroneStatus.IDLE,
}

router = APIRouter()

# ============================================================================
# DEPENDENCIES
# ============================================================================

def get_storage(request: Request) -> MemStorage:
    return request.app.state.storage


def get_hub(request: Request) -> BroadcastHub:
    return request.app.state.hub


def get_gateway(request: Request) -> CommandGateway:
    return request.app.state.gateway


def require_drone(storage: MemStorage, drone_id: str) -> Drone:
    drone = storage.get_drone(drone_id)
    if drone is None:
        raise HTTPException(404, "Drone not found")
    return drone


def reject_conflicts(storage: MemStorage, name: str, waypoints, altitude: float):
    """Refuse a mission path that enters any active geofence with 409"""
    result = conflict_detection.check_conflicts(waypoints, altitude, storage.get_geofences())
    if result.has_conflicts:
        logger.warning(f"Mission '{name}' rejected: {len(result.conflicts)} airspace conflicts")
        raise HTTPException(409, {
            "message": "Mission path conflicts with restricted airspace",
            **result.model_dump(mode="json", by_alias=True)
        })


def build_snapshot(storage: MemStorage) -> InitialData:
    return InitialData(
        drones=storage.get_drones(),
        missions=storage.get_missions(),
        geofences=storage.get_geofences(),
        alerts=storage.get_alerts()
    )

# ============================================================================
# SYSTEM
# ============================================================================

@router.get("/api/health")
async def health_check(request: Request):
    """System health check"""
    storage = request.app.state.storage
    return {
        "status": "operational",
        "timestamp": time.time(),
        "drones": len(storage.get_drones()),
        "missions": len(storage.get_missions()),
        "observers": request.app.state.hub.observer_count,
        "connectedDrones": request.app.state.gateway.get_connected_drones()
    }

# ============================================================================
# DRONES
# ============================================================================

@router.get("/api/drones", response_model=List[Drone])
async def get_all_drones(storage: MemStorage = Depends(get_storage)):
    return storage.get_drones()


@router.get("/api/drones/{drone_id}", response_model=Drone)
async def get_drone(drone_id: str, storage: MemStorage = Depends(get_storage)):
    return require_drone(storage, drone_id)


@router.post("/api/drones", response_model=Drone, status_code=201)
async def register_drone(drone: DroneCreate, storage: MemStorage = Depends(get_storage),
                         hub: BroadcastHub = Depends(get_hub)):
    """Register a new drone with the fleet"""
    try:
        created = storage.create_drone(drone)
    except DuplicateEntityError as e:
        raise HTTPException(409, str(e))

    logger.info(f"Drone registered: {created.id}")
    hub.broadcast(MessageType.DRONE_UPDATE, created)
    return created


@router.patch("/api/drones/{drone_id}", response_model=Drone)
async def update_drone(drone_id: str, updates: DroneUpdate, storage: MemStorage = Depends(get_storage),
                       hub: BroadcastHub = Depends(get_hub)):
    try:
        drone = storage.update_drone(drone_id, updates.model_dump(exclude_unset=True))
    except ValidationError as e:
        raise HTTPException(400, str(e))
    if drone is None:
        raise HTTPException(404, "Drone not found")

    hub.broadcast(MessageType.DRONE_UPDATE, drone)
    return drone


@router.get("/api/drones/{drone_id}/telemetry", response_model=List[Telemetry])
async def get_drone_telemetry(drone_id: str, limit: int = config.TELEMETRY_DEFAULT_QUERY_LIMIT,
                              storage: MemStorage = Depends(get_storage)):
    """Most recent telemetry samples for a drone, oldest first"""
    return storage.get_telemetry(drone_id, limit)


@router.post("/api/drones/{drone_id}/connect")
async def connect_drone(drone_id: str, body: ConnectRequest, storage: MemStorage = Depends(get_storage),
                        gateway: CommandGateway = Depends(get_gateway)):
    """Open a (simulated) command link to a drone"""
    require_drone(storage, drone_id)
    await gateway.connect_drone(drone_id, body.connection_string)
    return {"status": "connected", "droneId": drone_id}


@router.post("/api/drones/{drone_id}/disconnect")
async def disconnect_drone(drone_id: str, storage: MemStorage = Depends(get_storage),
                           gateway: CommandGateway = Depends(get_gateway)):
    require_drone(storage, drone_id)
    await gateway.disconnect_drone(drone_id)
    return {"status": "disconnected", "droneId": drone_id}


@router.post("/api/drones/{drone_id}/commands")
async def send_drone_command(drone_id: str, body: CommandRequest, storage: MemStorage = Depends(get_storage),
                             gateway: CommandGateway = Depends(get_gateway)):
    require_drone(storage, drone_id)
    try:
        accepted = await gateway.dispatch(drone_id, body.command)
    except DroneNotConnectedError as e:
        raise HTTPException(409, str(e))
    return {"droneId": drone_id, "command": body.command.value, "accepted": accepted}

# ============================================================================
# MISSIONS
# ============================================================================

@router.get("/api/missions", response_model=List[Mission])
async def get_all_missions(storage: MemStorage = Depends(get_storage)):
    return storage.get_missions()


@router.get("/api/missions/{mission_id}", response_model=Mission)
async def get_mission(mission_id: str, storage: MemStorage = Depends(get_storage)):
    mission = storage.get_mission(mission_id)
    if mission is None:
        raise HTTPException(404, "Mission not found")
    return mission


@router.post("/api/missions", response_model=Mission, status_code=201)
async def create_mission(mission: MissionCreate, storage: MemStorage = Depends(get_storage),
                         hub: BroadcastHub = Depends(get_hub)):
    """
    Create a mission after checking its path against active airspace restrictions

    A path that conflicts with any active geofence at the mission altitude is
    refused with 409 and nothing is stored.
    """
    drone = None
    if mission.drone_id is not None:
        drone = storage.get_drone(mission.drone_id)
        if drone is None:
            raise HTTPException(400, "Drone not found")
        if drone.status == DroneStatus.MISSION:
            raise HTTPException(400, "Drone is already on a mission")

    reject_conflicts(storage, mission.name, mission.waypoints, mission.altitude)

    created = storage.create_mission(mission)
    logger.info(f"Mission created: {created.id} with {len(created.waypoints)} waypoints")

    if drone is not None:
        assigned = storage.update_drone(drone.id, {"status": DroneStatus.MISSION})
        if assigned is not None:
            hub.broadcast(MessageType.DRONE_UPDATE, assigned)

    return created


@router.patch("/api/missions/{mission_id}", response_model=Mission)
async def update_mission(mission_id: str, updates: MissionUpdate, storage: MemStorage = Depends(get_storage),
                         hub: BroadcastHub = Depends(get_hub), gateway: CommandGateway = Depends(get_gateway)):
    """
    Apply partial updates; status changes follow the mission lifecycle

    A changed path or altitude is checked against active airspace again and
    refused with 409 on conflict, leaving the stored mission untouched.
    """
    previous = storage.get_mission(mission_id)
    if previous is None:
        raise HTTPException(404, "Mission not found")

    fields = updates.model_dump(exclude_unset=True)
    if fields.get("drone_id") and storage.get_drone(fields["drone_id"]) is None:
        raise HTTPException(400, "Drone not found")

    if "waypoints" in fields or "altitude" in fields:
        reject_conflicts(
            storage, previous.name,
            updates.waypoints if updates.waypoints is not None else previous.waypoints,
            updates.altitude if updates.altitude is not None else previous.altitude
        )

    try:
        mission = storage.update_mission(mission_id, fields)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if mission is None:
        raise HTTPException(404, "Mission not found")

    if mission.status != previous.status and mission.drone_id:
        drone = storage.update_drone(mission.drone_id, {"status": MISSION_DRONE_STATUS[mission.status]})
        if drone is not None:
            hub.broadcast(MessageType.DRONE_UPDATE, drone)

        accepted = await gateway.apply_mission_transition(mission.drone_id, previous.status, mission.status,
                                                          mission.waypoints)
        if accepted is False:
            logger.warning(f"Drone {mission.drone_id} did not acknowledge {mission.status.value} for {mission_id}")

    return mission


@router.delete("/api/missions/{mission_id}", status_code=204)
async def delete_mission(mission_id: str, storage: MemStorage = Depends(get_storage)):
    if not storage.delete_mission(mission_id):
        raise HTTPException(404, "Mission not found")
    return Response(status_code=204)

# ============================================================================
# AIRSPACE
# ============================================================================

@router.post("/api/airspace/check", response_model=ConflictCheckResult)
async def check_airspace(body: AirspaceCheckRequest, storage: MemStorage = Depends(get_storage)):
    """Advisory check of a path against every active geofence"""
    return conflict_detection.check_conflicts(body.waypoints, body.altitude, storage.get_geofences())


@router.get("/api/geofences", response_model=List[Geofence])
async def get_all_geofences(storage: MemStorage = Depends(get_storage)):
    return storage.get_geofences()


@router.get("/api/geofences/{geofence_id}", response_model=Geofence)
async def get_geofence(geofence_id: str, storage: MemStorage = Depends(get_storage)):
    geofence = storage.get_geofence(geofence_id)
    if geofence is None:
        raise HTTPException(404, "Geofence not found")
    return geofence


@router.get("/api/geofences/{geofence_id}/bounds")
async def get_geofence_bounds(geofence_id: str, storage: MemStorage = Depends(get_storage)):
    geofence = await get_geofence(geofence_id, storage)
    return geofencing.bounding_box((vertex.lat, vertex.lng) for vertex in geofence.coordinates)


@router.post("/api/geofences", response_model=Geofence, status_code=201)
async def create_geofence(geofence: GeofenceCreate, storage: MemStorage = Depends(get_storage)):
    created = storage.create_geofence(geofence)
    logger.info(f"Geofence added: {created.id} ({created.name})")
    return created


@router.post("/api/geofences/import", response_model=Geofence, status_code=201)
async def import_geofence(body: GeoJSONImport, storage: MemStorage = Depends(get_storage)):
    """Create a geofence from the outer ring of a GeoJSON FeatureCollection"""
    try:
        coordinates = geofencing.geojson_to_coordinates(body.geojson)
    except (AttributeError, KeyError, IndexError, TypeError) as e:
        raise HTTPException(400, f"Malformed GeoJSON: {e}")

    coordinates = geofencing.simplify_coordinates(coordinates, body.simplify_step)

    try:
        geofence = GeofenceCreate(
            name=body.name,
            type=body.type,
            coordinates=coordinates,
            min_altitude=body.min_altitude,
            max_altitude=body.max_altitude
        )
    except ValidationError as e:
        raise HTTPException(400, str(e))

    return await create_geofence(geofence, storage)


@router.patch("/api/geofences/{geofence_id}", response_model=Geofence)
async def update_geofence(geofence_id: str, updates: GeofenceUpdate, storage: MemStorage = Depends(get_storage)):
    try:
        geofence = storage.update_geofence(geofence_id, updates.model_dump(exclude_unset=True))
    except ValidationError as e:
        raise HTTPException(400, str(e))
    if geofence is None:
        raise HTTPException(404, "Geofence not found")
    return geofence


@router.delete("/api/geofences/{geofence_id}", status_code=204)
async def delete_geofence(geofence_id: str, storage: MemStorage = Depends(get_storage)):
    if not storage.delete_geofence(geofence_id):
        raise HTTPException(404, "Geofence not found")
    return Response(status_code=204)

# ============================================================================
# ALERTS
# ============================================================================

@router.get("/api/alerts", response_model=List[Alert])
async def get_alerts(drone_id: Optional[str] = Query(None, alias="droneId"),
                     storage: MemStorage = Depends(get_storage)):
    return storage.get_alerts(drone_id)


@router.patch("/api/alerts/{alert_id}/acknowledge", status_code=204)
async def acknowledge_alert(alert_id: str, storage: MemStorage = Depends(get_storage)):
    if not storage.acknowledge_alert(alert_id):
        raise HTTPException(404, "Alert not found")
    return Response(status_code=204)

# ============================================================================
# OBSERVER CHANNEL
# ============================================================================

def handle_observer_message(state, connection: ObserverConnection, raw: str):
    """Dispatch one inbound observer message; bad input is logged and dropped"""
    try:
        message = Envelope.model_validate_json(raw)
    except ValidationError as e:
        logger.warning(f"Ignoring malformed message from observer {connection.connection_id}: {e.error_count()} errors")
        return

    if message.type == MessageType.PING:
        state.hub.send(connection, MessageType.PONG)
    elif message.type == MessageType.PONG:
        connection.last_pong = time.time()
    elif message.type == MessageType.TELEMETRY:
        try:
            state.processor.ingest(TelemetryCreate.model_validate(message.data))
        except ValidationError as e:
            logger.warning(f"Rejected telemetry from observer {connection.connection_id}: {e.error_count()} errors")
        except LookupError as e:
            logger.warning(f"Rejected telemetry from observer {connection.connection_id}: {e}")
    else:
        logger.info(f"Unhandled message type from observer {connection.connection_id}: {message.type.value}")


@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """WebSocket for real-time updates"""
    state = websocket.app.state
    connection = await state.hub.connect(websocket, lambda: build_snapshot(state.storage))

    try:
        while True:
            frame = await websocket.receive()
            if frame["type"] == "websocket.disconnect":
                break

            if frame.get("text") is not None:
                handle_observer_message(state, connection, frame["text"])
            else:
                logger.warning(f"Ignoring binary frame from observer {connection.connection_id}")
    finally:
        state.hub.disconnect(connection)

# ============================================================================
# APPLICATION
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the synthesizer and heartbeat for the lifetime of the server"""
    storage = app.state.storage
    logger.info("Fleet engine starting...")
    logger.info(f"Drones: {len(storage.get_drones())}, geofences: {len(storage.get_geofences())}")

    tasks = []
    if app.state.background_tasks:
        tasks.append(asyncio.create_task(app.state.synthesizer.run()))
        tasks.append(asyncio.create_task(app.state.hub.heartbeat()))

    yield

    logger.info("Fleet engine shutting down...")
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
    await app.state.hub.close_all()


def create_app(storage: Optional[MemStorage] = None, background_tasks: bool = True,
               gateway: Optional[CommandGateway] = None) -> FastAPI:
    """Wire the engine components together behind a FastAPI app"""
    app = FastAPI(
        title="Fleet Operations API",
        description="Telemetry distribution and airspace conflict engine for a drone fleet",
        version="1.0.0",
        lifespan=lifespan
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    storage = storage if storage is not None else MemStorage()
    hub = BroadcastHub()
    processor = TelemetryProcessor(storage, hub, AlertDeduplicator(storage))

    app.state.storage = storage
    app.state.hub = hub
    app.state.processor = processor
    app.state.synthesizer = TelemetrySynthesizer(storage, processor)
    app.state.gateway = gateway or CommandGateway()
    app.state.background_tasks = background_tasks

    app.include_router(router)
    return app


app = create_app()

# ============================================================================
# MAIN
# ============================================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)
