"""
Fleet Operations Configuration
Defines telemetry cadence, alert thresholds, seed airspace and fleet, and server settings
"""

# ============================================================================
# TELEMETRY PARAMETERS
# ============================================================================

TELEMETRY_INTERVAL = 2.0            # seconds between synthesizer ticks
TELEMETRY_HISTORY_LIMIT = 1000      # samples retained per drone (oldest evicted first)
TELEMETRY_DEFAULT_QUERY_LIMIT = 100

# Random-walk amplitudes applied each tick (uniform in [-x/2, +x/2])
LATLNG_JITTER = 0.001     # degrees
ALTITUDE_JITTER = 5.0     # meters
SPEED_JITTER = 5.0        # m/s
HEADING_JITTER = 10.0     # degrees
SIGNAL_JITTER = 5.0       # dBm
BATTERY_MAX_DRAIN = 0.1   # percent per tick (uniform in [0, x))

# Drone statuses that the synthesizer animates
SIMULATED_STATUSES = ('active', 'mission')

# ============================================================================
# ALERT THRESHOLDS
# ============================================================================

# Exclusive on both ends: fires only while battery is strictly inside the band
BATTERY_ALERT_BAND = (20.0, 25.0)
SIGNAL_WEAK_THRESHOLD = -90.0  # dBm

GEOFENCE_ALERT_SEVERITY = {
    'no_fly': 'critical',
    'restricted': 'error',
    'warning': 'warning',
}

# ============================================================================
# AIRSPACE DEFAULTS
# ============================================================================

GEOFENCE_DEFAULT_MIN_ALTITUDE = 0.0
GEOFENCE_DEFAULT_MAX_ALTITUDE = 400.0
GEOJSON_SIMPLIFY_STEP = 10
MISSION_DEFAULT_SPEED = 10.0  # m/s

# ============================================================================
# SEED DATA
# ============================================================================
# Loaded into the record store at startup for the demo dashboard

SEED_DRONES = [
    {
        'id': 'DRN-001',
        'name': 'Scout Alpha',
        'model': 'DJI Mavic 3',
        'status': 'active',
        'battery': 87,
        'latitude': 37.7749,
        'longitude': -122.4194,
        'altitude': 120,
        'speed': 25,
        'heading': 45,
        'signal_strength': -65,
    },
    {
        'id': 'DRN-002',
        'name': 'Survey Beta',
        'model': 'DJI Phantom 4',
        'status': 'mission',
        'battery': 65,
        'latitude': 37.7849,
        'longitude': -122.4094,
        'altitude': 85,
        'speed': 18,
        'heading': 120,
        'signal_strength': -58,
    },
    {
        'id': 'DRN-003',
        'name': 'Patrol Gamma',
        'model': 'Autel EVO II',
        'status': 'warning',
        'battery': 23,
        'latitude': 37.7649,
        'longitude': -122.4294,
        'altitude': 200,
        'speed': 32,
        'heading': 270,
        'signal_strength': -72,
    },
]

SEED_GEOFENCES = [
    {
        'name': 'Airport No-Fly Zone',
        'type': 'no_fly',
        'coordinates': [
            {'lat': 37.7849, 'lng': -122.4394},
            {'lat': 37.7949, 'lng': -122.4394},
            {'lat': 37.7949, 'lng': -122.4194},
            {'lat': 37.7849, 'lng': -122.4194},
        ],
        'min_altitude': 0,
        'max_altitude': 400,
    },
    {
        'name': 'Military Base Restricted',
        'type': 'restricted',
        'coordinates': [
            {'lat': 37.7549, 'lng': -122.4494},
            {'lat': 37.7649, 'lng': -122.4494},
            {'lat': 37.7649, 'lng': -122.4294},
            {'lat': 37.7549, 'lng': -122.4294},
        ],
        'min_altitude': 0,
        'max_altitude': 200,
    },
]

SEED_ALERTS = [
    {
        'drone_id': 'DRN-003',
        'type': 'battery_low',
        'severity': 'warning',
        'title': 'Low Battery Warning',
        'message': 'DRN-003 battery at 23%. Return to base recommended.',
    },
]

# ============================================================================
# COMMAND GATEWAY (STUB)
# ============================================================================

COMMAND_LATENCY = 0.1         # seconds per simulated command round-trip
MISSION_UPLOAD_LATENCY = 0.5  # seconds
COMMAND_SUCCESS_RATE = 0.9

# ============================================================================
# API CONFIGURATION
# ============================================================================

API_HOST = "127.0.0.1"
API_PORT = 8000
CORS_ORIGINS = ["*"]  # Allow all origins for development

LOG_LEVEL = "INFO"

# WebSocket configuration
WS_HEARTBEAT_INTERVAL = 30    # seconds
OBSERVER_QUEUE_SIZE = 256     # outbound messages buffered per observer
OBSERVER_SEND_TIMEOUT = 5.0   # seconds before a stalled observer is dropped
