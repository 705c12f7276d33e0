"""
Alert Deduplication Module
Derives alerts from telemetry thresholds and suppresses repeats

The suppression key is (drone_id, alert type, acknowledged=False): while an
unacknowledged alert of a type is outstanding for a drone, no new alert of
that type is created for it, however the underlying value keeps moving.
Acknowledging the outstanding alert re-arms the rule.

The battery rule compares each raw sample against an open band. A drone whose
battery drops by more than the band width between two samples never fires;
this imprecision is accepted.
"""

from typing import List, Optional
import logging
import threading

from models import Alert, AlertCreate, AlertSeverity, AlertType, Drone, Telemetry
from storage import MemStorage
import config
import conflict_detection

logger = logging.getLogger(__name__)


class AlertDeduplicator:
    """Evaluates alert rules for each telemetry sample"""

    def __init__(self, storage: MemStorage):
        self.storage = storage
        # check-then-create must not interleave between two samples
        self._lock = threading.Lock()

    def evaluate(self, previous: Optional[Drone], sample: Telemetry) -> List[Alert]:
        """
        Run every rule against a freshly stored sample

        Args:
            previous: Drone record as it was before the sample was projected onto it
            sample: The stored telemetry sample

        Returns:
            Alerts created by this call (already persisted)
        """
        candidates = []

        battery_candidate = self.battery_rule(previous, sample)
        if battery_candidate:
            candidates.append(battery_candidate)

        signal_candidate = self.signal_rule(sample)
        if signal_candidate:
            candidates.append(signal_candidate)

        geofence_candidate = self.geofence_rule(sample)
        if geofence_candidate:
            candidates.append(geofence_candidate)

        created = []
        for candidate in candidates:
            alert = self.raise_alert(candidate)
            if alert:
                created.append(alert)
        return created

    def raise_alert(self, candidate: AlertCreate) -> Optional[Alert]:
        """Persist a candidate unless an equivalent alert is still outstanding"""
        with self._lock:
            if self.has_outstanding(candidate.drone_id, candidate.type):
                return None
            alert = self.storage.create_alert(candidate)

        logger.info(f"Alert raised: {alert.type.value} for {alert.drone_id} ({alert.severity.value})")
        return alert

    def has_outstanding(self, drone_id: Optional[str], alert_type: AlertType) -> bool:
        return any(
            alert.type == alert_type and not alert.acknowledged
            for alert in self.storage.get_alerts(drone_id)
        )

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def battery_rule(self, previous: Optional[Drone], sample: Telemetry) -> Optional[AlertCreate]:
        low, high = config.BATTERY_ALERT_BAND
        if not (low < sample.battery < high):
            return None

        # Only on a downward (or flat) trend; a charging drone does not warn
        if previous is not None and sample.battery > previous.battery:
            return None

        return AlertCreate(
            drone_id=sample.drone_id,
            type=AlertType.BATTERY_LOW,
            severity=AlertSeverity.WARNING,
            title="Low Battery Warning",
            message=f"{sample.drone_id} battery at {round(sample.battery)}%. Return to base recommended."
        )

    def signal_rule(self, sample: Telemetry) -> Optional[AlertCreate]:
        if sample.signal_strength >= config.SIGNAL_WEAK_THRESHOLD:
            return None

        return AlertCreate(
            drone_id=sample.drone_id,
            type=AlertType.SIGNAL_WEAK,
            severity=AlertSeverity.WARNING,
            title="Weak Signal",
            message=f"{sample.drone_id} signal at {sample.signal_strength:.0f} dBm. Link loss possible."
        )

    def geofence_rule(self, sample: Telemetry) -> Optional[AlertCreate]:
        violated = conflict_detection.find_violated_geofences(
            sample.latitude, sample.longitude, sample.altitude,
            self.storage.get_geofences()
        )
        if not violated:
            return None

        geofence = violated[0]
        return AlertCreate(
            drone_id=sample.drone_id,
            type=AlertType.GEOFENCE_VIOLATION,
            severity=AlertSeverity(config.GEOFENCE_ALERT_SEVERITY[geofence.type.value]),
            title="Geofence Violation",
            message=f"{sample.drone_id} entered {geofence.name} at {sample.altitude:.0f}m."
        )
