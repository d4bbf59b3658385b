"""Per-device location ingestion.

One run walks a small state machine:

    NO_SESSION -> AUTHENTICATING -> HAS_SESSION -> FETCHING -> STORED
                                                            -> RETRYING -> AUTHENTICATING
                                                            -> FAILED

A session rejected by the portal is re-authenticated once per run; a second
rejection fails the run, so a device costs at most two logins and two fetches
per cycle. Errors never escape `ingest`; every run ends in an `IngestResult`.
"""
import enum
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from core.config import settings
from core.exceptions import GeoTrackerError, PersistenceError, SessionInvalid, ValidationError
from db.session import SessionLocal
from models.device import Device
from models.location import LocationFix
from services.provider_client import ProviderClient
from services.session_store import SessionStore

logger = logging.getLogger(__name__)


class IngestState(enum.Enum):
    NO_SESSION = "no_session"
    AUTHENTICATING = "authenticating"
    HAS_SESSION = "has_session"
    FETCHING = "fetching"
    RETRYING = "retrying"
    STORED = "stored"
    FAILED = "failed"


@dataclass
class IngestResult:
    device_id: int
    state: IngestState
    # last non-terminal state reached; tells where a failed run stopped
    stage: IngestState
    error: Optional[str] = None
    fix: Optional[Tuple[float, float]] = None
    login_attempts: int = 0
    fetch_attempts: int = 0
    pruned: int = 0

    @property
    def ok(self):
        return self.state is IngestState.STORED

    def to_dict(self):
        return {
            "device_id": self.device_id,
            "state": self.state.value,
            "stage": self.stage.value,
            "error": self.error,
            "latitude": self.fix[0] if self.fix else None,
            "longitude": self.fix[1] if self.fix else None,
            "login_attempts": self.login_attempts,
            "fetch_attempts": self.fetch_attempts,
        }


class InFlightDevices:
    """Set of device ids with an ingestion currently running."""

    def __init__(self):
        self._ids = set()
        self._lock = threading.Lock()

    def claim(self, device_id) -> bool:
        with self._lock:
            if device_id in self._ids:
                return False
            self._ids.add(device_id)
            return True

    def release(self, device_id):
        with self._lock:
            self._ids.discard(device_id)

    def __contains__(self, device_id):
        with self._lock:
            return device_id in self._ids


# shared by the poller and the on-demand poll endpoint
in_flight = InFlightDevices()


def _utcnow():
    return datetime.now(timezone.utc)


def prune_locations(db, device_id, keep) -> int:
    """Delete all but the `keep` most recent fixes of a device, by capture time."""
    keep_ids = [
        row.id
        for row in db.query(LocationFix.id)
        .filter(LocationFix.device_id == device_id)
        .order_by(LocationFix.captured_at.desc(), LocationFix.id.desc())
        .limit(keep)
    ]
    deleted = (
        db.query(LocationFix)
        .filter(LocationFix.device_id == device_id, LocationFix.id.notin_(keep_ids))
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


class LocationIngestor:
    def __init__(self, client=None, session_factory=SessionLocal, history_size=None, clock=_utcnow):
        self.client = client or ProviderClient()
        self.session_factory = session_factory
        self.history_size = history_size or settings.LOCATION_HISTORY_SIZE
        self.clock = clock

    def run(self, device_id) -> IngestResult:
        """Ingest one device in a session of its own."""
        db = self.session_factory()
        try:
            device = (
                db.query(Device)
                .filter(Device.id == device_id, Device.deleted_at.is_(None))
                .first()
            )
            if device is None:
                return IngestResult(device_id, IngestState.FAILED, IngestState.NO_SESSION, error="device not found")
            return self.ingest(db, device)
        finally:
            db.close()

    def ingest(self, db, device: Device) -> IngestResult:
        store = SessionStore(db)
        session = store.load(device)
        state = IngestState.HAS_SESSION if session.has_token else IngestState.NO_SESSION
        result = IngestResult(device.id, state, state)

        try:
            if not device.has_credentials:
                raise ValidationError("device has no portal credentials")

            while state is not IngestState.STORED:
                result.stage = state
                if state in (IngestState.NO_SESSION, IngestState.RETRYING):
                    state = IngestState.AUTHENTICATING
                elif state is IngestState.AUTHENTICATING:
                    result.login_attempts += 1
                    token = self.client.login(device.imei, device.password)
                    store.cache(device, session, token)
                    state = IngestState.HAS_SESSION
                elif state is IngestState.HAS_SESSION:
                    state = IngestState.FETCHING
                elif state is IngestState.FETCHING:
                    result.fetch_attempts += 1
                    try:
                        result.fix = self.client.get_current_fix(session.token)
                    except SessionInvalid:
                        if not store.invalidate(device, session):
                            raise
                        logger.info("Device %s session rejected, re-authenticating", device.id)
                        state = IngestState.RETRYING
                        continue
                    self._store_fix(db, device, *result.fix)
                    state = IngestState.STORED
        except GeoTrackerError as e:
            result.state = IngestState.FAILED
            result.error = f"{type(e).__name__}: {e}"
            logger.warning(
                "Location ingestion failed for device %s at %s: %s", device.id, result.stage.value, result.error
            )
            return result

        result.state = IngestState.STORED
        result.pruned = self._prune(db, device.id)
        logger.info("Stored fix %s for device %s", result.fix, device.id)
        return result

    def _store_fix(self, db, device, latitude, longitude):
        db.add(LocationFix(device_id=device.id, latitude=latitude, longitude=longitude, captured_at=self.clock()))
        try:
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise PersistenceError(f"could not store fix: {e}") from e

    def _prune(self, db, device_id):
        # the stored fix stays even when pruning fails
        try:
            return prune_locations(db, device_id, self.history_size)
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Pruning location history failed for device %s", device_id)
            logger.debug("Prune failure detail", exc_info=True)
            return 0
