"""Per-device portal session tracking.

The portal issues an opaque cookie and never says when it expires; it only
answers a later request with an "invalid session" sentinel. A cookie is
therefore trusted until that happens. Within one polling cycle a device may
be re-authenticated at most once, which `DeviceSession` enforces as a state
transition rather than a counter.
"""
import enum
import logging

from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import PersistenceError
from models.device import Device

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    ABSENT = "absent"
    CACHED = "cached"
    INVALIDATED_THIS_CYCLE = "invalidated_this_cycle"
    REAUTHENTICATED = "reauthenticated"


class DeviceSession:
    """One device's session as seen during a single polling cycle."""

    def __init__(self, device_id, token=None):
        self.device_id = device_id
        self.token = token
        self.state = SessionState.CACHED if token else SessionState.ABSENT

    @property
    def has_token(self):
        return self.token is not None

    @property
    def can_retry(self):
        return self.state is not SessionState.REAUTHENTICATED

    def cache(self, token):
        self.token = token
        if self.state is SessionState.INVALIDATED_THIS_CYCLE:
            self.state = SessionState.REAUTHENTICATED
        else:
            self.state = SessionState.CACHED

    def invalidate(self):
        """Drop the token. Returns False when the retry for this cycle is already spent."""
        allowed = self.can_retry
        self.token = None
        if allowed:
            self.state = SessionState.INVALIDATED_THIS_CYCLE
        return allowed


class SessionStore:
    """Keeps `Device.session_token` in step with a `DeviceSession`."""

    def __init__(self, db):
        self.db = db

    def load(self, device: Device) -> DeviceSession:
        return DeviceSession(device.id, device.session_token)

    def cache(self, device: Device, session: DeviceSession, token: str):
        session.cache(token)
        self._write(device, token)

    def invalidate(self, device: Device, session: DeviceSession) -> bool:
        allowed = session.invalidate()
        self._write(device, None)
        return allowed

    def _write(self, device, token):
        device.session_token = token
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"could not store session for device {device.id}: {e}") from e
        logger.debug("Device %s session %s", device.id, "cached" if token else "dropped")
