"""Background loop that polls every trackable device on a fixed interval.

Each tick lists the eligible devices and hands one ingestion per device to a
bounded thread pool, then sleeps. It never waits for the ingestions it
started; a device whose previous run is still in flight is skipped for the
tick so two runs never touch the same session.
"""
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from functools import partial
from typing import List, Optional

from core.config import settings
from db.session import SessionLocal
from models.app_config import get_app_config
from models.device import Device
from services.ingestor import LocationIngestor, in_flight as shared_in_flight

logger = logging.getLogger(__name__)


def list_trackable_device_ids(db) -> List[int]:
    rows = (
        db.query(Device.id)
        .filter(
            Device.tracking.is_(True),
            Device.deleted_at.is_(None),
            Device.imei.isnot(None),
            Device.imei != "",
            Device.password.isnot(None),
            Device.password != "",
        )
        .order_by(Device.id)
        .all()
    )
    return [row.id for row in rows]


class PollScheduler:
    def __init__(
        self,
        ingestor: Optional[LocationIngestor] = None,
        session_factory=SessionLocal,
        executor=None,
        in_flight=None,
    ):
        self.ingestor = ingestor or LocationIngestor(session_factory=session_factory)
        self.session_factory = session_factory
        self.executor = executor
        self.in_flight = in_flight if in_flight is not None else shared_in_flight
        self._stop = threading.Event()
        self._thread = None

    def start(self):
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._ensure_executor()
        self._thread = threading.Thread(target=self._loop, name="location-poller", daemon=True)
        self._thread.start()
        logger.info("Location poller started")

    def stop(self, timeout=5.0):
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
        if self.executor is not None:
            # cancelled runs give up their claims through the done callbacks
            self.executor.shutdown(wait=False, cancel_futures=True)
            self.executor = None
        logger.info("Location poller stopped")

    def _loop(self):
        while not self._stop.is_set():
            interval = settings.POLL_INTERVAL_SECONDS
            try:
                interval, _ = self.run_cycle()
            except Exception:
                # a broken cycle (e.g. database unreachable) must not kill the loop
                logger.exception("Poll cycle failed")
            self._stop.wait(interval)

    def _ensure_executor(self):
        if self.executor is None:
            self.executor = ThreadPoolExecutor(
                max_workers=settings.POLL_MAX_WORKERS, thread_name_prefix="ingest"
            )
        return self.executor

    def current_interval(self, db) -> int:
        return get_app_config(db, settings.POLL_INTERVAL_SECONDS).poll_interval

    def run_cycle(self):
        """Read the interval, list devices and dispatch them. Returns (interval, dispatched ids)."""
        db = self.session_factory()
        try:
            interval = self.current_interval(db)
            device_ids = list_trackable_device_ids(db)
        finally:
            db.close()

        dispatched = self.dispatch(device_ids)
        logger.debug("Poll cycle dispatched %d/%d devices, next in %ss", len(dispatched), len(device_ids), interval)
        return interval, dispatched

    def dispatch(self, device_ids) -> List[int]:
        executor = self._ensure_executor()
        dispatched = []
        for device_id in device_ids:
            if not self.in_flight.claim(device_id):
                logger.info("Device %s still being polled, skipping this cycle", device_id)
                continue
            try:
                future = executor.submit(self._run_device, device_id)
            except RuntimeError:
                # executor shut down mid-dispatch
                self.in_flight.release(device_id)
                raise
            future.add_done_callback(partial(self._release, device_id))
            dispatched.append(device_id)
        return dispatched

    def _run_device(self, device_id):
        try:
            return self.ingestor.run(device_id)
        except Exception:
            logger.exception("Location ingestion crashed for device %s", device_id)

    def _release(self, device_id, future):
        # runs for finished and cancelled futures alike
        self.in_flight.release(device_id)
