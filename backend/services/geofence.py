"""Keeps the event <-> area-of-interest association equal to the live geometry.

The association is a materialised view of "public event point intersects area
polygon". It is recomputed by explicit calls from the code that changed an
area or an event, never from ORM hooks, so recomputing one side cannot
trigger a recompute of the other.
"""
import logging
from typing import List

from shapely import prepared
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import PersistenceError
from db.session import SessionLocal
from models.area_of_interest import AreaOfInterest
from models.event import Event, event_areas_of_interest
from services.geometry import ResolvedArea, event_point, load_geometry

logger = logging.getLogger(__name__)


def assign_geometry(area: AreaOfInterest, resolved: ResolvedArea, latitude=None, longitude=None, radius_in_meters=None):
    area.polygon_area = resolved.wkt
    area.latitude = latitude
    area.longitude = longitude
    area.radius_in_meters = radius_in_meters
    area.min_longitude, area.min_latitude, area.max_longitude, area.max_latitude = resolved.bounds


def find_public_events_in_area(db, area: AreaOfInterest) -> List[Event]:
    """Public events whose point intersects the area, most recent first."""
    geometry = load_geometry(area.polygon_area)
    min_lon, min_lat, max_lon, max_lat = geometry.bounds
    candidates = (
        db.query(Event)
        .filter(
            Event.is_public.is_(True),
            Event.longitude.between(min_lon, max_lon),
            Event.latitude.between(min_lat, max_lat),
        )
        .order_by(Event.created_at.desc(), Event.id.desc())
        .all()
    )
    shape = prepared.prep(geometry)
    return [event for event in candidates if shape.intersects(event_point(event.latitude, event.longitude))]


def find_areas_containing(db, latitude: float, longitude: float) -> List[AreaOfInterest]:
    point = event_point(latitude, longitude)
    candidates = (
        db.query(AreaOfInterest)
        .filter(
            AreaOfInterest.min_longitude <= longitude,
            AreaOfInterest.max_longitude >= longitude,
            AreaOfInterest.min_latitude <= latitude,
            AreaOfInterest.max_latitude >= latitude,
        )
        .order_by(AreaOfInterest.id)
        .all()
    )
    return [area for area in candidates if load_geometry(area.polygon_area).intersects(point)]


class GeofenceMatcher:
    def __init__(self, db):
        self.db = db

    def on_area_changed(self, area: AreaOfInterest) -> List[Event]:
        """Replace the area's events with exactly the ones it currently covers."""
        events = find_public_events_in_area(self.db, area)
        area.events = events
        self._commit(f"area {area.id}")
        logger.debug("Area %s now matches %d events", area.id, len(events))
        return events

    def on_public_event_created(self, event: Event) -> List[AreaOfInterest]:
        """Append the event to every area containing it; re-linking is a no-op."""
        if not event.is_public:
            return []
        areas = find_areas_containing(self.db, event.latitude, event.longitude)
        for area in areas:
            self._link(area.id, event.id)
        self._commit(f"event {event.id}")
        logger.debug("Event %s linked to %d areas", event.id, len(areas))
        return areas

    def reconcile_event(self, event: Event) -> List[AreaOfInterest]:
        """Re-link an event that moved or changed visibility."""
        areas = find_areas_containing(self.db, event.latitude, event.longitude) if event.is_public else []
        event.areas_of_interest = areas
        self._commit(f"event {event.id}")
        return areas

    def _link(self, area_id, event_id):
        exists = (
            self.db.query(event_areas_of_interest)
            .filter(
                event_areas_of_interest.c.area_of_interest_id == area_id,
                event_areas_of_interest.c.event_id == event_id,
            )
            .first()
        )
        if exists is None:
            self.db.execute(event_areas_of_interest.insert().values(area_of_interest_id=area_id, event_id=event_id))

    def _commit(self, what):
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceError(f"could not update geofence links for {what}: {e}") from e


def _run_detached(event_id, action, session_factory):
    db = session_factory()
    try:
        event = db.get(Event, event_id)
        if event is None:
            logger.warning("Event %s vanished before geofence matching", event_id)
            return
        action(GeofenceMatcher(db), event)
    except Exception:
        # the event is already committed; matching failures are only logged
        logger.exception("Geofence matching failed for event %s", event_id)
    finally:
        db.close()


def populate_event_areas(event_id, session_factory=SessionLocal):
    """Detached matching for a newly saved public event."""
    _run_detached(event_id, GeofenceMatcher.on_public_event_created, session_factory)


def reconcile_event_areas(event_id, session_factory=SessionLocal):
    """Detached re-linking for an event whose position or visibility changed."""
    _run_detached(event_id, GeofenceMatcher.reconcile_event, session_factory)
