from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from sqlalchemy.orm import Session

from core.security import get_current_user, get_db
from models.device import Device
from models.event import Event
from models.user import User
from schemas.area import AreaOfInterestOut
from schemas.event import EventCreate, EventUpdate, EventOut
from services.geofence import populate_event_areas, reconcile_event_areas

router = APIRouter()


def _get_event(db, event_id, user, writer=False):
    ev = db.query(Event).filter(Event.id == event_id).first()
    if not ev:
        raise HTTPException(status_code=404, detail="Event not found")
    if ev.created_by_id == user.id or (ev.is_public and not writer):
        return ev
    raise HTTPException(status_code=403, detail="Not allowed to access this event")


@router.post("/", response_model=EventOut)
def create_event(
    data: EventCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if data.device_id is not None:
        dev = db.query(Device).filter(Device.id == data.device_id, Device.deleted_at.is_(None)).first()
        if not dev or dev.owner_id != user.id:
            raise HTTPException(status_code=400, detail="Unknown device")
    ev = Event(**data.model_dump(), created_by_id=user.id)
    db.add(ev)
    db.commit()
    db.refresh(ev)
    if ev.is_public:
        # a slow spatial scan must not hold up the response
        background_tasks.add_task(populate_event_areas, ev.id)
    return ev


@router.get("/{event_id}", response_model=EventOut)
def get_event(event_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return _get_event(db, event_id, user)


@router.patch("/{event_id}", response_model=EventOut)
def update_event(
    event_id: int,
    data: EventUpdate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    ev = _get_event(db, event_id, user, writer=True)
    changes = data.model_dump(exclude_unset=True)
    moved = any(
        field in changes and changes[field] != getattr(ev, field) for field in ("latitude", "longitude", "is_public")
    )
    for field, value in changes.items():
        setattr(ev, field, value)
    db.commit()
    db.refresh(ev)
    if moved:
        background_tasks.add_task(reconcile_event_areas, ev.id)
    return ev


@router.get("/{event_id}/areas", response_model=List[AreaOfInterestOut])
def list_event_areas(event_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    ev = _get_event(db, event_id, user, writer=True)
    return ev.areas_of_interest
