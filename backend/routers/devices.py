from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.exceptions import GeoTrackerError, SessionInvalid
from core.security import get_current_user, get_db
from models.device import Device
from models.location import LocationFix
from models.user import User
from schemas.device import DeviceCreate, DeviceUpdate, DeviceOut, LocationFixOut
from services.ingestor import LocationIngestor, in_flight
from services.provider_client import ProviderClient
from services.session_store import SessionStore

router = APIRouter()


def _get_owned_device(db, device_id, user):
    dev = (
        db.query(Device)
        .filter(Device.id == device_id, Device.owner_id == user.id, Device.deleted_at.is_(None))
        .first()
    )
    if not dev:
        raise HTTPException(status_code=404, detail="Device not found")
    return dev


def _commit_device(db):
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Device number or IMEI already registered")


@router.post("/", response_model=DeviceOut)
def create_device(data: DeviceCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    dev = Device(number=data.number, imei=data.imei, password=data.password, tracking=data.tracking, owner_id=user.id)
    db.add(dev)
    _commit_device(db)
    db.refresh(dev)
    return dev


@router.get("/", response_model=List[DeviceOut])
def list_devices(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return (
        db.query(Device)
        .filter(Device.owner_id == user.id, Device.deleted_at.is_(None))
        .order_by(Device.id)
        .all()
    )


@router.get("/{device_id}", response_model=DeviceOut)
def get_device(device_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return _get_owned_device(db, device_id, user)


@router.patch("/{device_id}", response_model=DeviceOut)
def update_device(
    device_id: int, data: DeviceUpdate, db: Session = Depends(get_db), user: User = Depends(get_current_user)
):
    dev = _get_owned_device(db, device_id, user)
    changes = data.model_dump(exclude_unset=True)
    if "imei" in changes or "password" in changes:
        # a session bound to the old credentials is useless
        dev.session_token = None
    for field, value in changes.items():
        setattr(dev, field, value)
    _commit_device(db)
    db.refresh(dev)
    return dev


@router.delete("/{device_id}")
def delete_device(device_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    dev = _get_owned_device(db, device_id, user)
    dev.deleted_at = datetime.now(timezone.utc)
    dev.tracking = False
    dev.session_token = None
    db.commit()
    return {"ok": True}


@router.get("/{device_id}/locations", response_model=List[LocationFixOut])
def list_locations(device_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    dev = _get_owned_device(db, device_id, user)
    return (
        db.query(LocationFix)
        .filter(LocationFix.device_id == dev.id)
        .order_by(LocationFix.captured_at.desc(), LocationFix.id.desc())
        .all()
    )


@router.post("/{device_id}/poll")
def poll_device(device_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Run one ingestion for the device right now."""
    dev = _get_owned_device(db, device_id, user)
    if not dev.has_credentials:
        raise HTTPException(status_code=400, detail="Device has no portal credentials")
    if not in_flight.claim(dev.id):
        raise HTTPException(status_code=409, detail="Device is already being polled")
    try:
        result = LocationIngestor().ingest(db, dev)
    finally:
        in_flight.release(dev.id)
    if not result.ok:
        raise HTTPException(status_code=502, detail=result.to_dict())
    return result.to_dict()


@router.post("/{device_id}/refresh")
def refresh_device(device_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    """Ask the portal to make the tracker report a fresh position."""
    dev = _get_owned_device(db, device_id, user)
    if not dev.has_credentials:
        raise HTTPException(status_code=400, detail="Device has no portal credentials")
    client = ProviderClient()
    store = SessionStore(db)
    session = store.load(dev)
    try:
        if not session.has_token:
            store.cache(dev, session, client.login(dev.imei, dev.password))
        try:
            client.request_refresh(session.token, dev.imei)
        except SessionInvalid:
            store.invalidate(dev, session)
            store.cache(dev, session, client.login(dev.imei, dev.password))
            client.request_refresh(session.token, dev.imei)
    except GeoTrackerError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"ok": True}
