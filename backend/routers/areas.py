import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.exceptions import PersistenceError, ValidationError
from core.security import get_current_user, get_db
from models.area_of_interest import AreaOfInterest
from models.user import User
from schemas.area import AreaOfInterestIn, AreaOfInterestOut
from schemas.event import EventOut
from services.geofence import GeofenceMatcher, assign_geometry
from services.geometry import resolve

logger = logging.getLogger(__name__)

router = APIRouter()


def build_area(data: AreaOfInterestIn, area: AreaOfInterest) -> AreaOfInterest:
    """Validate the shape and write it onto `area`; raises 400 before anything is stored."""
    try:
        resolved = resolve(data.polygon_area, data.latitude, data.longitude, data.radius_in_meters)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if data.polygon_area is not None:
        assign_geometry(area, resolved)
    else:
        assign_geometry(area, resolved, data.latitude, data.longitude, data.radius_in_meters)
    return area


def save_area(db, area: AreaOfInterest) -> AreaOfInterest:
    """Store the geometry and its matched events in one commit, or neither."""
    area_id = area.id
    db.add(area)
    try:
        db.flush()
        GeofenceMatcher(db).on_area_changed(area)
    except (SQLAlchemyError, PersistenceError):
        db.rollback()
        logger.warning("Saving area of interest %s failed", area_id, exc_info=True)
        raise HTTPException(status_code=500, detail="Could not save area of interest")
    db.refresh(area)
    return area


def get_editable_area(db, area_id, user) -> AreaOfInterest:
    area = db.query(AreaOfInterest).filter(AreaOfInterest.id == area_id).first()
    if not area:
        raise HTTPException(status_code=404, detail="Area of interest not found")
    if area.user_id is not None and area.user_id == user.id:
        return area
    if area.community is not None and area.community.admin_id == user.id:
        return area
    raise HTTPException(status_code=403, detail="Not allowed to modify this area of interest")


@router.post("/me/areas", response_model=AreaOfInterestOut)
def create_my_area(data: AreaOfInterestIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    area = build_area(data, AreaOfInterest(user_id=user.id))
    return save_area(db, area)


@router.get("/me/areas", response_model=List[AreaOfInterestOut])
def list_my_areas(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return db.query(AreaOfInterest).filter(AreaOfInterest.user_id == user.id).order_by(AreaOfInterest.id).all()


@router.put("/areas/{area_id}", response_model=AreaOfInterestOut)
def update_area(
    area_id: int, data: AreaOfInterestIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)
):
    area = build_area(data, get_editable_area(db, area_id, user))
    return save_area(db, area)


@router.delete("/areas/{area_id}")
def delete_area(area_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    area = get_editable_area(db, area_id, user)
    db.delete(area)
    db.commit()
    return {"ok": True}


@router.get("/areas/{area_id}/events", response_model=List[EventOut])
def list_area_events(area_id: int, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return get_editable_area(db, area_id, user).events
