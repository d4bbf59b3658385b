from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.security import get_current_user, get_db
from models.area_of_interest import AreaOfInterest
from models.community import Community
from models.user import User
from routers.areas import build_area, save_area
from schemas.area import AreaOfInterestIn, AreaOfInterestOut
from schemas.community import CommunityCreate, CommunityOut

router = APIRouter()


def _get_community(db, community_id):
    community = db.query(Community).filter(Community.id == community_id).first()
    if not community:
        raise HTTPException(status_code=404, detail="Community not found")
    return community


@router.post("/", response_model=CommunityOut)
def create_community(data: CommunityCreate, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    community = Community(name=data.name, description=data.description, admin_id=user.id)
    db.add(community)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=400, detail="Community name already taken")
    db.refresh(community)
    return community


@router.post("/{community_id}/areas", response_model=AreaOfInterestOut)
def create_community_area(
    community_id: int, data: AreaOfInterestIn, db: Session = Depends(get_db), user: User = Depends(get_current_user)
):
    community = _get_community(db, community_id)
    if community.admin_id != user.id:
        raise HTTPException(status_code=403, detail="Only the community admin can add areas of interest")
    area = build_area(data, AreaOfInterest(community_id=community.id))
    return save_area(db, area)


@router.get("/{community_id}/areas", response_model=List[AreaOfInterestOut])
def list_community_areas(community_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    community = _get_community(db, community_id)
    return (
        db.query(AreaOfInterest)
        .filter(AreaOfInterest.community_id == community.id)
        .order_by(AreaOfInterest.id)
        .all()
    )
