from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.config import settings
from core.security import require_admin, get_db
from models.app_config import get_app_config
from schemas.config import AppConfigOut, AppConfigUpdate

router = APIRouter()


@router.get("/config", response_model=AppConfigOut)
def read_config(db: Session = Depends(get_db), _=Depends(require_admin)):
    return get_app_config(db, settings.POLL_INTERVAL_SECONDS)


@router.put("/config", response_model=AppConfigOut)
def update_config(data: AppConfigUpdate, db: Session = Depends(get_db), _=Depends(require_admin)):
    conf = get_app_config(db, settings.POLL_INTERVAL_SECONDS)
    # picked up by the poller at the start of its next cycle
    conf.poll_interval = data.poll_interval
    db.commit()
    db.refresh(conf)
    return conf
