from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging

from routers import auth, admin, devices, areas, communities, events
from core.config import settings
from core.security import hash_password, ADMIN_ROLE
from db.init_db import init_db
from db.session import SessionLocal
from models.user import User
from services.scheduler import PollScheduler

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_default_admin():
    db = SessionLocal()
    try:
        existing = db.query(User).filter(User.email == settings.ADMIN_EMAIL).first()
        if not existing:
            db.add(
                User(
                    name=settings.ADMIN_NAME,
                    email=settings.ADMIN_EMAIL,
                    password_hash=hash_password(settings.ADMIN_PASSWORD),
                    role=ADMIN_ROLE,
                )
            )
            db.commit()
            logger.info("Created default admin user %s", settings.ADMIN_EMAIL)
        else:
            logger.debug("Default admin user already exists: %s", settings.ADMIN_EMAIL)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # startup: create tables
    init_db()

    if settings.ADMIN_CREATE_ON_STARTUP and settings.ADMIN_EMAIL and settings.ADMIN_PASSWORD:
        try:
            create_default_admin()
        except Exception:
            # don't fail startup if admin creation fails
            logger.warning("Failed to create default admin on startup", exc_info=True)

    poller = None
    if settings.POLLER_ENABLED and not settings.TESTING:
        poller = PollScheduler()
        poller.start()
    app.state.poller = poller

    yield

    if poller is not None:
        poller.stop()


app = FastAPI(title="GeoTracker API", lifespan=lifespan)


app.include_router(auth.router, prefix="/auth")
app.include_router(admin.router, prefix="/admin")
app.include_router(devices.router, prefix="/devices")
app.include_router(communities.router, prefix="/communities")
app.include_router(events.router, prefix="/events")
app.include_router(areas.router)


@app.get("/")
def root():
    return {"message": "GeoTracker API"}
