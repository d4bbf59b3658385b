from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from core.config import settings

# the poller writes from worker threads, so SQLite must allow cross-thread use
connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(settings.DATABASE_URL, connect_args=connect_args, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
