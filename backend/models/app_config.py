from sqlalchemy import Column, Integer, String

from db.base import Base


class AppConfig(Base):
    """Singleton row of settings operators change at runtime."""

    __tablename__ = "app_config"

    id = Column(Integer, primary_key=True)
    singleton = Column(String, unique=True, nullable=False, default="singleton")
    poll_interval = Column(Integer, nullable=False, default=30)


def get_app_config(db, default_poll_interval=30):
    """Return the config row, creating it on first use."""
    conf = db.query(AppConfig).filter(AppConfig.singleton == "singleton").first()
    if conf is None:
        conf = AppConfig(singleton="singleton", poll_interval=default_poll_interval)
        db.add(conf)
        db.commit()
        db.refresh(conf)
    return conf
