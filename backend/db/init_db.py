from db.base import Base
from db.session import engine

# import every model so Base.metadata knows all tables and relationships resolve
from models import user, community, device, location, event, area_of_interest, app_config  # noqa: F401


def init_db():
    Base.metadata.create_all(bind=engine)
