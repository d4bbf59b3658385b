import os
import tempfile

# Point the app at a throwaway file-backed SQLite DB before anything imports settings
_fd, TEST_DB = tempfile.mkstemp(suffix=".db", prefix="geotracker_test_")
os.close(_fd)
os.environ["DATABASE_URL"] = f"sqlite:///{TEST_DB}"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["TESTING"] = "1"
os.environ["ADMIN_CREATE_ON_STARTUP"] = "0"

import pytest
from fastapi.testclient import TestClient

from db.base import Base
from db.session import engine, SessionLocal
from db.init_db import init_db  # noqa: F401  registers every model
from core.security import hash_password
from models.user import User


class DummyResp:
    """Stand-in for requests.Response."""

    def __init__(self, content=b"", status=200, headers=None):
        if isinstance(content, str):
            content = content.encode("utf-8")
        self.content = content
        self.status_code = status
        self.headers = headers or {}

    @property
    def text(self):
        return self.content.decode("utf-8", errors="replace")


def pytest_sessionfinish(session, exitstatus):
    engine.dispose()
    if os.path.exists(TEST_DB):
        os.remove(TEST_DB)


@pytest.fixture(autouse=True)
def fresh_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    from main import app

    with TestClient(app) as c:
        yield c


def make_user(db, email, role="member", password="secret"):
    user = User(name=email.split("@")[0], email=email, password_hash=hash_password(password), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def user(db):
    return make_user(db, "member@example.com")


@pytest.fixture
def admin(db):
    return make_user(db, "admin@example.com", role="administrator", password="adminpass")


def login(client, email, password):
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


@pytest.fixture
def headers(client, user):
    return login(client, "member@example.com", "secret")


@pytest.fixture
def admin_headers(client, admin):
    return login(client, "admin@example.com", "adminpass")
