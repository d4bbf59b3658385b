import requests
from sqlalchemy.exc import OperationalError

from conftest import DummyResp, login, make_user
from models.device import Device
from services import geofence

SQUARE = "POLYGON((0 0, 10 0, 10 10, 0 10, 0 0))"
FAR_SQUARE = "POLYGON((20 20, 30 20, 30 30, 20 30, 20 20))"


def test_login_and_me(client, headers):
    r = client.get("/auth/me", headers=headers)
    assert r.status_code == 200
    assert r.json()["email"] == "member@example.com"


def test_login_rejects_bad_password(client, user):
    r = client.post("/auth/login", json={"email": "member@example.com", "password": "wrong"})
    assert r.status_code == 401


def test_invalid_polygon_is_rejected_before_persistence(client, headers):
    r = client.post("/me/areas", json={"polygon_area": "POLYGON((0 0, 10 0, 10 10, 0 10, 0.0 0))"}, headers=headers)
    assert r.status_code == 400
    assert "closed polygon" in r.json()["detail"]

    r = client.post("/me/areas", json={}, headers=headers)
    assert r.status_code == 400

    assert client.get("/me/areas", headers=headers).json() == []


def test_area_and_event_flow(client, headers):
    r = client.post("/me/areas", json={"polygon_area": SQUARE}, headers=headers)
    assert r.status_code == 200, r.text
    area_id = r.json()["id"]

    r = client.post("/events/", json={"title": "Bike stolen", "type": "robbery", "latitude": 5, "longitude": 5}, headers=headers)
    assert r.status_code == 200, r.text
    event_id = r.json()["id"]

    # background matching has run by the time TestClient returns
    events = client.get(f"/areas/{area_id}/events", headers=headers).json()
    assert [e["id"] for e in events] == [event_id]
    assert [a["id"] for a in client.get(f"/events/{event_id}/areas", headers=headers).json()] == [area_id]

    r = client.put(f"/areas/{area_id}", json={"polygon_area": FAR_SQUARE}, headers=headers)
    assert r.status_code == 200
    assert client.get(f"/areas/{area_id}/events", headers=headers).json() == []

    r = client.put(f"/areas/{area_id}", json={"latitude": 5, "longitude": 5, "radius_in_meters": 1000}, headers=headers)
    assert r.status_code == 200
    assert r.json()["radius_in_meters"] == 1000
    assert [e["id"] for e in client.get(f"/areas/{area_id}/events", headers=headers).json()] == [event_id]


def test_moving_event_out_of_area_unlinks_it(client, headers):
    area_id = client.post("/me/areas", json={"polygon_area": SQUARE}, headers=headers).json()["id"]
    event_id = client.post("/events/", json={"title": "Lost dog", "latitude": 5, "longitude": 5}, headers=headers).json()["id"]

    r = client.patch(f"/events/{event_id}", json={"latitude": 45, "longitude": 45}, headers=headers)
    assert r.status_code == 200
    assert client.get(f"/areas/{area_id}/events", headers=headers).json() == []


def test_private_event_is_not_matched(client, headers):
    area_id = client.post("/me/areas", json={"polygon_area": SQUARE}, headers=headers).json()["id"]
    r = client.post("/events/", json={"title": "Quiet", "is_public": False, "latitude": 5, "longitude": 5}, headers=headers)
    assert r.status_code == 200
    assert client.get(f"/areas/{area_id}/events", headers=headers).json() == []


def test_event_type_is_validated(client, headers):
    r = client.post("/events/", json={"title": "x", "type": "alien", "latitude": 5, "longitude": 5}, headers=headers)
    assert r.status_code == 422


def test_community_area_requires_admin(client, db, headers):
    r = client.post("/communities/", json={"name": "Neighbours"}, headers=headers)
    assert r.status_code == 200
    community_id = r.json()["id"]

    make_user(db, "other@example.com", password="pw")
    other = login(client, "other@example.com", "pw")
    r = client.post(f"/communities/{community_id}/areas", json={"polygon_area": SQUARE}, headers=other)
    assert r.status_code == 403

    r = client.post(f"/communities/{community_id}/areas", json={"polygon_area": SQUARE}, headers=headers)
    assert r.status_code == 200
    assert r.json()["community_id"] == community_id


def test_device_crud_hides_credentials(client, headers):
    r = client.post("/devices/", json={"number": "+380501112233", "imei": "861234567890123", "password": "123456", "tracking": True}, headers=headers)
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["has_credentials"] is True
    assert "password" not in body and "session_token" not in body

    r = client.post("/devices/", json={"number": "+380501112233"}, headers=headers)
    assert r.status_code == 400

    device_id = body["id"]
    assert client.delete(f"/devices/{device_id}", headers=headers).status_code == 200
    assert client.get(f"/devices/{device_id}", headers=headers).status_code == 404


def test_poll_device_stores_fix(client, db, headers, monkeypatch):
    device_id = client.post("/devices/", json={"imei": "861234567890123", "password": "123456"}, headers=headers).json()["id"]

    def fake_get(url, **kwargs):
        if url.endswith("/login.php"):
            return DummyResp(b"", headers={"Set-Cookie": "PHPSESSID=abc; path=/"})
        return DummyResp(b'\xef\xbb\xbf{"aaData":[{"lat_google":"50.45","lng_google":"30.52"}]}')

    monkeypatch.setattr(requests, "get", fake_get)
    monkeypatch.setattr(requests, "post", lambda url, **kw: DummyResp(b""))

    r = client.post(f"/devices/{device_id}/poll", headers=headers)
    assert r.status_code == 200, r.text
    assert r.json()["state"] == "stored"

    locations = client.get(f"/devices/{device_id}/locations", headers=headers).json()
    assert [(l["latitude"], l["longitude"]) for l in locations] == [(50.45, 30.52)]
    assert db.get(Device, device_id).session_token == "PHPSESSID=abc"


def test_poll_device_without_credentials(client, headers):
    device_id = client.post("/devices/", json={"number": "+380500000000"}, headers=headers).json()["id"]
    r = client.post(f"/devices/{device_id}/poll", headers=headers)
    assert r.status_code == 400


def test_changing_credentials_drops_session(client, db, headers):
    device_id = client.post("/devices/", json={"imei": "1", "password": "a"}, headers=headers).json()["id"]
    dev = db.get(Device, device_id)
    dev.session_token = "PHPSESSID=old"
    db.commit()

    r = client.patch(f"/devices/{device_id}", json={"password": "b"}, headers=headers)
    assert r.status_code == 200
    db.expire_all()
    assert db.get(Device, device_id).session_token is None


def test_admin_config(client, headers, admin_headers):
    assert client.get("/admin/config", headers=headers).status_code == 403

    r = client.get("/admin/config", headers=admin_headers)
    assert r.status_code == 200
    assert r.json()["poll_interval"] == 30

    r = client.put("/admin/config", json={"poll_interval": 10}, headers=admin_headers)
    assert r.json()["poll_interval"] == 10

    assert client.put("/admin/config", json={"poll_interval": 0}, headers=admin_headers).status_code == 422


def test_failed_matching_keeps_area_and_links_unchanged(client, headers, monkeypatch):
    area_id = client.post("/me/areas", json={"polygon_area": SQUARE}, headers=headers).json()["id"]
    event_id = client.post("/events/", json={"title": "Bike stolen", "latitude": 5, "longitude": 5}, headers=headers).json()["id"]

    def broken_scan(db, area):
        raise OperationalError("SELECT events", {}, Exception("database is locked"))

    monkeypatch.setattr(geofence, "find_public_events_in_area", broken_scan)
    r = client.put(f"/areas/{area_id}", json={"polygon_area": FAR_SQUARE}, headers=headers)
    assert r.status_code == 500
    monkeypatch.undo()

    [area] = client.get("/me/areas", headers=headers).json()
    assert area["polygon_area"] == "POLYGON ((0 0, 10 0, 10 10, 0 10, 0 0))"
    assert [e["id"] for e in client.get(f"/areas/{area_id}/events", headers=headers).json()] == [event_id]


def test_refresh_device_reauthenticates_once_on_stale_session(client, db, headers, monkeypatch):
    device_id = client.post("/devices/", json={"imei": "861234567890123", "password": "123456"}, headers=headers).json()["id"]
    cookies = iter(["PHPSESSID=first", "PHPSESSID=second"])
    logins = []
    refreshes = []

    def fake_get(url, **kwargs):
        return DummyResp(b"", headers={"Set-Cookie": f"{next(cookies)}; path=/"})

    def fake_post(url, **kwargs):
        if "npost_login.php" in url:
            logins.append(kwargs["headers"]["Cookie"])
            return DummyResp(b"")
        refreshes.append(kwargs["headers"]["Cookie"])
        if len(refreshes) == 1:
            return DummyResp(b'{"result":"NULL"}')
        return DummyResp(b"Y")

    monkeypatch.setattr(requests, "get", fake_get)
    monkeypatch.setattr(requests, "post", fake_post)

    r = client.post(f"/devices/{device_id}/refresh", headers=headers)
    assert r.status_code == 200, r.text
    assert logins == ["PHPSESSID=first", "PHPSESSID=second"]
    assert refreshes == ["PHPSESSID=first", "PHPSESSID=second"]
    db.expire_all()
    assert db.get(Device, device_id).session_token == "PHPSESSID=second"
