import pytest
import requests

from conftest import DummyResp
from core.exceptions import ProviderError, SessionInvalid
from services.provider_client import ProviderClient, extract_session_cookie, parse_fix

BOM = b"\xef\xbb\xbf"
FIX_BODY = b'{"aaData":[{"lat":"50.1","lng":"30.1","gpstime":"2024-01-01 10:00:00","lat_google":"50.4501","lng_google":"30.5234"}]}'


@pytest.fixture
def client():
    return ProviderClient(base_url="https://portal.example/")


def test_session_cookie_extracted_by_prefix():
    header = "lang=en; path=/, PHPSESSID=abc123; path=/; HttpOnly"
    assert extract_session_cookie(header, "PHPSESSID") == "PHPSESSID=abc123"
    assert extract_session_cookie("lang=en; path=/", "PHPSESSID") is None
    assert extract_session_cookie(None, "PHPSESSID") is None


def test_create_session(monkeypatch, client):
    calls = []

    def fake_get(url, **kwargs):
        calls.append((url, kwargs))
        return DummyResp(b"<html>", headers={"Set-Cookie": "PHPSESSID=s3ss10n; path=/"})

    monkeypatch.setattr(requests, "get", fake_get)
    assert client.create_session() == "PHPSESSID=s3ss10n"
    url, kwargs = calls[0]
    assert url == "https://portal.example/login.php"
    # the portal's certificate chain does not validate
    assert kwargs["verify"] is False


def test_create_session_without_cookie_fails(monkeypatch, client):
    monkeypatch.setattr(requests, "get", lambda url, **kw: DummyResp(b"", headers={}))
    with pytest.raises(ProviderError):
        client.create_session()


def test_authenticate_sends_portal_form_verbatim(monkeypatch, client):
    sent = {}

    def fake_post(url, data=None, headers=None, **kwargs):
        sent.update(url=url, data=data, headers=headers)
        return DummyResp(b"")

    monkeypatch.setattr(requests, "post", fake_post)
    client.authenticate("PHPSESSID=abc", "861234567890123", "p@ss word")

    assert sent["url"] == "https://portal.example/npost_login.php?lang=en"
    assert sent["data"] == "demo=F&form_type=0&password=p%40ss+word&username=861234567890123"
    assert sent["headers"] == {
        "Cookie": "PHPSESSID=abc",
        "Content-Type": "application/x-www-form-urlencoded",
        "Accept-Language": "en-GB,en-US;q=0.9,en;q=0.8",
    }


def test_failed_login_step_is_fatal(monkeypatch, client):
    monkeypatch.setattr(
        requests, "get", lambda url, **kw: DummyResp(b"", headers={"Set-Cookie": "PHPSESSID=x"})
    )
    monkeypatch.setattr(requests, "post", lambda url, **kw: DummyResp(b"", status=500))
    with pytest.raises(ProviderError):
        client.login("imei", "secret")


def test_get_current_fix_strips_bom(monkeypatch, client):
    seen = {}

    def fake_get(url, headers=None, **kwargs):
        seen.update(url=url, headers=headers)
        return DummyResp(BOM + FIX_BODY)

    monkeypatch.setattr(requests, "get", fake_get)
    assert client.get_current_fix("PHPSESSID=abc") == (50.4501, 30.5234)
    assert seen["url"] == "https://portal.example/post_map_marker_list.php?timezonemins=-180"
    assert seen["headers"]["Cookie"] == "PHPSESSID=abc"


def test_sentinel_means_session_invalid(monkeypatch, client):
    monkeypatch.setattr(requests, "get", lambda url, **kw: DummyResp(BOM + b'{"result":"NULL"}'))
    with pytest.raises(SessionInvalid):
        client.get_current_fix("PHPSESSID=stale")


@pytest.mark.parametrize(
    "body",
    [
        b"<html>error</html>",
        b'{"aaData":[]}',
        b'{"result":"OK"}',
        b'{"aaData":[{"lat_google":"north","lng_google":"30.5"}]}',
        b"\xff\xfe",
    ],
)
def test_malformed_marker_list_is_provider_error(body):
    with pytest.raises(ProviderError):
        parse_fix(body)


def test_network_errors_become_provider_errors(monkeypatch, client):
    def boom(url, **kwargs):
        raise requests.ConnectionError("connection reset")

    monkeypatch.setattr(requests, "get", boom)
    with pytest.raises(ProviderError):
        client.get_current_fix("PHPSESSID=abc")


def test_request_refresh(monkeypatch, client):
    sent = {}

    def fake_post(url, data=None, headers=None, **kwargs):
        sent.update(url=url, data=data)
        return DummyResp(BOM + b"Y\n")

    monkeypatch.setattr(requests, "post", fake_post)
    client.request_refresh("PHPSESSID=abc", "861234567890123")
    assert sent["url"] == "https://portal.example/post_submit_sendloc.php"
    assert sent["data"] == "imei=861234567890123"

    monkeypatch.setattr(requests, "post", lambda url, **kw: DummyResp(b"N"))
    with pytest.raises(ProviderError):
        client.request_refresh("PHPSESSID=abc", "861234567890123")
