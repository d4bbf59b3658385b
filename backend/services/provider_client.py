"""Scripted client for the GPS tracker web portal.

The portal has no API. Everything here replays what its own pages send:
the same form field order, the same locale and content-type headers. The
portal silently treats anything else as bad input, so request bodies are
encoded by hand and never normalised by `requests`.
"""
import json
import logging
import re
from typing import Optional, Tuple
from urllib.parse import urlencode

import requests
import urllib3

from core.config import settings
from core.exceptions import ProviderError, SessionInvalid

logger = logging.getLogger(__name__)

BOM = b"\xef\xbb\xbf"
SESSION_INVALID_BODY = b'{"result":"NULL"}'
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def strip_bom(body: bytes) -> bytes:
    if body.startswith(BOM):
        return body[len(BOM):]
    return body


def extract_session_cookie(set_cookie: Optional[str], name: str) -> Optional[str]:
    """Return `name=value` from a Set-Cookie header, or None."""
    if not set_cookie:
        return None
    prefix = f"{name}="
    for part in re.split(r"[;,]", set_cookie):
        part = part.strip()
        if part.startswith(prefix):
            return part
    return None


def parse_fix(body: bytes) -> Tuple[float, float]:
    """Parse a marker-list response into (latitude, longitude).

    Raises SessionInvalid for the portal's sentinel and ProviderError for
    anything that is not a usable position.
    """
    body = strip_bom(body)
    if body == SESSION_INVALID_BODY:
        raise SessionInvalid("portal rejected the session")
    try:
        payload = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ProviderError(f"response is not valid JSON: {body[:200]!r}") from e

    if payload == {"result": "NULL"}:
        raise SessionInvalid("portal rejected the session")
    try:
        marker = payload["aaData"][0]
        return float(marker["lat_google"]), float(marker["lng_google"])
    except (KeyError, IndexError, TypeError, ValueError) as e:
        raise ProviderError(f"unexpected marker list payload: {body[:200]!r}") from e


class ProviderClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        verify: Optional[bool] = None,
    ):
        self.base_url = (base_url or settings.PROVIDER_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS
        self.verify = settings.PROVIDER_VERIFY_TLS if verify is None else verify
        self.accept_language = settings.PROVIDER_ACCEPT_LANGUAGE
        self.cookie_name = settings.PROVIDER_SESSION_COOKIE
        if not self.verify:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def _form_headers(self, cookie):
        return {
            "Cookie": cookie,
            "Content-Type": FORM_CONTENT_TYPE,
            "Accept-Language": self.accept_language,
        }

    def _get(self, url, **kwargs):
        try:
            return requests.get(url, timeout=self.timeout, verify=self.verify, **kwargs)
        except requests.RequestException as e:
            raise ProviderError(f"GET {url} failed: {e}") from e

    def _post(self, url, **kwargs):
        try:
            return requests.post(url, timeout=self.timeout, verify=self.verify, **kwargs)
        except requests.RequestException as e:
            raise ProviderError(f"POST {url} failed: {e}") from e

    @staticmethod
    def _check_status(resp, step):
        if not (200 <= resp.status_code < 300):
            raise ProviderError(f"{step} returned HTTP {resp.status_code}")

    def create_session(self) -> str:
        """Visit the login page to obtain an anonymous session cookie."""
        resp = self._get(f"{self.base_url}/login.php")
        self._check_status(resp, "login page")
        cookie = extract_session_cookie(resp.headers.get("Set-Cookie"), self.cookie_name)
        if cookie is None:
            raise ProviderError(f"no {self.cookie_name} cookie in login page response")
        return cookie

    def authenticate(self, cookie: str, identity: str, secret: str) -> None:
        """Bind credentials to an anonymous session cookie."""
        body = urlencode(
            [("demo", "F"), ("form_type", "0"), ("password", secret), ("username", identity)]
        )
        resp = self._post(
            f"{self.base_url}/npost_login.php?lang=en",
            data=body,
            headers=self._form_headers(cookie),
        )
        self._check_status(resp, "login")

    def login(self, identity: str, secret: str) -> str:
        cookie = self.create_session()
        self.authenticate(cookie, identity, secret)
        return cookie

    def get_current_fix(self, cookie: str) -> Tuple[float, float]:
        resp = self._get(
            f"{self.base_url}/post_map_marker_list.php?timezonemins={settings.PROVIDER_TIMEZONE_MINUTES}",
            headers={"Cookie": cookie, "Accept-Language": self.accept_language},
        )
        self._check_status(resp, "marker list")
        logger.debug("Marker list response: %r", resp.content[:500])
        return parse_fix(resp.content)

    def request_refresh(self, cookie: str, imei: str) -> None:
        """Ask the portal to make the tracker report a fresh position."""
        resp = self._post(
            f"{self.base_url}/post_submit_sendloc.php",
            data=urlencode([("imei", imei)]),
            headers=self._form_headers(cookie),
        )
        self._check_status(resp, "location refresh")
        answer = strip_bom(resp.content).strip()
        if answer == SESSION_INVALID_BODY:
            raise SessionInvalid("portal rejected the session")
        if answer != b"Y":
            raise ProviderError(f"location refresh refused: {answer[:200]!r}")
