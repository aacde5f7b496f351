import logging
from typing import Any, Dict, List, Optional

import requests

from koru_forms.core.config import settings

logger = logging.getLogger(__name__)


class KoruApiError(Exception):
    """Failure talking to the Koru Suite Identity Broker.

    ``status_code`` is the upstream HTTP status, or None when the request never
    got a response (timeout, connection refused, DNS...).
    """

    def __init__(self, message: str, status_code: Optional[int] = None, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


def normalize_website_ids(websites) -> List[str]:
    """Koru returns websites either as bare ids or as objects with an ``id``."""
    ids = []
    for website in websites or []:
        if isinstance(website, dict):
            website_id = website.get("id") or website.get("_id")
        else:
            website_id = website
        if website_id is not None and str(website_id) not in ids:
            ids.append(str(website_id))
    return ids


def installed_app_ids(website: Dict[str, Any]) -> List[str]:
    apps = website.get("apps") or []
    ids = []
    for app in apps:
        if isinstance(app, dict):
            app_id = app.get("app_id") or app.get("id") or app.get("_id")
        else:
            app_id = app
        if app_id is not None:
            ids.append(str(app_id))
    return ids


class KoruClient:
    def __init__(
        self,
        base_url: str = None,
        app_id: str = None,
        app_secret: str = None,
        timeout: float = None,
        session: requests.Session = None,
    ):
        self.base_url = (base_url or settings.KORU_API_URL).rstrip("/")
        self.app_id = app_id if app_id is not None else settings.KORU_APP_ID
        self.app_secret = app_secret if app_secret is not None else settings.KORU_APP_SECRET
        self.timeout = timeout or settings.KORU_HTTP_TIMEOUT
        self.http = session or requests.Session()

    def _app_headers(self) -> Dict[str, str]:
        return {
            "X-App-ID": self.app_id or "",
            "X-App-Secret": self.app_secret or "",
            "Content-Type": "application/json",
        }

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning("Koru request %s %s failed: %s", method, path, e)
            raise KoruApiError(f"Connection error with the Koru Identity Broker: {e}") from e

        if not response.ok:
            try:
                payload = response.json()
            except ValueError:
                payload = None
            message = None
            if isinstance(payload, dict):
                message = payload.get("message") or payload.get("error")
            raise KoruApiError(
                message or f"Koru responded with status {response.status_code}",
                status_code=response.status_code,
                payload=payload,
            )

        try:
            return response.json()
        except ValueError:
            return {}

    def login(self, username: str, password: str) -> Dict[str, Any]:
        """POST /auth/login with user credentials in the body and app credentials in headers."""
        return self._request(
            "POST",
            "/auth/login",
            json={"username": username, "password": password},
            headers=self._app_headers(),
        )

    def get_website(self, website_id: str, token: Optional[str] = None) -> Dict[str, Any]:
        """GET /websites/:id as the user (bearer token) or as this app (machine credentials)."""
        if token:
            headers = {"Authorization": f"Bearer {token}"}
        else:
            headers = self._app_headers()
        return self._request("GET", f"/websites/{website_id}", headers=headers)


def get_koru_client() -> KoruClient:
    return KoruClient()
