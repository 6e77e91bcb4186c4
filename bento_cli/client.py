import json
import logging
import os
from typing import Any, Dict, Iterable, List, Optional

import requests

from bento_cli import __version__
from bento_cli.errors import ApiError, Err, ErrorKind, Ok, Result

log = logging.getLogger(__name__)

BENTO_API_BASE = "https://app.bentonow.com/api/v1"
DEFAULT_TIMEOUT = 30

AUTH_HINT = "Run 'bento auth login' to re-authenticate."


def _error_detail(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text.strip()[:200]
    if isinstance(body, dict):
        for key in ("error", "message", "errors"):
            if body.get(key):
                return str(body[key])
    return json.dumps(body)[:200]


def translate_response(resp: requests.Response) -> Result:
    """Map an HTTP response to ``Ok(json)`` or an ``Err`` of the matching kind."""
    status = resp.status_code
    if 200 <= status < 300:
        if not resp.content:
            return Ok({})
        try:
            return Ok(resp.json())
        except ValueError:
            return Err(ErrorKind.API_ERROR, f"Non-JSON response from {resp.url}", status)

    detail = _error_detail(resp)
    if status == 401:
        return Err(ErrorKind.AUTH_FAILED,
                   f"Authentication failed: Invalid API key or expired credentials. {AUTH_HINT}", status)
    if status == 403:
        return Err(ErrorKind.AUTH_FAILED,
                   "Access denied: Your API key does not have permission for this operation.", status)
    if status == 404:
        return Err(ErrorKind.NOT_FOUND, "Resource not found.", status)
    if status == 408:
        return Err(ErrorKind.TIMEOUT, "Request timed out. Please try again.", status)
    if status == 429:
        return Err(ErrorKind.RATE_LIMITED,
                   "Rate limited: Too many requests. Please wait a moment and try again.", status)
    if status in (400, 422):
        return Err(ErrorKind.VALIDATION_ERROR, f"Validation error: {detail}", status)
    if status >= 500:
        return Err(ErrorKind.API_ERROR, f"Bento API server error ({status}): {detail}", status)
    return Err(ErrorKind.API_ERROR, f"{status} error from {resp.url}: {detail}", status)


def translate_exception(exc: BaseException) -> Err:
    """Map a transport-level exception to an ``Err``."""
    if isinstance(exc, requests.Timeout):
        return Err(ErrorKind.TIMEOUT,
                   "Request timed out. The Bento API may be slow or unreachable. Please try again.", 408)
    if isinstance(exc, requests.ConnectionError):
        return Err(ErrorKind.API_ERROR, f"Could not connect to the Bento API: {exc}")
    if isinstance(exc, requests.RequestException):
        return Err(ErrorKind.API_ERROR, str(exc))
    return Err(ErrorKind.UNKNOWN, "An unexpected error occurred")


class BentoClient:
    def __init__(self, publishable_key: str, secret_key: str, site_uuid: str,
                 base_url: Optional[str] = None, timeout: Optional[float] = None):
        if not publishable_key or not secret_key or not site_uuid:
            raise ValueError("Publishable key, secret key and site UUID are all required.")
        self.base_url = (base_url or os.environ.get("BENTO_API_BASE") or BENTO_API_BASE).rstrip("/")
        self.site_uuid = site_uuid
        self.session = requests.Session()
        self.session.auth = (publishable_key, secret_key)
        self.session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"bento-cli/{__version__}",
        })
        self.timeout = timeout or float(os.environ.get("BENTO_TIMEOUT") or DEFAULT_TIMEOUT)

    @classmethod
    def from_profile(cls, profile) -> "BentoClient":
        return cls(profile.publishable_key, profile.secret_key, profile.site_uuid)

    def _request(self, method: str, path: str, *,
                 params: Optional[Dict[str, Any]] = None,
                 json_body: Optional[Dict[str, Any]] = None) -> Any:
        """Single request, no retries. Raises ``ApiError`` on any failure."""
        url = f"{self.base_url}{path}"
        query = {"site_uuid": self.site_uuid, **(params or {})}
        log.debug("Request: %s %s", method, url)
        if params:
            log.debug("Params: %s", params)
        if json_body:
            log.debug("Body: %s", json.dumps(json_body, indent=2))
        try:
            resp = self.session.request(method, url, params=query, json=json_body, timeout=self.timeout)
        except requests.RequestException as ex:
            raise ApiError(translate_exception(ex)) from ex
        log.debug("Response: %s %s", resp.status_code, url)
        result = translate_response(resp)
        if isinstance(result, Err):
            raise ApiError(result)
        return result.value

    def _command(self, command: str, email: str, query: Any = None) -> Optional[Dict[str, Any]]:
        entry: Dict[str, Any] = {"command": command, "email": email}
        if query is not None:
            entry["query"] = query
        data = self._request("POST", "/fetch/commands", json_body={"command": [entry]})
        return data.get("data") if isinstance(data, dict) else None

    # ---------- Subscribers ----------
    def get_subscriber(self, email: Optional[str] = None, uuid: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """GET /fetch/subscribers — look up a single subscriber by email or uuid."""
        if not email and not uuid:
            raise ValueError("Provide email or uuid")
        params = {"email": email} if email else {"uuid": uuid}
        data = self._request("GET", "/fetch/subscribers", params=params)
        return data.get("data") if isinstance(data, dict) else None

    def create_subscriber(self, email: str) -> Optional[Dict[str, Any]]:
        """POST /fetch/subscribers"""
        data = self._request("POST", "/fetch/subscribers", json_body={"subscriber": {"email": email}})
        return data.get("data") if isinstance(data, dict) else None

    def import_subscribers(self, subscribers: List[Dict[str, Any]]) -> Dict[str, int]:
        """
        POST /batch/subscribers — bulk import (up to 1000 per call).
        Does NOT trigger automations.
        """
        data = self._request("POST", "/batch/subscribers", json_body={"subscribers": subscribers})
        imported = data.get("results", len(subscribers)) if isinstance(data, dict) else len(subscribers)
        failed = data.get("failed", 0) if isinstance(data, dict) else 0
        return {"imported": imported, "failed": failed}

    def add_subscriber(self, email: str, fields: Optional[Dict[str, Any]] = None) -> bool:
        """Track a $subscribe event — TRIGGERS automations."""
        event = {"type": "$subscribe", "email": email, "fields": fields or {}}
        return self.import_events([event]) == 1

    def unsubscribe(self, email: str) -> Optional[Dict[str, Any]]:
        return self._command("unsubscribe", email)

    def subscribe(self, email: str) -> Optional[Dict[str, Any]]:
        return self._command("subscribe", email)

    def change_email(self, old_email: str, new_email: str) -> Optional[Dict[str, Any]]:
        return self._command("change_email", old_email, new_email)

    # ---------- Tags ----------
    def get_tags(self) -> List[Dict[str, Any]]:
        """GET /fetch/tags"""
        data = self._request("GET", "/fetch/tags")
        return (data.get("data") if isinstance(data, dict) else None) or []

    def create_tag(self, name: str) -> List[Dict[str, Any]]:
        """POST /fetch/tags"""
        if not name:
            raise ValueError("name is required")
        data = self._request("POST", "/fetch/tags", json_body={"tag": {"name": name}})
        return (data.get("data") if isinstance(data, dict) else None) or []

    def add_tag(self, email: str, tag_name: str) -> Optional[Dict[str, Any]]:
        """Add a tag without triggering automations."""
        return self._command("add_tag", email, tag_name)

    def remove_tag(self, email: str, tag_name: str) -> Optional[Dict[str, Any]]:
        return self._command("remove_tag", email, tag_name)

    # ---------- Fields ----------
    def get_fields(self) -> List[Dict[str, Any]]:
        """GET /fetch/fields"""
        data = self._request("GET", "/fetch/fields")
        return (data.get("data") if isinstance(data, dict) else None) or []

    def create_field(self, key: str) -> List[Dict[str, Any]]:
        """POST /fetch/fields"""
        if not key:
            raise ValueError("key is required")
        data = self._request("POST", "/fetch/fields", json_body={"field": {"key": key}})
        return (data.get("data") if isinstance(data, dict) else None) or []

    def add_field(self, email: str, key: str, value: Any) -> Optional[Dict[str, Any]]:
        return self._command("add_field", email, {"key": key, "value": value})

    def remove_field(self, email: str, key: str) -> Optional[Dict[str, Any]]:
        return self._command("remove_field", email, key)

    # ---------- Events ----------
    def track(self, email: str, event_type: str, details: Optional[Dict[str, Any]] = None) -> bool:
        """Track a custom event — TRIGGERS automations."""
        event: Dict[str, Any] = {"type": event_type, "email": email}
        if details is not None:
            event["details"] = details
        return self.import_events([event]) == 1

    def import_events(self, events: Iterable[Dict[str, Any]]) -> int:
        """POST /batch/events — returns the number of accepted events."""
        events = list(events)
        data = self._request("POST", "/batch/events", json_body={"events": events})
        return int(data.get("results", 0)) if isinstance(data, dict) else 0

    # ---------- Stats ----------
    def get_site_stats(self) -> Dict[str, Any]:
        """GET /stats/site"""
        data = self._request("GET", "/stats/site")
        return data if isinstance(data, dict) else {}

    # ---------- Broadcasts ----------
    def get_broadcasts(self) -> List[Dict[str, Any]]:
        """GET /fetch/broadcasts"""
        data = self._request("GET", "/fetch/broadcasts")
        return (data.get("data") if isinstance(data, dict) else None) or []

    def create_broadcast(self, broadcast: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        POST /batch/broadcasts — creates a draft; sending happens from the dashboard.
        broadcast: name, subject, content, type, from{name,email}, batch_size_per_hour,
        optional inclusive_tags / exclusive_tags.
        """
        data = self._request("POST", "/batch/broadcasts", json_body={"broadcasts": [broadcast]})
        return (data.get("data") if isinstance(data, dict) else None) or [broadcast]

    def validate_credentials(self) -> bool:
        """Lightweight stats call; True when the credentials are accepted."""
        try:
            self.get_site_stats()
        except ApiError as ex:
            log.debug("Credential validation failed: %s", ex)
            return False
        return True
