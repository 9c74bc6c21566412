"""HTTP transport to the remote sync authority."""

from __future__ import annotations

import http.client
import json
import logging
import os
from typing import Any, Mapping, Protocol
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from packetsync.errors import ConnectivityError, MalformedResponseError
from packetsync.models import SyncResponse

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINTS = {"packet_sync": "/v1/packet-sync"}
_UNAVAILABLE_STATUSES = {502, 503, 504}


class SyncTransport(Protocol):
    def post(self, endpoint_name: str, body: str, trigger_point: str) -> dict[str, Any]:
        ...


def _decode_json_object(raw: bytes, context: str) -> dict[str, Any]:
    text = raw.decode("utf-8", errors="replace")
    if not text.strip():
        raise MalformedResponseError(f"{context}: empty response body")
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"{context}: invalid JSON ({exc})") from exc
    if not isinstance(parsed, dict):
        raise MalformedResponseError(f"{context}: response is not a JSON object")
    return parsed


class HttpSyncTransport:
    def __init__(
        self,
        base_url: str,
        auth_token: str | None = None,
        timeout_seconds: float = 30.0,
        endpoints: Mapping[str, str] | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.auth_token = auth_token or os.getenv("PACKETSYNC_AUTH_TOKEN")
        self.timeout_seconds = max(0.01, timeout_seconds)
        self.endpoints = dict(DEFAULT_ENDPOINTS)
        if endpoints:
            self.endpoints.update(endpoints)

    def _url_for(self, endpoint_name: str) -> str:
        path = self.endpoints.get(endpoint_name, f"/{endpoint_name.lstrip('/')}")
        return f"{self.base_url}{path}"

    def post(self, endpoint_name: str, body: str, trigger_point: str) -> dict[str, Any]:
        url = self._url_for(endpoint_name)
        headers = {
            "Content-Type": "application/json",
            "X-Trigger-Point": trigger_point,
        }
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        request = Request(url=url, data=body.encode("utf-8"), method="POST", headers=headers)
        logger.debug("POST %s (trigger=%s, %d bytes)", url, trigger_point, len(body))
        try:
            with urlopen(request, timeout=self.timeout_seconds) as response:
                return _decode_json_object(response.read(), f"POST {endpoint_name}")
        except HTTPError as exc:
            if exc.code in _UNAVAILABLE_STATUSES:
                raise ConnectivityError(f"{url} unavailable (HTTP {exc.code})") from exc
            try:
                raw = exc.read()
            except (http.client.HTTPException, OSError) as read_exc:
                raise ConnectivityError(f"{url} dropped the error reply: {read_exc}") from read_exc
            return _decode_json_object(raw, f"POST {endpoint_name} HTTP {exc.code}")
        except (URLError, TimeoutError, ConnectionError, http.client.HTTPException) as exc:
            raise ConnectivityError(f"{url} unreachable: {exc}") from exc


def parse_sync_response(raw: Mapping[str, Any]) -> SyncResponse:
    """Turn the authority's reply into per-item statuses or a rejection."""
    entries = raw.get("response")
    if entries is not None:
        if not isinstance(entries, list):
            raise MalformedResponseError("'response' must be a list")
        statuses: dict[str, str] = {}
        for entry in entries:
            if not isinstance(entry, dict) or entry.get("id") is None:
                raise MalformedResponseError(f"invalid response entry: {entry!r}")
            status = entry.get("status")
            statuses[str(entry["id"])] = str(status) if status is not None else ""
        return SyncResponse(statuses=statuses)
    errors = raw.get("errors")
    if errors is not None:
        return SyncResponse(errors=errors)
    raise MalformedResponseError("response carries neither 'response' nor 'errors'")
