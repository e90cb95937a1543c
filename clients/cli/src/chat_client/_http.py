"""Shared urllib helpers for the request/response channel."""

from __future__ import annotations

import json
import socket
import urllib.error
import urllib.request
from typing import Any, Dict, Optional

from chat_client.errors import NetworkError, ProtocolError

DEFAULT_TIMEOUT_S = 10.0


def build_url(base_url: str, path: str) -> str:
    return f"{base_url.rstrip('/')}{path}"


def _decode_body(raw: bytes) -> Any:
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ProtocolError("response body is not valid UTF-8") from exc
    if not text.strip():
        return None
    try:
        return json.loads(text)
    except ValueError as exc:
        raise ProtocolError(f"response body is not valid JSON: {exc}") from exc


def request_json(
    url: str,
    *,
    method: str = "GET",
    headers: Optional[Dict[str, str]] = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
) -> Any:
    """Issue one request and return the decoded JSON body, or None for an empty body."""

    request_headers = {"Accept": "application/json"}
    data = None
    if method == "POST":
        request_headers["Content-Type"] = "application/json"
        data = b""
    if headers:
        request_headers.update(headers)
    request = urllib.request.Request(url, data=data, headers=request_headers, method=method)
    try:
        with urllib.request.urlopen(request, timeout=timeout_s) as response:
            raw = response.read()
    except urllib.error.HTTPError as exc:
        raise NetworkError(f"{method} {url} failed with HTTP {exc.code}", status=exc.code) from exc
    except urllib.error.URLError as exc:
        raise NetworkError(f"{method} {url} failed: {exc.reason}") from exc
    except (socket.timeout, TimeoutError) as exc:
        raise NetworkError(f"{method} {url} timed out") from exc
    except OSError as exc:
        raise NetworkError(f"{method} {url} failed: {exc}") from exc
    return _decode_body(raw)
