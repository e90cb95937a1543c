"""Request/response calls against the user directory."""

from __future__ import annotations

import logging
import urllib.parse
from typing import List

from chat_client._http import DEFAULT_TIMEOUT_S, build_url, request_json
from chat_client.errors import ProtocolError
from chat_client.models import Identity, identity_from_payload

logger = logging.getLogger(__name__)


def create_or_fetch_identity(base_url: str, username: str, timeout_s: float = DEFAULT_TIMEOUT_S) -> Identity:
    """Create ``username`` on the server, or fetch it when it already exists."""

    path = "/users/" + urllib.parse.quote(username, safe="")
    payload = request_json(build_url(base_url, path), method="POST", timeout_s=timeout_s)
    return identity_from_payload(payload)


def list_identities(base_url: str, timeout_s: float = DEFAULT_TIMEOUT_S) -> List[Identity]:
    payload = request_json(build_url(base_url, "/users"), timeout_s=timeout_s)
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise ProtocolError("user directory must be a JSON array")
    identities: List[Identity] = []
    for index, entry in enumerate(payload):
        try:
            identities.append(identity_from_payload(entry))
        except ProtocolError as exc:
            logger.warning("Dropping malformed directory entry %d: %s", index, exc)
    return identities
