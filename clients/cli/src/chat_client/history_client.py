"""Request/response calls for conversation history."""

from __future__ import annotations

import logging
import urllib.parse
from typing import List

from chat_client._http import DEFAULT_TIMEOUT_S, build_url, request_json
from chat_client.errors import ProtocolError
from chat_client.models import Message, message_from_payload

logger = logging.getLogger(__name__)


def fetch_history(
    base_url: str,
    user_id: str,
    peer_id: str,
    timeout_s: float = DEFAULT_TIMEOUT_S,
) -> List[Message]:
    """Return every message exchanged between the two ids, in server order.

    An empty history is an empty list. Entries that fail to decode are dropped
    one by one so a single bad record never hides the rest of the conversation.
    """

    query = urllib.parse.urlencode({"user1Id": user_id, "user2Id": peer_id})
    payload = request_json(build_url(base_url, f"/messages?{query}"), timeout_s=timeout_s)
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise ProtocolError("message history must be a JSON array")
    messages: List[Message] = []
    for index, entry in enumerate(payload):
        try:
            messages.append(message_from_payload(entry))
        except ProtocolError as exc:
            logger.warning("Dropping malformed history entry %d: %s", index, exc)
    return messages
