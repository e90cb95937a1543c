"""Identity and message records plus their JSON wire codec."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from chat_client.errors import ProtocolError


@dataclass(frozen=True)
class Identity:
    """A user as issued by the remote service; immutable for the session."""

    id: str
    username: str

    def __str__(self) -> str:
        return self.username


@dataclass(frozen=True)
class Message:
    sender: Identity
    receiver: Identity
    content: str

    def involves(self, first: Identity, second: Identity) -> bool:
        """Return True when the message was exchanged between the two identities, either way."""

        ids = {self.sender.id, self.receiver.id}
        return ids == {first.id, second.id}


def identity_from_payload(payload: Any) -> Identity:
    if not isinstance(payload, dict):
        raise ProtocolError("identity must be a JSON object")
    raw_id = payload.get("id")
    username = payload.get("username")
    # bool is an int subclass; never accept it as an id
    if isinstance(raw_id, bool) or not isinstance(raw_id, (str, int)):
        raise ProtocolError("identity id must be a string or integer")
    if isinstance(raw_id, str) and not raw_id:
        raise ProtocolError("identity id must not be empty")
    if not isinstance(username, str):
        raise ProtocolError("identity username must be a string")
    return Identity(id=str(raw_id), username=username)


def message_from_payload(payload: Any) -> Message:
    if not isinstance(payload, dict):
        raise ProtocolError("message must be a JSON object")
    content = payload.get("content")
    if not isinstance(content, str):
        raise ProtocolError("message content must be a string")
    try:
        sender = identity_from_payload(payload.get("sender"))
        receiver = identity_from_payload(payload.get("receiver"))
    except ProtocolError as exc:
        raise ProtocolError(f"invalid message participant: {exc}") from exc
    return Message(sender=sender, receiver=receiver, content=content)


def decode_message(text: str) -> Message:
    """Decode one push-channel frame into a :class:`Message`."""

    try:
        payload = json.loads(text)
    except ValueError as exc:
        raise ProtocolError(f"malformed JSON frame: {exc}") from exc
    return message_from_payload(payload)


def encode_outbound(message: Message) -> str:
    """Serialize an outgoing message; the server resolves participants by username."""

    payload = {
        "sender": message.sender.username,
        "receiver": message.receiver.username,
        "content": message.content,
    }
    return json.dumps(payload)
