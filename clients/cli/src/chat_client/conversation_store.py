"""In-memory source of truth for the displayed conversation."""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Optional

from chat_client.models import Identity, Message

logger = logging.getLogger(__name__)

EVENT_IDENTITY = "identity"
EVENT_ROSTER = "roster"
EVENT_CONVERSATION = "conversation"
EVENT_MESSAGE = "message"

Listener = Callable[[str, object], None]


class ConversationStore:
    """Identity, roster, selection and the active message timeline.

    Not thread-safe: every method must be called from the main context.
    Network completions reach the store only through
    :meth:`chat_client.main_context.MainContext.post`.
    """

    def __init__(self) -> None:
        self.logged_identity: Optional[Identity] = None
        self.roster: List[Identity] = []
        self.selected_peer: Optional[Identity] = None
        self.active_messages: List[Message] = []
        self._selection = 0
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, event: str, payload: object) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Store listener failed on %s event", event)

    @property
    def selection(self) -> int:
        return self._selection

    def set_logged_identity(self, identity: Identity) -> None:
        if self.logged_identity is not None:
            raise RuntimeError("logged identity is already set for this session")
        self.logged_identity = identity
        self._notify(EVENT_IDENTITY, identity)

    def set_roster(self, identities: Iterable[Identity]) -> None:
        own_id = self.logged_identity.id if self.logged_identity is not None else None
        self.roster = [identity for identity in identities if identity.id != own_id]
        self._notify(EVENT_ROSTER, list(self.roster))

    def select_peer(self, peer: Identity) -> int:
        """Make ``peer`` the active conversation and return its selection ticket.

        The previous conversation is cleared right away so the timeline never
        shows one peer's messages under another peer's selection.
        """

        self._selection += 1
        self.selected_peer = peer
        self.active_messages = []
        self._notify(EVENT_CONVERSATION, [])
        return self._selection

    def set_history(self, messages: Iterable[Message], selection: Optional[int] = None) -> bool:
        """Replace the active timeline; returns False when ``selection`` is stale."""

        if selection is not None and selection != self._selection:
            logger.debug("Discarding history for stale selection %d (current %d)", selection, self._selection)
            return False
        self.active_messages = list(messages)
        self._notify(EVENT_CONVERSATION, list(self.active_messages))
        return True

    def append_incoming(self, message: Message) -> None:
        # no dedupe: pushes arrive strictly after the history fetch completed
        self.active_messages.append(message)
        self._notify(EVENT_MESSAGE, message)

    def belongs_to_active(self, message: Message) -> bool:
        if self.logged_identity is None or self.selected_peer is None:
            return False
        return message.involves(self.logged_identity, self.selected_peer)
