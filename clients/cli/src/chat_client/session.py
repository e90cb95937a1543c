"""Session orchestration: login, roster, peer selection, send and live delivery."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

from chat_client import directory_client, history_client
from chat_client.config import ClientConfig
from chat_client.conversation_store import ConversationStore, Listener
from chat_client.errors import AuthenticationError, ChannelError, ChatClientError, ValidationError
from chat_client.live_channel import ChannelHandler, ChannelState, LiveChannel
from chat_client.main_context import MainContext
from chat_client.models import Identity, Message, encode_outbound

logger = logging.getLogger(__name__)

EVENT_LOGGED_IN = "logged_in"
EVENT_LOGIN_FAILED = "login_failed"
EVENT_CHANNEL = "channel"
EVENT_ERROR = "error"

Spawn = Callable[[str, Callable[[], None]], None]
ChannelFactory = Callable[..., LiveChannel]


def spawn_thread(name: str, target: Callable[[], None]) -> None:
    thread = threading.Thread(target=target, name=name, daemon=True)
    thread.start()


@dataclass
class SessionState:
    """Everything one login owns. Replaced wholesale by the next login."""

    config: ClientConfig
    generation: int
    identity: Identity
    store: ConversationStore
    channel: Optional[LiveChannel] = None


class _SessionChannelHandler:
    """Forwards channel callbacks from the channel thread to the main context."""

    def __init__(self, controller: "SessionController", generation: int) -> None:
        self._controller = controller
        self._generation = generation

    def on_open(self) -> None:
        self._controller.main_context.post(self._controller._channel_opened, self._generation)

    def on_message(self, message: Message) -> None:
        self._controller.main_context.post(self._controller._deliver_incoming, self._generation, message)

    def on_close(self, code: int, reason: str, remote: bool) -> None:
        self._controller.main_context.post(self._controller._channel_closed, self._generation, code, reason, remote)

    def on_error(self, error: ChannelError) -> None:
        self._controller.main_context.post(self._controller._channel_failed, self._generation, error)


class SessionController:
    """Orchestrates the directory, history and push channel for one user.

    Public methods are called from the main context. Network calls run on
    worker threads and post their continuations back through
    :class:`MainContext`; each continuation carries the login generation (and,
    for history, the selection ticket) so results of superseded requests are
    discarded instead of overwriting newer state.
    """

    def __init__(
        self,
        config: ClientConfig,
        main_context: MainContext,
        *,
        directory: Any = directory_client,
        history: Any = history_client,
        channel_factory: ChannelFactory = LiveChannel,
        spawn: Spawn = spawn_thread,
    ) -> None:
        self.config = config
        self.main_context = main_context
        self.state: Optional[SessionState] = None
        self._directory = directory
        self._history = history
        self._channel_factory = channel_factory
        self._spawn = spawn
        self._generation = 0
        self._listeners: List[Listener] = []

    def add_listener(self, listener: Listener) -> None:
        """Receive session events plus the events of every session's store."""

        self._listeners.append(listener)

    def _notify(self, event: str, payload: object) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Session listener failed on %s event", event)

    @property
    def store(self) -> Optional[ConversationStore]:
        return self.state.store if self.state is not None else None

    @property
    def channel_state(self) -> ChannelState:
        if self.state is None or self.state.channel is None:
            return ChannelState.DISCONNECTED
        return self.state.channel.state

    def login(self, username: str) -> None:
        self._end_session()
        self._generation += 1
        generation = self._generation
        username = username.strip()
        if not username:
            self._notify(EVENT_LOGIN_FAILED, AuthenticationError("a username is required"))
            return
        config = self.config

        def _work() -> None:
            try:
                identity = self._directory.create_or_fetch_identity(
                    config.base_url, username, timeout_s=config.request_timeout_s
                )
            except Exception as exc:
                self.main_context.post(self._login_failed, generation, username, exc)
                return
            self.main_context.post(self._login_succeeded, generation, identity)

        logger.info("Logging in as %s", username)
        self._spawn(f"login-{username}", _work)

    def _login_failed(self, generation: int, username: str, exc: Exception) -> None:
        if generation != self._generation:
            return
        if isinstance(exc, ChatClientError):
            logger.warning("Login as %s failed: %s", username, exc)
        else:
            logger.error("Login as %s failed unexpectedly", username, exc_info=exc)
        error = AuthenticationError(f"login as {username!r} failed: {exc}")
        error.__cause__ = exc
        self._notify(EVENT_LOGIN_FAILED, error)

    def _login_succeeded(self, generation: int, identity: Identity) -> None:
        if generation != self._generation:
            logger.info("Ignoring identity %s from a superseded login", identity.username)
            return
        store = ConversationStore()
        store.add_listener(self._notify)
        state = SessionState(config=self.config, generation=generation, identity=identity, store=store)
        self.state = state
        store.set_logged_identity(identity)
        logger.info("Logged in as %s (id=%s)", identity.username, identity.id)
        self._notify(EVENT_LOGGED_IN, identity)
        # channel and roster are independent; either may fail without the other
        self._open_channel(state)
        self.refresh_roster()

    def _open_channel(self, state: SessionState) -> None:
        handler: ChannelHandler = _SessionChannelHandler(self, state.generation)
        channel = self._channel_factory(
            state.config.push_url,
            handler,
            connect_timeout_s=state.config.connect_timeout_s,
        )
        state.channel = channel
        try:
            channel.connect()
        except ChannelError as exc:
            logger.warning("Push channel could not start: %s", exc)
            self._notify(EVENT_ERROR, exc)
            return
        self._notify(EVENT_CHANNEL, channel.state)

    def refresh_roster(self) -> None:
        state = self.state
        if state is None:
            return
        generation = state.generation
        config = state.config

        def _work() -> None:
            try:
                identities = self._directory.list_identities(config.base_url, timeout_s=config.request_timeout_s)
            except Exception as exc:
                self.main_context.post(self._roster_failed, generation, exc)
                return
            self.main_context.post(self._roster_loaded, generation, identities)

        self._spawn("roster", _work)

    def _roster_loaded(self, generation: int, identities: List[Identity]) -> None:
        if self.state is None or generation != self.state.generation:
            return
        self.state.store.set_roster(identities)
        logger.info("Roster loaded with %d peers", len(self.state.store.roster))

    def _roster_failed(self, generation: int, exc: Exception) -> None:
        if self.state is None or generation != self.state.generation:
            return
        logger.warning("Error fetching users: %s", exc)
        self._notify(EVENT_ERROR, exc)

    def select_peer(self, peer: Identity) -> Optional[int]:
        """Switch the active conversation to ``peer`` and load its history.

        Returns the selection ticket, or None without a session.
        """

        state = self.state
        if state is None:
            return None
        ticket = state.store.select_peer(peer)
        generation = state.generation
        config = state.config
        user_id = state.identity.id

        def _work() -> None:
            try:
                messages = self._history.fetch_history(
                    config.base_url, user_id, peer.id, timeout_s=config.request_timeout_s
                )
            except Exception as exc:
                self.main_context.post(self._history_failed, generation, ticket, peer, exc)
                return
            self.main_context.post(self._history_loaded, generation, ticket, messages)

        self._spawn(f"history-{peer.id}", _work)
        return ticket

    def _history_loaded(self, generation: int, ticket: int, messages: List[Message]) -> None:
        if self.state is None or generation != self.state.generation:
            return
        self.state.store.set_history(messages, selection=ticket)

    def _history_failed(self, generation: int, ticket: int, peer: Identity, exc: Exception) -> None:
        if self.state is None or generation != self.state.generation:
            return
        logger.warning("Error fetching messages with %s: %s", peer.username, exc)
        if self.state.store.set_history([], selection=ticket):
            self._notify(EVENT_ERROR, exc)

    def _validate_outgoing(self, text: str) -> Tuple[Message, LiveChannel]:
        state = self.state
        if state is None:
            raise ValidationError("not logged in")
        if not text:
            raise ValidationError("message is empty")
        peer = state.store.selected_peer
        if peer is None:
            raise ValidationError("no recipient selected")
        if state.channel is None or not state.channel.is_open():
            raise ValidationError("push channel is not open")
        return Message(sender=state.identity, receiver=peer, content=text), state.channel

    def send_message(self, content: str) -> bool:
        """Send trimmed ``content`` to the selected peer; returns False when rejected.

        The sent message is not appended locally: it shows up once the server
        echoes it over the push channel.
        """

        try:
            message, channel = self._validate_outgoing(content.strip())
        except ValidationError as exc:
            logger.debug("Send rejected: %s", exc)
            return False
        frame = encode_outbound(message)
        if not channel.send(frame):
            logger.debug("Send rejected: push channel closed before the frame was queued")
            return False
        logger.info("Sent message: %s", frame)
        return True

    def _channel_opened(self, generation: int) -> None:
        if self.state is None or generation != self.state.generation:
            return
        self._notify(EVENT_CHANNEL, ChannelState.OPEN)

    def _deliver_incoming(self, generation: int, message: Message) -> None:
        if self.state is None or generation != self.state.generation:
            return
        store = self.state.store
        if self.config.filter_incoming_by_peer and not store.belongs_to_active(message):
            logger.info(
                "Push from %s to %s is outside the active conversation; not displayed",
                message.sender.username,
                message.receiver.username,
            )
            return
        store.append_incoming(message)

    def _channel_closed(self, generation: int, code: int, reason: str, remote: bool) -> None:
        if self.state is None or generation != self.state.generation:
            return
        logger.info("WebSocket connection closed with exit code %d additional info: %s", code, reason)
        channel = self.state.channel
        self._notify(EVENT_CHANNEL, channel.state if channel is not None else ChannelState.CLOSED)

    def _channel_failed(self, generation: int, error: ChannelError) -> None:
        if self.state is None or generation != self.state.generation:
            return
        self._notify(EVENT_ERROR, error)

    def _end_session(self) -> None:
        state = self.state
        self.state = None
        if state is not None and state.channel is not None:
            state.channel.close()

    def logout(self) -> None:
        self._generation += 1
        self._end_session()

    def shutdown(self, timeout: float = 1.0) -> None:
        channel = self.state.channel if self.state is not None else None
        self.logout()
        if channel is not None:
            channel.join(timeout=timeout)
