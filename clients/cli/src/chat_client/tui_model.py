"""Pure-Python view model for the curses chat window."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from chat_client import conversation_store, session
from chat_client.live_channel import ChannelState
from chat_client.models import Identity, Message
from chat_client.session import SessionController

FOCUS_LOGIN = "login"
FOCUS_ROSTER = "roster"
FOCUS_TRANSCRIPT = "transcript"
FOCUS_COMPOSE = "compose"
SESSION_FOCUS_ORDER = [FOCUS_ROSTER, FOCUS_TRANSCRIPT, FOCUS_COMPOSE]


def format_message(message: Message) -> str:
    return f"{message.sender.username}: {message.content}"


@dataclass
class RenderState:
    focus_area: str
    username_text: str
    compose_text: str
    user_label: str
    channel_label: str
    roster: List[str]
    selected_roster: int
    active_peer: str
    transcript: List[str]
    transcript_scroll: int
    status_line: str


class ChatViewModel:
    """Key handling and display state; all network work goes through the controller."""

    def __init__(self, controller: SessionController) -> None:
        self.controller = controller
        self.focus_area = FOCUS_LOGIN
        self.username_text = ""
        self.compose_text = ""
        self.selected_roster = 0
        self.transcript_scroll = 0
        self.status_line = "Enter a username and press Enter to join."
        self.channel_label = ChannelState.DISCONNECTED.value
        controller.add_listener(self.on_event)

    def on_event(self, event: str, payload: object) -> None:
        if event == session.EVENT_LOGGED_IN and isinstance(payload, Identity):
            self.focus_area = FOCUS_ROSTER
            self.selected_roster = 0
            self.status_line = f"Logged in as {payload.username}."
        elif event == session.EVENT_LOGIN_FAILED:
            self.focus_area = FOCUS_LOGIN
            self.status_line = f"Login failed: {payload}"
        elif event == session.EVENT_CHANNEL and isinstance(payload, ChannelState):
            self.channel_label = payload.value
            if payload is ChannelState.FAILED:
                self.status_line = "Live delivery failed; log in again to reconnect."
            elif payload is ChannelState.CLOSED:
                self.status_line = "Live delivery closed; log in again to reconnect."
        elif event == session.EVENT_ERROR:
            self.status_line = f"Error: {payload}"
        elif event == conversation_store.EVENT_ROSTER:
            roster = self._roster()
            self.selected_roster = max(0, min(self.selected_roster, len(roster) - 1))
        elif event in (conversation_store.EVENT_CONVERSATION, conversation_store.EVENT_MESSAGE):
            self.transcript_scroll = 0

    def _roster(self) -> List[Identity]:
        store = self.controller.store
        return list(store.roster) if store is not None else []

    def _cycle_focus(self, delta: int) -> None:
        if self.controller.state is None:
            self.focus_area = FOCUS_LOGIN
            return
        if self.focus_area not in SESSION_FOCUS_ORDER:
            self.focus_area = SESSION_FOCUS_ORDER[0]
            return
        idx = SESSION_FOCUS_ORDER.index(self.focus_area)
        self.focus_area = SESSION_FOCUS_ORDER[(idx + delta) % len(SESSION_FOCUS_ORDER)]

    def handle_key(self, key: str, char: Optional[str] = None) -> Optional[str]:
        """Apply one normalized key; returns "quit" when the window should close."""

        if key == "TAB":
            self._cycle_focus(1)
            return None
        if key == "SHIFT_TAB":
            self._cycle_focus(-1)
            return None
        if key == "CTRL_R":
            self.controller.refresh_roster()
            return None
        if key == "CTRL_L":
            self.focus_area = FOCUS_LOGIN
            self.username_text = ""
            self.status_line = "Enter a username to start a new session."
            return None
        if self.focus_area == FOCUS_LOGIN:
            return self._handle_login_key(key, char)
        if self.focus_area == FOCUS_ROSTER:
            return self._handle_roster_key(key, char)
        if self.focus_area == FOCUS_TRANSCRIPT:
            return self._handle_transcript_key(key, char)
        return self._handle_compose_key(key, char)

    def _handle_login_key(self, key: str, char: Optional[str]) -> Optional[str]:
        if key == "CHAR" and char:
            self.username_text += char
        elif key == "BACKSPACE":
            self.username_text = self.username_text[:-1]
        elif key == "ESC":
            self.username_text = ""
        elif key == "ENTER":
            self.status_line = f"Joining as {self.username_text.strip()}..."
            self.controller.login(self.username_text)
        return None

    def _handle_roster_key(self, key: str, char: Optional[str]) -> Optional[str]:
        roster = self._roster()
        if key == "UP":
            self.selected_roster = max(0, self.selected_roster - 1)
        elif key == "DOWN":
            self.selected_roster = max(0, min(self.selected_roster + 1, len(roster) - 1))
        elif key == "ENTER" and roster:
            peer = roster[self.selected_roster]
            self.controller.select_peer(peer)
            self.status_line = f"Chatting with {peer.username}."
            self.focus_area = FOCUS_COMPOSE
        elif key == "q":
            return "quit"
        return None

    def _handle_transcript_key(self, key: str, char: Optional[str]) -> Optional[str]:
        if key == "UP":
            self.transcript_scroll += 1
        elif key == "DOWN":
            self.transcript_scroll = max(0, self.transcript_scroll - 1)
        elif key == "q":
            return "quit"
        return None

    def _handle_compose_key(self, key: str, char: Optional[str]) -> Optional[str]:
        if key == "CHAR" and char:
            self.compose_text += char
        elif key == "BACKSPACE":
            self.compose_text = self.compose_text[:-1]
        elif key == "ESC":
            self.compose_text = ""
        elif key == "ENTER":
            # the field keeps its text when the send is rejected
            if self.controller.send_message(self.compose_text):
                self.compose_text = ""
        return None

    def render(self) -> RenderState:
        state = self.controller.state
        store = self.controller.store
        roster = self._roster()
        peer = store.selected_peer if store is not None else None
        messages = store.active_messages if store is not None else []
        return RenderState(
            focus_area=self.focus_area,
            username_text=self.username_text,
            compose_text=self.compose_text,
            user_label=state.identity.username if state is not None else "",
            channel_label=self.channel_label,
            roster=[identity.username for identity in roster],
            selected_roster=self.selected_roster,
            active_peer=peer.username if peer is not None else "",
            transcript=[format_message(message) for message in messages],
            transcript_scroll=self.transcript_scroll,
            status_line=self.status_line,
        )
