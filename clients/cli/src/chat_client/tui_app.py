"""Curses window for the chat client."""

from __future__ import annotations

import curses
import logging
from typing import List, Optional, Sequence

from chat_client.config import load_config
from chat_client.log import setup_logging
from chat_client.main_context import MainContext
from chat_client.session import SessionController
from chat_client.tui_model import FOCUS_COMPOSE, FOCUS_LOGIN, FOCUS_ROSTER, ChatViewModel, RenderState

logger = logging.getLogger(__name__)

TICK_MS = 100


def _normalize_key(key: int) -> tuple[str, str | None]:
    if key in (curses.KEY_BTAB, 353):  # shift-tab variations
        return "SHIFT_TAB", None
    if key in (getattr(curses, "KEY_TAB", 9), 9):
        return "TAB", None
    if key == curses.KEY_UP:
        return "UP", None
    if key == curses.KEY_DOWN:
        return "DOWN", None
    if key in (curses.KEY_ENTER, 10, 13):
        return "ENTER", None
    if key in (curses.KEY_BACKSPACE, 127, 8):
        return "BACKSPACE", None
    if key == 12:  # ctrl-l
        return "CTRL_L", None
    if key == 18:  # ctrl-r
        return "CTRL_R", None
    if key == 27:
        return "ESC", None
    if key in (ord("q"), ord("Q")):
        return "q", "q" if key == ord("q") else "Q"
    if 32 <= key <= 126:
        return "CHAR", chr(key)
    return "UNKNOWN", None


def _render_text(window: curses.window, y: int, x: int, text: str, attr: int = 0) -> None:
    max_y, max_x = window.getmaxyx()
    if 0 <= y < max_y and x < max_x - 1:
        window.addnstr(y, x, text, max_x - x - 1, attr)


def _visible_lines(lines: List[str], height: int, scroll: int) -> List[str]:
    if height <= 0:
        return []
    end = max(0, len(lines) - scroll)
    start = max(0, end - height)
    return lines[start:end]


def draw_screen(stdscr: curses.window, render: RenderState) -> None:
    stdscr.erase()
    max_y, max_x = stdscr.getmaxyx()
    left_width = min(30, max(16, max_x // 4))
    right_start = left_width + 1
    header_offset = 3
    compose_row = max_y - 2
    transcript_height = max(1, compose_row - header_offset - 1)

    _render_text(stdscr, 0, 1, "Chat | Tab: focus | Enter: join/select/send | Ctrl-R: refresh users | Ctrl-L: log in again | q: quit")
    login_attr = curses.A_REVERSE if render.focus_area == FOCUS_LOGIN else 0
    if render.user_label and render.focus_area != FOCUS_LOGIN:
        _render_text(stdscr, 1, 1, f"user: {render.user_label}  live: {render.channel_label}")
    else:
        _render_text(stdscr, 1, 1, f"Username: {render.username_text}", login_attr)
    stdscr.hline(2, 0, curses.ACS_HLINE, max_x)
    stdscr.vline(header_offset, left_width, curses.ACS_VLINE, max(1, compose_row - header_offset))

    _render_text(stdscr, header_offset, 1, "Users")
    for idx, username in enumerate(render.roster):
        y = header_offset + 1 + idx
        if y >= compose_row - 1:
            break
        attr = curses.A_REVERSE if render.focus_area == FOCUS_ROSTER and idx == render.selected_roster else 0
        marker = "*" if username == render.active_peer else " "
        _render_text(stdscr, y, 1, f"{marker}{username}"[: left_width - 2], attr)

    title = f"Conversation with {render.active_peer}" if render.active_peer else "No conversation selected"
    _render_text(stdscr, header_offset, right_start + 1, title)
    visible = _visible_lines(render.transcript, transcript_height - 1, render.transcript_scroll)
    for idx, line in enumerate(visible):
        _render_text(stdscr, header_offset + 1 + idx, right_start + 1, line)

    compose_attr = curses.A_REVERSE if render.focus_area == FOCUS_COMPOSE else 0
    _render_text(stdscr, compose_row, 1, f"> {render.compose_text}", compose_attr)
    _render_text(stdscr, max_y - 1, 1, render.status_line)
    stdscr.refresh()


def run(stdscr: curses.window, model: ChatViewModel, main_context: MainContext) -> None:
    try:
        curses.curs_set(0)
    except curses.error:
        pass
    stdscr.keypad(True)
    stdscr.timeout(TICK_MS)
    while True:
        main_context.drain()
        draw_screen(stdscr, model.render())
        key = stdscr.getch()
        if key == -1:
            continue
        name, char = _normalize_key(key)
        if name == "q" and model.focus_area in (FOCUS_LOGIN, FOCUS_COMPOSE):
            name = "CHAR"
        if model.handle_key(name, char) == "quit":
            return


def main(argv: Optional[Sequence[str]] = None) -> int:
    config = load_config(argv)
    log_path = setup_logging(config.log_level, config.log_file)
    main_context = MainContext()
    controller = SessionController(config, main_context)
    model = ChatViewModel(controller)
    logger.info("Starting chat client against %s (push %s)", config.base_url, config.push_url)
    try:
        curses.wrapper(run, model, main_context)
    except KeyboardInterrupt:
        pass
    finally:
        controller.shutdown()
    print(f"Session ended. Logs: {log_path}")
    return 0


if __name__ == "__main__":  # pragma: no cover - convenience execution
    raise SystemExit(main())
