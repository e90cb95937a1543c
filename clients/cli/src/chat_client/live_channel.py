"""Single-session push channel over an aiohttp WebSocket."""

from __future__ import annotations

import asyncio
import enum
import logging
import threading
from concurrent.futures import Future
from typing import Optional, Protocol, Tuple

import aiohttp

from chat_client.errors import ChannelError, ProtocolError
from chat_client.models import Message, decode_message

logger = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CLOSE_ABNORMAL = 1006


class ChannelState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"
    FAILED = "failed"


class ChannelHandler(Protocol):
    """Capabilities a channel reports to; callbacks run on the channel thread."""

    def on_open(self) -> None: ...

    def on_message(self, message: Message) -> None: ...

    def on_close(self, code: int, reason: str, remote: bool) -> None: ...

    def on_error(self, error: ChannelError) -> None: ...


class LiveChannel:
    """One persistent connection: connect once, then close or fail for good.

    Event order seen by the handler: ``on_open``, any number of
    ``on_message``, optionally ``on_error``, then exactly one ``on_close``.
    Nothing is delivered after ``on_close``. There is no reconnect; a new
    session needs a new instance.
    """

    def __init__(
        self,
        url: str,
        handler: ChannelHandler,
        *,
        connect_timeout_s: float = 10.0,
        name: str = "live-channel",
    ) -> None:
        self.url = url
        self._handler = handler
        self._connect_timeout_s = connect_timeout_s
        self._name = name
        self._lock = threading.Lock()
        self._state = ChannelState.DISCONNECTED
        self._failure_reason: Optional[str] = None
        self._local_close: Optional[Tuple[int, str]] = None
        self._close_emitted = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> ChannelState:
        with self._lock:
            return self._state

    @property
    def failure_reason(self) -> Optional[str]:
        with self._lock:
            return self._failure_reason

    def is_open(self) -> bool:
        with self._lock:
            return self._state is ChannelState.OPEN and self._local_close is None

    def connect(self) -> None:
        with self._lock:
            if self._state is not ChannelState.DISCONNECTED:
                raise ChannelError(f"connect() called in state {self._state.value}; create a new channel instead")
            self._state = ChannelState.CONNECTING
        logger.info("Connecting push channel to %s", self.url)
        thread = threading.Thread(target=self._runner, name=self._name, daemon=True)
        self._thread = thread
        thread.start()

    def send(self, payload: str) -> bool:
        """Queue one text frame; returns False when the channel is not open."""

        with self._lock:
            if self._state is not ChannelState.OPEN or self._local_close is not None:
                return False
            ws, loop = self._ws, self._loop
        if ws is None or loop is None:
            return False
        try:
            future = asyncio.run_coroutine_threadsafe(ws.send_str(payload), loop)
        except RuntimeError:
            logger.warning("Push channel loop is gone; frame not sent")
            return False
        future.add_done_callback(self._log_send_result)
        return True

    def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        with self._lock:
            if self._state not in (ChannelState.CONNECTING, ChannelState.OPEN):
                return
            if self._local_close is not None:
                return
            self._local_close = (code, reason)
            ws, loop = self._ws, self._loop
        logger.info("Closing push channel (code=%d)", code)
        if ws is not None and loop is not None:
            try:
                asyncio.run_coroutine_threadsafe(ws.close(code=code, message=reason.encode("utf-8")), loop)
            except RuntimeError:
                logger.debug("Push channel loop already stopped during close")

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    def _log_send_result(self, future: Future) -> None:
        if future.cancelled():
            logger.warning("Push channel send was cancelled")
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Push channel send failed: %s", exc)

    def _runner(self) -> None:
        asyncio.run(self._run())

    async def _run(self) -> None:
        self._loop = asyncio.get_running_loop()
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self._connect_timeout_s)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                try:
                    ws = await asyncio.wait_for(session.ws_connect(self.url), timeout=self._connect_timeout_s)
                except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                    self._fail(f"handshake failed: {str(exc) or type(exc).__name__}")
                    return
                async with ws:
                    if await self._mark_open(ws):
                        await self._receive_loop(ws)
        except Exception as exc:  # pragma: no cover - transport tolerance
            logger.exception("Push channel crashed")
            self._fail(f"transport error: {exc}")
        finally:
            with self._lock:
                self._ws = None
            if not self._close_emitted:
                self._finish(CLOSE_ABNORMAL, "connection lost", remote=True)

    async def _mark_open(self, ws: aiohttp.ClientWebSocketResponse) -> bool:
        with self._lock:
            pending_close = self._local_close
            if pending_close is None:
                self._ws = ws
                self._state = ChannelState.OPEN
        if pending_close is not None:
            code, reason = pending_close
            await ws.close(code=code, message=reason.encode("utf-8"))
            self._finish(code, reason, remote=False)
            return False
        logger.info("Push channel open")
        self._call("on_open")
        return True

    async def _receive_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while True:
            msg = await ws.receive()
            if msg.type == aiohttp.WSMsgType.TEXT:
                self._deliver(msg.data)
            elif msg.type == aiohttp.WSMsgType.BINARY:
                try:
                    text = msg.data.decode("utf-8")
                except UnicodeDecodeError:
                    logger.warning("Dropping binary frame that is not UTF-8")
                    continue
                self._deliver(text)
            elif msg.type == aiohttp.WSMsgType.CLOSE:
                reason = msg.extra or ""
                self._finish(int(msg.data), str(reason), remote=True)
                return
            elif msg.type in (aiohttp.WSMsgType.CLOSING, aiohttp.WSMsgType.CLOSED):
                with self._lock:
                    pending_close = self._local_close
                if pending_close is not None:
                    code, reason = pending_close
                    self._finish(code, reason, remote=False)
                else:
                    self._finish(ws.close_code or CLOSE_ABNORMAL, "connection closed", remote=True)
                return
            elif msg.type == aiohttp.WSMsgType.ERROR:
                self._fail(f"transport error: {msg.data or ws.exception()}")
                return

    def _deliver(self, text: str) -> None:
        if self._close_emitted:
            return
        logger.debug("Push frame received: %s", text)
        try:
            message = decode_message(text)
        except ProtocolError as exc:
            logger.warning("Dropping malformed push frame: %s", exc)
            return
        self._call("on_message", message)

    def _fail(self, reason: str) -> None:
        if self._close_emitted:
            return
        with self._lock:
            self._failure_reason = reason
        logger.warning("Push channel error: %s", reason)
        self._call("on_error", ChannelError(reason))
        self._finish(CLOSE_ABNORMAL, reason, remote=False)

    def _finish(self, code: int, reason: str, *, remote: bool) -> None:
        if self._close_emitted:
            return
        self._close_emitted = True
        with self._lock:
            self._state = ChannelState.FAILED if self._failure_reason is not None else ChannelState.CLOSED
        logger.info("Push channel closed with code %d (remote=%s) %s", code, remote, reason)
        self._call("on_close", code, reason, remote)

    def _call(self, name: str, *args: object) -> None:
        callback = getattr(self._handler, name)
        try:
            callback(*args)
        except Exception:
            logger.exception("Push channel handler %s failed", name)
