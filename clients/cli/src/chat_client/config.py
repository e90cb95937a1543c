"""Client settings: defaults, optional JSON settings file, command-line overrides."""

from __future__ import annotations

import argparse
import json
import logging
import urllib.parse
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

DEFAULT_BASE_URL = "http://localhost:8080"
DEFAULT_CHAT_PATH = "/chat"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientConfig:
    base_url: str = DEFAULT_BASE_URL
    ws_url: str = ""
    request_timeout_s: float = 10.0
    connect_timeout_s: float = 10.0
    filter_incoming_by_peer: bool = True
    log_level: str = "INFO"
    log_file: str = ""

    @property
    def push_url(self) -> str:
        return self.ws_url or derive_ws_url(self.base_url)


def derive_ws_url(base_url: str) -> str:
    """Map ``http(s)://host[:port][/prefix]`` onto ``ws(s)://host[:port][/prefix]/chat``."""

    parts = urllib.parse.urlsplit(base_url)
    scheme = "wss" if parts.scheme == "https" else "ws"
    path = parts.path.rstrip("/") + DEFAULT_CHAT_PATH
    return urllib.parse.urlunsplit((scheme, parts.netloc, path, "", ""))


def load_settings(path: Path | str) -> Dict[str, Any]:
    """Load a JSON settings object; a missing or unreadable file yields no settings."""

    try:
        data = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("Ignoring unreadable settings file %s: %s", path, exc)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring settings file %s: expected a JSON object", path)
        return {}
    return data


def _coerce_float(value: Any, fallback: float) -> float:
    if isinstance(value, bool):
        return fallback
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    return parsed if parsed > 0 else fallback


def config_from_settings(settings: Dict[str, Any], base: Optional[ClientConfig] = None) -> ClientConfig:
    config = base or ClientConfig()
    base_url = settings.get("base_url")
    ws_url = settings.get("ws_url")
    log_level = str(settings.get("log_level", config.log_level)).upper()
    log_file = settings.get("log_file")
    filter_incoming = settings.get("filter_incoming_by_peer")
    return replace(
        config,
        base_url=base_url.strip() if isinstance(base_url, str) and base_url.strip() else config.base_url,
        ws_url=ws_url.strip() if isinstance(ws_url, str) else config.ws_url,
        request_timeout_s=_coerce_float(settings.get("request_timeout_s"), config.request_timeout_s),
        connect_timeout_s=_coerce_float(settings.get("connect_timeout_s"), config.connect_timeout_s),
        filter_incoming_by_peer=(
            filter_incoming if isinstance(filter_incoming, bool) else config.filter_incoming_by_peer
        ),
        log_level=log_level if log_level in LOG_LEVELS else config.log_level,
        log_file=log_file if isinstance(log_file, str) else config.log_file,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chat-client", description="Terminal chat client")
    parser.add_argument("--config", help="path to a JSON settings file")
    parser.add_argument("--base-url", help=f"HTTP base URL of the chat service (default {DEFAULT_BASE_URL})")
    parser.add_argument("--ws-url", help="push channel URL (default: derived from the base URL)")
    parser.add_argument("--log-level", choices=LOG_LEVELS, help="log verbosity")
    parser.add_argument("--log-file", help="write logs to this file")
    return parser


def load_config(argv: Optional[Sequence[str]] = None) -> ClientConfig:
    args = build_parser().parse_args(argv)
    config = ClientConfig()
    if args.config:
        config = config_from_settings(load_settings(args.config), config)
    overrides: Dict[str, Any] = {}
    if args.base_url:
        overrides["base_url"] = args.base_url
    if args.ws_url:
        overrides["ws_url"] = args.ws_url
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_file:
        overrides["log_file"] = args.log_file
    return replace(config, **overrides)
