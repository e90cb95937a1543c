"""Thin runnable wrapper: ``python -m chat_client``."""

from chat_client.tui_app import main

if __name__ == "__main__":
    raise SystemExit(main())
