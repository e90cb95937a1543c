"""Terminal chat client: directory, history and live push channel."""

__version__ = "0.1.0"
