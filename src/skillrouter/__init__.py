"""skillrouter - resolve tracking-assistant utterances into typed actions."""

__version__ = "0.1.0"
