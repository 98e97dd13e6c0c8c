"""Retro Messenger: end-to-end encrypted real-time messaging core."""

__version__ = "0.1.0"
