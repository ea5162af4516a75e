"""Caxton: pairing codes and encrypted push tokens for a push-notification relay."""

__version__ = "0.3.0"
