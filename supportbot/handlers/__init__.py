"""Handlers package - inbound update routing."""
from supportbot.handlers.updates import UpdateKind, UpdateProcessor, classify_update, create_update_handlers

__all__ = [
    "UpdateKind",
    "UpdateProcessor",
    "classify_update",
    "create_update_handlers",
]
