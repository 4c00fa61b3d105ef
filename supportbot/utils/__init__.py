"""Utilities package - message templates, keyboards and small helpers."""
from supportbot.utils.datetime_utils import utcnow
from supportbot.utils.validation import validate_order_payload

__all__ = [
    "utcnow",
    "validate_order_payload",
]
