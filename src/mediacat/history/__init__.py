"""Undo/redo action history."""

from .log import DEFAULT_CAPACITY, ActionLog
from .models import ActionLogEntry
from .payload import PAYLOAD_VERSION, decode_snapshot, encode_snapshot

__all__ = [
    "ActionLog",
    "ActionLogEntry",
    "DEFAULT_CAPACITY",
    "PAYLOAD_VERSION",
    "decode_snapshot",
    "encode_snapshot",
]
