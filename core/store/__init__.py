"""
Record store collaborators: interface, in-memory and REST implementations,
and the live whole-collection view.
"""

from core.store.base import (
    ChangeType,
    ChangeEvent,
    Subscription,
    RecordStore,
)
from core.store.memory import InMemoryRecordStore
from core.store.rest import RestRecordStore
from core.store.live import LiveCollection

__all__ = [
    "ChangeType",
    "ChangeEvent",
    "Subscription",
    "RecordStore",
    "InMemoryRecordStore",
    "RestRecordStore",
    "LiveCollection",
]
