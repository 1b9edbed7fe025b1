"""
Record Store Interface

The store is the hosted relational backend as seen by the coordinator:
table-row-shaped records addressed by collection and external key, plus
change subscriptions. Implementations raise NotFoundError / StoreError /
ConflictError from core.records.errors.

Writes come in two shapes:
- put():   whole-row upsert
- patch(): field-scoped update, optionally guarded by a version counter

patch() is what the coordinator uses, so two parties editing disjoint
fields of the same row cannot overwrite each other.
"""

from __future__ import annotations

import itertools
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional


logger = logging.getLogger(__name__)


Row = dict[str, Any]


class ChangeType(Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    """A change notification for one row of a collection."""

    collection: str
    change_type: ChangeType
    record_id: str


ChangeHandler = Callable[[ChangeEvent], None]


@dataclass(frozen=True)
class Subscription:
    subscription_id: int
    collection: str


class RecordStore(ABC):
    """
    Abstract record store.

    Subscription fan-out is shared; subclasses call _publish() after every
    successful write.
    """

    def __init__(self):
        self._handlers: dict[int, tuple[str, ChangeHandler]] = {}
        self._subscription_ids = itertools.count(1)

    # =========================================================================
    # Reads
    # =========================================================================

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Row:
        """Fetch one row. Raises NotFoundError if absent."""

    @abstractmethod
    def list_all(self, collection: str) -> list[Row]:
        """Fetch every row of a collection, newest first."""

    @abstractmethod
    def list_audit_entries(self, audit_collection: str, key_field: str, record_id: str) -> list[Row]:
        """Fetch the audit rows for one record, oldest first."""

    # =========================================================================
    # Writes
    # =========================================================================

    @abstractmethod
    def insert(self, collection: str, record_id: str, row: Row) -> Row:
        """Create a row. Raises StoreError if the key already exists."""

    @abstractmethod
    def put(self, collection: str, record_id: str, row: Row) -> Row:
        """Replace (or create) a whole row."""

    @abstractmethod
    def patch(
        self,
        collection: str,
        record_id: str,
        fields: Row,
        expected_version: Optional[int] = None,
    ) -> Row:
        """
        Update only the given fields of a row.

        Raises NotFoundError if the row is absent, ConflictError if
        expected_version is given and does not match the stored version.
        """

    @abstractmethod
    def append_audit_entries(self, audit_collection: str, rows: list[Row]) -> None:
        """Append audit rows. Never updates or removes existing ones."""

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> bool:
        """Remove a row. Returns False if it was not there."""

    # =========================================================================
    # Subscriptions
    # =========================================================================

    def subscribe(self, collection: str, on_change: ChangeHandler) -> Subscription:
        subscription = Subscription(next(self._subscription_ids), collection)
        self._handlers[subscription.subscription_id] = (collection, on_change)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._handlers.pop(subscription.subscription_id, None)

    @property
    def subscription_count(self) -> int:
        return len(self._handlers)

    def _publish(self, collection: str, change_type: ChangeType, record_id: str) -> None:
        event = ChangeEvent(collection, change_type, record_id)
        for sub_id, (sub_collection, handler) in list(self._handlers.items()):
            if sub_collection != collection:
                continue
            try:
                handler(event)
            except Exception:
                # A broken observer must not fail a write that already landed
                logger.exception(
                    "Change handler %s failed for %s/%s", sub_id, collection, record_id
                )
