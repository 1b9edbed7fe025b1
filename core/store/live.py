"""
Live Collection View

Keeps an up-to-date copy of one whole collection. Any change notification
triggers a full re-fetch; the event payload is not applied as a patch.
Re-fetching twice is harmless.

Change events only cover writes made through this process's store. When
other processes write to the same backend, max_age bounds how stale the
view can get: fresh_rows() re-fetches once the last load is older.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from core.records.errors import StoreError
from core.store.base import ChangeEvent, RecordStore, Row, Subscription


logger = logging.getLogger(__name__)


class LiveCollection:
    """
    Whole-collection view kept in sync with the store.

    Usage:
        with LiveCollection(store, "complaints") as complaints:
            rows = complaints.rows
    """

    def __init__(
        self,
        store: RecordStore,
        collection: str,
        on_refresh: Optional[Callable[[list[Row]], None]] = None,
        max_age: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            store: Store to read from and subscribe to
            collection: Collection name
            on_refresh: Called with the new rows after every re-fetch
            max_age: Seconds after which fresh_rows() re-fetches; None never expires
            clock: Monotonic seconds (tests)
        """
        self._store = store
        self._collection = collection
        self._on_refresh = on_refresh
        self._max_age = max_age
        self._clock = clock
        self._rows: list[Row] = []
        self._subscription: Optional[Subscription] = None
        self._lock = threading.Lock()
        self._refreshed_at: Optional[float] = None
        self.refresh_count = 0
        self.last_error: Optional[StoreError] = None

    @property
    def collection(self) -> str:
        return self._collection

    @property
    def rows(self) -> list[Row]:
        return list(self._rows)

    @property
    def is_open(self) -> bool:
        return self._subscription is not None

    @property
    def is_stale(self) -> bool:
        if self._refreshed_at is None:
            return True
        if self._max_age is None:
            return False
        return self._clock() - self._refreshed_at >= self._max_age

    def open(self) -> "LiveCollection":
        """Load the collection and start listening for changes."""
        with self._lock:
            if self._subscription is None:
                self._subscription = self._store.subscribe(self._collection, self._handle_change)
        self.refresh()
        return self

    def close(self) -> None:
        with self._lock:
            if self._subscription is not None:
                self._store.unsubscribe(self._subscription)
                self._subscription = None

    def refresh(self) -> list[Row]:
        """Re-fetch the entire collection."""
        self._rows = self._store.list_all(self._collection)
        self._refreshed_at = self._clock()
        self.refresh_count += 1
        self.last_error = None
        if self._on_refresh:
            self._on_refresh(self.rows)
        return self.rows

    def fresh_rows(self) -> list[Row]:
        """
        Rows for a reader: opens the view on first use and re-fetches when
        the last load is older than max_age or the last re-fetch failed.

        Raises:
            StoreError: the re-fetch failed
        """
        if not self.is_open:
            return self.open().rows
        if self.is_stale or self.last_error is not None:
            return self.refresh()
        return self.rows

    def _handle_change(self, event: ChangeEvent) -> None:
        logger.debug("%s changed (%s %s), reloading", event.collection, event.change_type.value, event.record_id)
        try:
            self.refresh()
        except StoreError as e:
            # Keep the stale view; the next change or read re-fetches
            self.last_error = e
            logger.error("Reload of %s failed: %s", self._collection, e)

    def __enter__(self) -> "LiveCollection":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
