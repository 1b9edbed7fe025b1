"""
In-Memory Record Store

Dict-backed store with a version counter per row and optional JSON file
persistence. Used for development and tests.
"""

from __future__ import annotations

import copy
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from core.records.errors import ConflictError, NotFoundError, StoreError
from core.store.base import ChangeType, RecordStore, Row


logger = logging.getLogger(__name__)

# (collections, audit) as they were before a write
Snapshot = tuple[dict[str, dict[str, Row]], dict[str, list[Row]]]


class InMemoryRecordStore(RecordStore):
    """
    In-memory record store.

    Rows are deep-copied on the way in and out so callers never share
    mutable state with the store.
    """

    def __init__(self, persist_path: Optional[str] = None):
        """
        Initialise store.

        Args:
            persist_path: Optional path to persist data to a JSON file
        """
        super().__init__()
        self._collections: dict[str, dict[str, Row]] = {}
        self._audit: dict[str, list[Row]] = {}
        self._persist_path = Path(persist_path) if persist_path else None

        if self._persist_path and self._persist_path.exists():
            self._load_from_file()

    def _save_to_file(self) -> None:
        if not self._persist_path:
            return

        data = {
            "collections": self._collections,
            "audit": self._audit,
            "saved_at": datetime.now(timezone.utc).isoformat(),
        }

        self._persist_path.parent.mkdir(parents=True, exist_ok=True)
        self._persist_path.write_text(json.dumps(data, indent=2, default=str))

    def _snapshot(self) -> Optional[Snapshot]:
        """Copy of all state, taken before a write that will be saved to disk."""
        if not self._persist_path:
            return None
        return copy.deepcopy(self._collections), copy.deepcopy(self._audit)

    def _commit(self, snapshot: Optional[Snapshot], record_id: Optional[str] = None) -> None:
        """
        Save to disk, or put the in-memory state back and raise StoreError.

        A write either lands both in memory and on disk or in neither.
        """
        try:
            self._save_to_file()
        except (OSError, ValueError) as e:
            logger.error("Could not save store data to %s: %s", self._persist_path, e)
            if snapshot is not None:
                self._collections, self._audit = snapshot
            raise StoreError(f"Could not save records to {self._persist_path}: {e}", record_id) from e

    def _load_from_file(self) -> None:
        try:
            data = json.loads(self._persist_path.read_text())
            self._collections = data.get("collections", {})
            self._audit = data.get("audit", {})
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            logger.warning("Could not load store data from %s: %s", self._persist_path, e)

    def _table(self, collection: str) -> dict[str, Row]:
        return self._collections.setdefault(collection, {})

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, collection: str, record_id: str) -> Row:
        row = self._table(collection).get(record_id)
        if row is None:
            raise NotFoundError(f"{collection}/{record_id} not found", record_id)
        return copy.deepcopy(row)

    def list_all(self, collection: str) -> list[Row]:
        rows = list(self._table(collection).values())
        rows.sort(key=lambda r: r.get("created_at") or "", reverse=True)
        return copy.deepcopy(rows)

    def list_audit_entries(self, audit_collection: str, key_field: str, record_id: str) -> list[Row]:
        return [
            copy.deepcopy(row)
            for row in self._audit.get(audit_collection, [])
            if row.get(key_field) == record_id
        ]

    # =========================================================================
    # Writes
    # =========================================================================

    def insert(self, collection: str, record_id: str, row: Row) -> Row:
        table = self._table(collection)
        if record_id in table:
            raise StoreError(f"Duplicate key: {collection}/{record_id} already exists", record_id)

        stored = copy.deepcopy(row)
        stored["version"] = 1
        snapshot = self._snapshot()
        table[record_id] = stored

        self._commit(snapshot, record_id)
        self._publish(collection, ChangeType.INSERT, record_id)
        return copy.deepcopy(stored)

    def put(self, collection: str, record_id: str, row: Row) -> Row:
        table = self._table(collection)
        existing = table.get(record_id)

        stored = copy.deepcopy(row)
        stored["version"] = (existing or {}).get("version", 0) + 1
        snapshot = self._snapshot()
        table[record_id] = stored

        self._commit(snapshot, record_id)
        self._publish(
            collection,
            ChangeType.UPDATE if existing else ChangeType.INSERT,
            record_id,
        )
        return copy.deepcopy(stored)

    def patch(
        self,
        collection: str,
        record_id: str,
        fields: Row,
        expected_version: Optional[int] = None,
    ) -> Row:
        table = self._table(collection)
        existing = table.get(record_id)
        if existing is None:
            raise NotFoundError(f"{collection}/{record_id} not found", record_id)

        current_version = existing.get("version", 0)
        if expected_version is not None and expected_version != current_version:
            raise ConflictError(
                f"{collection}/{record_id} changed (version {current_version}, "
                f"expected {expected_version})",
                record_id,
                expected_version=expected_version,
                actual_version=current_version,
            )

        snapshot = self._snapshot()
        existing.update(copy.deepcopy(fields))
        existing["version"] = current_version + 1

        self._commit(snapshot, record_id)
        self._publish(collection, ChangeType.UPDATE, record_id)
        return copy.deepcopy(existing)

    def append_audit_entries(self, audit_collection: str, rows: list[Row]) -> None:
        if not rows:
            return
        snapshot = self._snapshot()
        self._audit.setdefault(audit_collection, []).extend(copy.deepcopy(rows))
        self._commit(snapshot)

    def delete(self, collection: str, record_id: str) -> bool:
        table = self._table(collection)
        if record_id not in table:
            return False
        snapshot = self._snapshot()
        del table[record_id]
        self._commit(snapshot, record_id)
        self._publish(collection, ChangeType.DELETE, record_id)
        return True

    def count(self, collection: str) -> int:
        return len(self._table(collection))
