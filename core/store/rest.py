"""
REST Record Store - Hosted Relational Backend Client

Talks to a PostgREST-style table API (the hosted backend exposes every
table under /rest/v1/<table>, filtered with `column=eq.value` query params).

Error mapping:
- network failure / timeout     -> StoreError
- HTTP 409 (unique violation)   -> StoreError
- empty result on get           -> NotFoundError
- empty result on patch         -> NotFoundError, or ConflictError when the
                                   row exists at another version
- any other HTTP error          -> StoreError

Change subscriptions fan out writes made through this client; the realtime
transport itself is a separate service.
"""

from __future__ import annotations

import logging
from typing import Any, Final, Mapping, Optional

import requests

from core.records.errors import ConflictError, NotFoundError, StoreError
from core.records.schema import RECORD_DEFINITIONS
from core.store.base import ChangeType, RecordStore, Row


logger = logging.getLogger(__name__)


REQUEST_TIMEOUT_SECONDS: Final[int] = 30

DEFAULT_KEY_FIELDS: Final[dict[str, str]] = {
    definition.collection: definition.key_field
    for definition in RECORD_DEFINITIONS.values()
}


class RestRecordStore(RecordStore):
    """Record store backed by the hosted table API."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        key_fields: Optional[Mapping[str, str]] = None,
        timeout: int = REQUEST_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        """
        Args:
            base_url: Project URL, e.g. https://<project>.example.co
            api_key: Service or anon key, sent as apikey and bearer token
            key_fields: collection -> external key column
            timeout: Per-request timeout in seconds
            session: Optional pre-configured session (tests)
        """
        super().__init__()
        if not base_url:
            raise ValueError("base_url is required")
        self._base_url = base_url.rstrip("/") + "/rest/v1"
        self._key_fields = dict(key_fields or DEFAULT_KEY_FIELDS)
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })

    # =========================================================================
    # HTTP Helpers
    # =========================================================================

    def _key_field(self, collection: str) -> str:
        try:
            return self._key_fields[collection]
        except KeyError:
            raise StoreError(f"No key field configured for collection {collection}") from None

    def _request(
        self,
        method: str,
        table: str,
        params: Optional[dict[str, str]] = None,
        json_body: Any = None,
        prefer: Optional[str] = None,
        record_id: Optional[str] = None,
    ) -> Any:
        headers = {"Prefer": prefer} if prefer else None
        url = f"{self._base_url}/{table}"
        try:
            response = self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error("%s %s failed: %s", method, table, e)
            raise StoreError(f"Request to {table} failed: {e}", record_id) from e

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.error("%s %s returned %s: %s", method, table, response.status_code, detail)
            if response.status_code == 409:
                raise StoreError(f"Duplicate key in {table}: {detail}", record_id)
            raise StoreError(f"{table} request failed ({response.status_code}): {detail}", record_id)

        if not response.content:
            return None
        return response.json()

    def _eq(self, collection: str, record_id: str) -> dict[str, str]:
        return {self._key_field(collection): f"eq.{record_id}"}

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, collection: str, record_id: str) -> Row:
        params = {"select": "*", **self._eq(collection, record_id)}
        rows = self._request("GET", collection, params=params, record_id=record_id) or []
        if not rows:
            raise NotFoundError(f"{collection}/{record_id} not found", record_id)
        return rows[0]

    def list_all(self, collection: str) -> list[Row]:
        params = {"select": "*", "order": "created_at.desc"}
        return self._request("GET", collection, params=params) or []

    def list_audit_entries(self, audit_collection: str, key_field: str, record_id: str) -> list[Row]:
        params = {
            "select": "*",
            key_field: f"eq.{record_id}",
            "order": "updated_at.asc",
        }
        return self._request("GET", audit_collection, params=params, record_id=record_id) or []

    # =========================================================================
    # Writes
    # =========================================================================

    def insert(self, collection: str, record_id: str, row: Row) -> Row:
        body = {**row, "version": 1}
        rows = self._request(
            "POST",
            collection,
            json_body=body,
            prefer="return=representation",
            record_id=record_id,
        ) or [body]
        self._publish(collection, ChangeType.INSERT, record_id)
        return rows[0]

    def put(self, collection: str, record_id: str, row: Row) -> Row:
        try:
            current_version = self.get(collection, record_id).get("version") or 0
        except NotFoundError:
            current_version = 0
        body = {**row, "version": current_version + 1}
        rows = self._request(
            "POST",
            collection,
            params={"on_conflict": self._key_field(collection)},
            json_body=body,
            prefer="resolution=merge-duplicates,return=representation",
            record_id=record_id,
        ) or [body]
        self._publish(collection, ChangeType.UPDATE, record_id)
        return rows[0]

    def patch(
        self,
        collection: str,
        record_id: str,
        fields: Row,
        expected_version: Optional[int] = None,
    ) -> Row:
        """
        Write the given columns and bump the row's version.

        The table API has no increment operator, so every patch is a
        compare-and-set on the version column. With expected_version the
        caller's version is the guard. Without it the current version is
        read first; a write landing between that read and the patch raises
        ConflictError like a stale guard would. Nothing is retried.
        """
        if expected_version is None:
            expected_version = self.get(collection, record_id).get("version")
        return self._patch_at_version(collection, record_id, fields, expected_version)

    def _patch_at_version(
        self,
        collection: str,
        record_id: str,
        fields: Row,
        version: Optional[int],
    ) -> Row:
        params = self._eq(collection, record_id)
        # Rows written before versioning started carry a null version
        params["version"] = "is.null" if version is None else f"eq.{version}"
        body = {**fields, "version": (version or 0) + 1}

        rows = self._request(
            "PATCH",
            collection,
            params=params,
            json_body=body,
            prefer="return=representation",
            record_id=record_id,
        ) or []

        if not rows:
            # Either the row is gone or the version guard filtered it out
            current = self.get(collection, record_id)
            raise ConflictError(
                f"{collection}/{record_id} changed (version {current.get('version')}, "
                f"expected {version})",
                record_id,
                expected_version=version,
                actual_version=current.get("version"),
            )

        self._publish(collection, ChangeType.UPDATE, record_id)
        return rows[0]

    def append_audit_entries(self, audit_collection: str, rows: list[Row]) -> None:
        if not rows:
            return
        self._request("POST", audit_collection, json_body=rows, prefer="return=minimal")

    def delete(self, collection: str, record_id: str) -> bool:
        rows = self._request(
            "DELETE",
            collection,
            params=self._eq(collection, record_id),
            prefer="return=representation",
            record_id=record_id,
        ) or []
        if rows:
            self._publish(collection, ChangeType.DELETE, record_id)
        return bool(rows)


def _error_detail(response: requests.Response) -> str:
    """Pull a readable message out of an error response."""
    try:
        data = response.json()
    except ValueError:
        return response.text or "unknown error"
    if isinstance(data, dict):
        return data.get("message") or data.get("details") or data.get("hint") or "unknown error"
    return str(data)
