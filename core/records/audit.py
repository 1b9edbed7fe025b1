"""
Change Audit Engine - Field-Level Diffs for Mutable Records

Compares a record's previous and proposed versions over a fixed list of
tracked field names and produces one AuditEntry per field whose text value
changed. Fields outside the tracked list are never looked at, so
server-maintained columns can move freely without noise in the trail.

Rules:
- Missing/None normalises to "" before comparison
- "" -> "x" is a change, None -> "" is not
- Output order follows tracked_fields
- Every entry from one call shares author and timestamp
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence


# =============================================================================
# Value Normalisation
# =============================================================================


def normalise_value(value: Any) -> str:
    """Render a field value as the text used for audit comparison."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        # Enum members
        return value.value
    return str(value)


def _read_field(record: Any, name: str) -> Any:
    if isinstance(record, Mapping):
        return record.get(name)
    return getattr(record, name, None)


# Time of day, optional fraction and optional UTC offset at the end of a timestamp
_TIME_TAIL = re.compile(
    r"(?P<time>\d{2}:\d{2}(?::\d{2})?)(?:\.(?P<fraction>\d+))?(?P<offset>[+-]\d{2}(?::?\d{2})?)?$"
)


def parse_timestamp(value: Any) -> datetime:
    """
    Parse a stored timestamp.

    The hosted backend writes forms that datetime.fromisoformat() only
    accepts from Python 3.11: a trailing "Z", fractions that are not six
    digits, and offsets without minutes ("+00"). Those are rewritten first.

    Raises:
        ValueError: value is not a timestamp
    """
    if isinstance(value, datetime):
        return value
    text = str(value).strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"

    match = _TIME_TAIL.search(text)
    if match:
        fraction = match.group("fraction")
        offset = match.group("offset") or ""
        if fraction:
            fraction = "." + fraction[:6].ljust(6, "0")
        if offset and ":" not in offset:
            offset = f"{offset[:3]}:{offset[3:] or '00'}"
        text = text[:match.start()] + match.group("time") + (fraction or "") + offset

    return datetime.fromisoformat(text)


# =============================================================================
# Audit Entry
# =============================================================================


@dataclass(frozen=True)
class AuditEntry:
    """One recorded field-level change."""

    field: str
    old_value: str
    new_value: str
    author: str
    timestamp: datetime
    record_id: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "record_id": self.record_id,
            "field": self.field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "author": self.author,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_row(self, key_field: str) -> dict[str, Any]:
        """Row shape of the <collection>_updates tables."""
        return {
            key_field: self.record_id,
            "field": self.field,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "updated_by": self.author,
            "updated_at": self.timestamp.isoformat(),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any], key_field: str) -> "AuditEntry":
        return cls(
            field=row["field"],
            old_value=row.get("old_value") or "",
            new_value=row.get("new_value") or "",
            author=row["updated_by"],
            timestamp=parse_timestamp(row["updated_at"]),
            record_id=row.get(key_field),
        )


# =============================================================================
# Diff
# =============================================================================


def compute_audit(
    previous: Any,
    proposed: Any,
    tracked_fields: Sequence[str],
    author: str,
    at: datetime,
    record_id: Optional[str] = None,
) -> list[AuditEntry]:
    """
    Compute the audit entries for one mutation.

    Args:
        previous: Current stored version (mapping or object)
        proposed: Proposed version (mapping or object)
        tracked_fields: Audit-worthy field names, in output order
        author: Actor id stamped on every entry
        at: Timestamp stamped on every entry
        record_id: Optional key stamped on every entry

    Returns:
        One entry per tracked field whose normalised value changed
    """
    entries: list[AuditEntry] = []
    for name in tracked_fields:
        old = normalise_value(_read_field(previous, name))
        new = normalise_value(_read_field(proposed, name))
        if old != new:
            entries.append(
                AuditEntry(
                    field=name,
                    old_value=old,
                    new_value=new,
                    author=author,
                    timestamp=at,
                    record_id=record_id,
                )
            )
    return entries


def changed_fields(entries: Sequence[AuditEntry]) -> list[str]:
    """Field names touched by a set of entries, in entry order."""
    return [e.field for e in entries]
