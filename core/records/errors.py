"""
Record Mutation Errors

Every failure a mutation can hit is one of these. The coordinator catches
them at its boundary and turns each into exactly one user-visible
notification; none are retried.
"""

from __future__ import annotations

from typing import Optional


class MutationError(Exception):
    """Base class for all record mutation failures."""

    #: Notification title shown to the user for this class of failure.
    title: str = "Error"

    def __init__(self, message: str, record_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.record_id = record_id


class NotFoundError(MutationError):
    """Target record vanished (or never existed) before the mutation."""

    title = "Not found"


class AuthorizationError(MutationError):
    """Actor lacks edit rights on the record class."""

    title = "Not allowed"


class NoChangesError(MutationError):
    """The audit diff was empty. Informational, not a failure."""

    title = "No changes"


class ValidationError(MutationError):
    """A required value is missing or a field is not editable here."""

    title = "Missing data"

    def __init__(
        self,
        message: str,
        record_id: Optional[str] = None,
        fields: Optional[list[str]] = None,
    ):
        super().__init__(message, record_id)
        self.fields = list(fields or [])


class StoreError(MutationError):
    """Generic remote failure: network, constraint violation, duplicate key."""

    title = "Store error"


class PersistError(StoreError):
    """
    Persistence failed partway through a mutation.

    The store may hold the record write without its audit entries.
    Callers must re-fetch before retrying.
    """

    title = "Save failed"


class ConflictError(StoreError):
    """A versioned write was rejected because the row changed underneath it."""

    title = "Conflict"

    def __init__(
        self,
        message: str,
        record_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
    ):
        super().__init__(message, record_id)
        self.expected_version = expected_version
        self.actual_version = actual_version
