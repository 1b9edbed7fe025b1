"""
Actor identity and edit permissions for record mutations.
"""

from core.access.identity import (
    AccessLevel,
    AccessScope,
    AccessProfile,
    Actor,
    ActorDirectory,
)
from core.access.permissions import (
    ADMIN_ROLES,
    PermissionChecker,
    AccessPolicy,
)

__all__ = [
    "AccessLevel",
    "AccessScope",
    "AccessProfile",
    "Actor",
    "ActorDirectory",
    "ADMIN_ROLES",
    "PermissionChecker",
    "AccessPolicy",
]
