"""
Edit Permissions

The coordinator asks whether an actor may edit a record class and, for
staged records, whether the actor's role owns the stage being submitted.
The web layer asks whether a record class is read-only for an actor.
AccessPolicy answers from the page access profile and the actor role.
"""

from __future__ import annotations

from typing import Final, Optional, Protocol

from core.access.identity import AccessLevel, AccessScope, Actor
from core.records.progress import Stage
from core.records.schema import RecordClass, get_definition


# Roles that may submit any stage
ADMIN_ROLES: Final[tuple[str, ...]] = ("admin",)


class PermissionChecker(Protocol):
    """Permission collaborator consumed by the coordinator."""

    def can_edit(self, actor: Actor, record_class: RecordClass) -> bool:
        ...

    def is_read_only(self, actor: Actor, record_class: RecordClass) -> bool:
        ...

    def can_submit_stage(self, actor: Actor, stage: Stage) -> bool:
        ...


class AccessPolicy:
    """
    Page-based access rules.

    - Read access: FULL scope, or LIMITED scope with the page listed
    - Edit access: read access plus EDIT level
    - Read-only: read access without edit access
    - Stage submission: the stage lists no owner roles, or the actor's
      role is one of them, or the actor is an admin
    """

    def has_read_access(self, actor: Optional[Actor], page: str) -> bool:
        if actor is None:
            return False
        if actor.access.scope == AccessScope.FULL:
            return True
        return page in actor.access.pages

    def has_edit_access(self, actor: Optional[Actor], page: str) -> bool:
        if not self.has_read_access(actor, page):
            return False
        return actor.access.level == AccessLevel.EDIT

    def can_edit(self, actor: Actor, record_class: RecordClass) -> bool:
        return self.has_edit_access(actor, get_definition(record_class).page)

    def is_read_only(self, actor: Actor, record_class: RecordClass) -> bool:
        page = get_definition(record_class).page
        return self.has_read_access(actor, page) and not self.has_edit_access(actor, page)

    def can_submit_stage(self, actor: Actor, stage: Stage) -> bool:
        if not stage.owner_roles:
            return True
        return actor.role in stage.owner_roles or actor.role in ADMIN_ROLES

