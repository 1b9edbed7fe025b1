"""
Actor Identity

Actors are passed explicitly into every coordinator call; there is no
ambient "current user". ActorDirectory resolves ids for the web layer.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)


class AccessLevel(Enum):
    READ = "read"
    EDIT = "edit"


class AccessScope(Enum):
    FULL = "full"
    LIMITED = "limited"


@dataclass(frozen=True)
class AccessProfile:
    """
    Page access granted to an actor.

    FULL scope reaches every page; LIMITED scope reaches only `pages`.
    """

    level: AccessLevel = AccessLevel.READ
    scope: AccessScope = AccessScope.LIMITED
    pages: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "level": self.level.value,
            "scope": self.scope.value,
            "pages": list(self.pages),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AccessProfile":
        return cls(
            level=AccessLevel(data.get("level", "read")),
            scope=AccessScope(data.get("scope", "limited")),
            pages=tuple(data.get("pages", ())),
        )


@dataclass(frozen=True)
class Actor:
    """A person acting on records."""

    actor_id: str
    display_name: str
    role: str = ""
    access: AccessProfile = field(default_factory=AccessProfile)

    def to_dict(self) -> dict:
        return {
            "actor_id": self.actor_id,
            "display_name": self.display_name,
            "role": self.role,
            "access": self.access.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Actor":
        return cls(
            actor_id=data["actor_id"],
            display_name=data.get("display_name") or data["actor_id"],
            role=data.get("role", ""),
            access=AccessProfile.from_dict(data.get("access", {})),
        )


class ActorDirectory:
    """Lookup table of known actors, optionally loaded from a JSON file."""

    def __init__(self, actors: Optional[list[Actor]] = None):
        self._actors: dict[str, Actor] = {}
        for actor in actors or []:
            self.add(actor)

    def add(self, actor: Actor) -> None:
        self._actors[actor.actor_id] = actor

    def get(self, actor_id: Optional[str]) -> Optional[Actor]:
        if not actor_id:
            return None
        return self._actors.get(actor_id)

    def list_all(self) -> list[Actor]:
        return list(self._actors.values())

    def __len__(self) -> int:
        return len(self._actors)

    @classmethod
    def from_file(cls, path: str) -> "ActorDirectory":
        """
        Load actors from a JSON file of the form {"actors": [...]}.

        A missing file yields an empty directory.
        """
        file_path = Path(path)
        if not file_path.exists():
            logger.warning("Actors file %s not found; directory is empty", path)
            return cls()

        data = json.loads(file_path.read_text())
        return cls([Actor.from_dict(a) for a in data.get("actors", [])])
