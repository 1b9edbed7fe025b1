"""
Tests for page-based edit permissions and the actor directory.
"""

from __future__ import annotations

import json

import pytest

from core.access import (
    AccessLevel,
    AccessPolicy,
    AccessProfile,
    AccessScope,
    Actor,
    ActorDirectory,
)
from core.records.progress import Stage
from core.records.schema import BOOKING_STAGE_PLAN, RecordClass


@pytest.fixture
def policy():
    return AccessPolicy()


def actor(level, scope, pages=()):
    return Actor("a1", "Test Actor", access=AccessProfile(level=level, scope=scope, pages=tuple(pages)))


class TestAccessPolicy:

    def test_full_edit_can_edit_everything(self, policy):
        a = actor(AccessLevel.EDIT, AccessScope.FULL)
        for record_class in RecordClass:
            assert policy.can_edit(a, record_class)
            assert not policy.is_read_only(a, record_class)

    def test_limited_edit_only_listed_pages(self, policy):
        a = actor(AccessLevel.EDIT, AccessScope.LIMITED, ["complaints"])
        assert policy.can_edit(a, RecordClass.COMPLAINT)
        assert not policy.can_edit(a, RecordClass.BOOKING)
        assert not policy.is_read_only(a, RecordClass.BOOKING)

    def test_read_level_is_read_only(self, policy):
        a = actor(AccessLevel.READ, AccessScope.LIMITED, ["delivery"])
        assert not policy.can_edit(a, RecordClass.BOOKING)
        assert policy.is_read_only(a, RecordClass.BOOKING)

    def test_no_actor_has_no_access(self, policy):
        assert not policy.has_read_access(None, "delivery")
        assert not policy.has_edit_access(None, "delivery")

    def test_stage_submission_follows_owner_roles(self, policy):
        projects = BOOKING_STAGE_PLAN.get_stage("projects")
        sales = Actor("s1", "Sales Staff", role="sales")
        engineer = Actor("p1", "Projects Staff", role="projects")
        admin = Actor("a1", "Admin", role="admin")
        assert not policy.can_submit_stage(sales, projects)
        assert policy.can_submit_stage(engineer, projects)
        assert policy.can_submit_stage(admin, projects)

    def test_stage_without_owners_is_open(self, policy):
        assert policy.can_submit_stage(Actor("x", "Anyone"), Stage("only", "Only", "only_done"))


class TestActorDirectory:

    def test_lookup(self):
        directory = ActorDirectory([Actor("nour", "Nour Ali")])
        assert directory.get("nour").display_name == "Nour Ali"
        assert directory.get("ghost") is None
        assert directory.get(None) is None

    def test_from_file(self, tmp_path):
        path = tmp_path / "actors.json"
        path.write_text(json.dumps({
            "actors": [
                {
                    "actor_id": "sara",
                    "display_name": "Sara Nabil",
                    "role": "quality",
                    "access": {"level": "edit", "scope": "limited", "pages": ["quality-calls"]},
                }
            ]
        }))

        directory = ActorDirectory.from_file(str(path))

        sara = directory.get("sara")
        assert sara.access.level == AccessLevel.EDIT
        assert sara.access.pages == ("quality-calls",)
        assert Actor.from_dict(sara.to_dict()) == sara

    def test_missing_file_is_empty(self, tmp_path):
        assert len(ActorDirectory.from_file(str(tmp_path / "nope.json"))) == 0
