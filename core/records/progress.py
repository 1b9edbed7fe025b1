"""
Stage Progress Engine - Derived Lifecycle Status

A progressable record moves through a fixed, ordered list of stages, each
owned by a different party. Its status is never stored on its own: it is
always recomputed from the per-stage flags plus an optional completion
predicate guarding the final stage.

Precedence order is configuration (a StagePlan), never inferred from data.

For a plan of n stages the only possible outputs are:
- NOT_STARTED              first stage flag is false
- waiting on stage i       first false flag is stage i (i >= 2), or the
                           last flag is true but the predicate is false
- COMPLETE                 every flag is true and the predicate holds
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Mapping, Optional, Sequence, Union


# =============================================================================
# Status Codes
# =============================================================================

NOT_STARTED_CODE: Final[str] = "not_started"
COMPLETE_CODE: Final[str] = "complete"
WAITING_PREFIX: Final[str] = "waiting_on_"


# =============================================================================
# Stage Configuration
# =============================================================================


@dataclass(frozen=True)
class Stage:
    """
    One party's step in a progressable record's lifecycle.

    flag_field is the boolean column flipped when the party submits its
    sub-form. owned_fields are the only columns that party may edit.
    owner_roles names the actor roles allowed to submit it; empty means
    any actor with edit access.
    """

    key: str
    label: str
    flag_field: str
    owned_fields: tuple[str, ...] = ()
    owner_roles: tuple[str, ...] = ()

    @property
    def waiting_code(self) -> str:
        return f"{WAITING_PREFIX}{self.key}"


@dataclass(frozen=True)
class StageStatus:
    """A derived status label. Compared by value."""

    code: str
    label: str
    stage_key: Optional[str] = None

    @property
    def is_complete(self) -> bool:
        return self.code == COMPLETE_CODE

    @property
    def is_started(self) -> bool:
        return self.code != NOT_STARTED_CODE

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "label": self.label,
            "stage_key": self.stage_key,
        }


@dataclass(frozen=True)
class StagePlan:
    """Ordered stage configuration for one record class."""

    stages: tuple[Stage, ...]
    not_started_label: str = "Waiting on initial data"
    complete_label: str = "Complete"
    waiting_template: str = "Waiting on {label}"

    def __post_init__(self) -> None:
        if not self.stages:
            raise ValueError("StagePlan requires at least one stage")
        keys = [s.key for s in self.stages]
        if len(set(keys)) != len(keys):
            raise ValueError(f"Duplicate stage keys: {keys}")

    @property
    def stage_count(self) -> int:
        return len(self.stages)

    @property
    def flag_fields(self) -> tuple[str, ...]:
        return tuple(s.flag_field for s in self.stages)

    @property
    def last_stage(self) -> Stage:
        return self.stages[-1]

    def get_stage(self, key: str) -> Optional[Stage]:
        for stage in self.stages:
            if stage.key == key:
                return stage
        return None

    def not_started(self) -> StageStatus:
        return StageStatus(code=NOT_STARTED_CODE, label=self.not_started_label)

    def complete(self) -> StageStatus:
        return StageStatus(code=COMPLETE_CODE, label=self.complete_label)

    def waiting_on(self, stage: Stage) -> StageStatus:
        return StageStatus(
            code=stage.waiting_code,
            label=self.waiting_template.format(label=stage.label),
            stage_key=stage.key,
        )

    def all_statuses(self) -> tuple[StageStatus, ...]:
        """The closed set of n + 1 labels this plan can produce."""
        waiting = tuple(self.waiting_on(s) for s in self.stages[1:])
        return (self.not_started(),) + waiting + (self.complete(),)


# =============================================================================
# Derivation
# =============================================================================


FlagInput = Union[Sequence[bool], Mapping[str, bool]]


def _ordered_flags(plan: StagePlan, flags: FlagInput) -> list[bool]:
    """Normalise flags to plan order. Mappings may be keyed by stage key or flag field."""
    if isinstance(flags, Mapping):
        ordered = []
        for stage in plan.stages:
            if stage.key in flags:
                value = flags[stage.key]
            else:
                value = flags.get(stage.flag_field, False)
            ordered.append(bool(value))
        return ordered

    ordered = [bool(f) for f in flags]
    if len(ordered) != plan.stage_count:
        raise ValueError(
            f"Expected {plan.stage_count} stage flags, got {len(ordered)}"
        )
    return ordered


def derive_status(
    plan: StagePlan,
    flags: FlagInput,
    completion_predicate: bool,
) -> StageStatus:
    """
    Derive the lifecycle status from stage flags.

    Args:
        plan: Stage precedence configuration
        flags: One boolean per stage, in plan order, or a mapping keyed by
               stage key or flag field
        completion_predicate: Guard for the final stage

    Returns:
        One of plan.all_statuses()
    """
    ordered = _ordered_flags(plan, flags)

    if not ordered[0]:
        return plan.not_started()

    for stage, done in zip(plan.stages[1:], ordered[1:]):
        if not done:
            return plan.waiting_on(stage)

    # Every flag is set; the predicate still gates the last stage
    if completion_predicate:
        return plan.complete()
    return plan.waiting_on(plan.last_stage)


def evaluation_complete(is_evaluated: Optional[bool], evaluation_score: Optional[float]) -> bool:
    """
    Completion predicate for a customer evaluation.

    A score of zero and a missing score both fail: a poor rating and no
    rating yet are different to a person, but neither completes the stage.
    """
    if not is_evaluated:
        return False
    if evaluation_score is None:
        return False
    try:
        return float(evaluation_score) > 0
    except (TypeError, ValueError):
        return False
