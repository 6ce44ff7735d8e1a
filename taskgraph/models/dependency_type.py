"""
Dependency types and their scheduling policy.

Every per-type decision the engine makes (does it block, does it count on
the critical path, how heavily is it weighted) reads from ``POLICIES``
instead of branching on the type in several places.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class TaskEvent(str, Enum):
    """The two schedule events of a task an edge can connect."""

    START = "START"
    FINISH = "FINISH"


class DependencyType(str, Enum):
    """Precedence semantics of an edge between a prerequisite and a dependent task."""

    FINISH_TO_START = "FINISH_TO_START"
    START_TO_START = "START_TO_START"
    FINISH_TO_FINISH = "FINISH_TO_FINISH"
    START_TO_FINISH = "START_TO_FINISH"
    BLOCKING = "BLOCKING"
    SOFT = "SOFT"

    @property
    def policy(self) -> "DependencyPolicy":
        return POLICIES[self]

    @property
    def display_name(self) -> str:
        return self.policy.display_name

    @property
    def short_code(self) -> str:
        return self.policy.short_code

    @property
    def description(self) -> str:
        return self.policy.description

    @property
    def is_hard_constraint(self) -> bool:
        return self.policy.hard_constraint

    @property
    def is_critical_path_relevant(self) -> bool:
        return self.policy.critical_path_relevant

    @classmethod
    def from_string(cls, value: Optional[str]) -> Optional["DependencyType"]:
        """
        Look up a type by symbolic name, short code or display name.

        Matching ignores case and surrounding whitespace. Returns None for
        anything unrecognised so callers can pick their own fallback.
        """
        if value is None:
            return None
        needle = value.strip().lower()
        if not needle:
            return None
        for dependency_type in cls:
            policy = dependency_type.policy
            if needle in (
                dependency_type.name.lower(),
                policy.short_code.lower(),
                policy.display_name.lower(),
            ):
                return dependency_type
        return None


@dataclass(frozen=True)
class DependencyPolicy:
    display_name: str
    short_code: str
    description: str
    hard_constraint: bool
    critical_path_relevant: bool
    weight: float
    # Prerequisite event the edge waits on; None means it never gates anything
    prerequisite_event: Optional[TaskEvent]
    # Dependent event the edge constrains
    dependent_event: Optional[TaskEvent]


POLICIES: dict[DependencyType, DependencyPolicy] = {
    DependencyType.FINISH_TO_START: DependencyPolicy(
        display_name="Finish-to-Start",
        short_code="FS",
        description="Prerequisite must finish before the dependent task starts",
        hard_constraint=True,
        critical_path_relevant=True,
        weight=5.0,
        prerequisite_event=TaskEvent.FINISH,
        dependent_event=TaskEvent.START,
    ),
    DependencyType.START_TO_START: DependencyPolicy(
        display_name="Start-to-Start",
        short_code="SS",
        description="Prerequisite must start before the dependent task starts",
        hard_constraint=True,
        critical_path_relevant=True,
        weight=3.0,
        prerequisite_event=TaskEvent.START,
        dependent_event=TaskEvent.START,
    ),
    DependencyType.FINISH_TO_FINISH: DependencyPolicy(
        display_name="Finish-to-Finish",
        short_code="FF",
        description="Prerequisite must finish before the dependent task finishes",
        hard_constraint=True,
        critical_path_relevant=True,
        weight=3.0,
        prerequisite_event=TaskEvent.FINISH,
        dependent_event=TaskEvent.FINISH,
    ),
    DependencyType.START_TO_FINISH: DependencyPolicy(
        display_name="Start-to-Finish",
        short_code="SF",
        description="Prerequisite must start before the dependent task finishes",
        hard_constraint=True,
        critical_path_relevant=True,
        weight=2.0,
        prerequisite_event=TaskEvent.START,
        dependent_event=TaskEvent.FINISH,
    ),
    DependencyType.BLOCKING: DependencyPolicy(
        display_name="Blocking",
        short_code="BLOCK",
        description="Dependent task is hard-blocked until the prerequisite is complete",
        hard_constraint=True,
        critical_path_relevant=True,
        weight=10.0,
        prerequisite_event=TaskEvent.FINISH,
        dependent_event=TaskEvent.START,
    ),
    DependencyType.SOFT: DependencyPolicy(
        display_name="Soft",
        short_code="SOFT",
        description="Advisory ordering only; never blocks and never constrains dates",
        hard_constraint=False,
        critical_path_relevant=False,
        weight=0.0,
        prerequisite_event=None,
        dependent_event=None,
    ),
}
