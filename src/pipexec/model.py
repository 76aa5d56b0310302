# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple, Union


DEFAULT_BRANCHES: Tuple[str, ...] = ("stable",)
DEFAULT_FLAG_FORMAT = "--features {flags}"


class EventKind(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"  # never started because an earlier step failed


class RunStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    NOT_TRIGGERED = "not_triggered"


@dataclass(frozen=True)
class Trigger:
    """The push / pull request event a pipeline run reacts to."""
    event: EventKind
    branch: str

    def __post_init__(self):
        # accept "push" as well as EventKind.PUSH
        object.__setattr__(self, "event", EventKind(self.event))

    def __str__(self) -> str:
        return f"{self.event.value}@{self.branch}"


@dataclass(frozen=True)
class Step:
    """A single verification command inside a configuration."""
    name: str
    run: str
    cwd: str | None = None
    flag_insensitive: bool = False
    flag_format: str = DEFAULT_FLAG_FORMAT
    timeout: float | None = None


# Configurations may name a catalog step instead of spelling it out.
StepRef = Union[Step, str]


@dataclass
class Configuration:
    """
    A named variant of the build.

    Every flag-sensitive step receives the same `flags`. Configurations never
    share state with each other, so they can run in any order.
    """
    name: str
    steps: list[StepRef]
    flags: FrozenSet[str] = field(default_factory=frozenset)
    title: str | None = None
    env: Dict[str, str] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return self.title or self.name


@dataclass
class Pipeline:
    """
    A whole pipeline definition.

    `triggers` maps an event kind to the exact branch names it fires on.
    `catalog` holds named steps that configurations may reference by name.
    """
    name: str
    configurations: list[Configuration]
    triggers: Dict[EventKind, Tuple[str, ...]] = field(
        default_factory=lambda: {kind: DEFAULT_BRANCHES for kind in EventKind}
    )
    env: Dict[str, str] = field(default_factory=dict)
    catalog: Dict[str, Step] = field(default_factory=dict)

    def matches(self, trigger: Trigger) -> bool:
        return trigger.branch in self.triggers.get(trigger.event, ())


# ----------------------------------------------------------------------
# Results
# ----------------------------------------------------------------------

@dataclass
class StepResult:
    step: str
    command: str
    status: StepStatus = StepStatus.PENDING
    exit_code: Optional[int] = None
    log: str = ""
    duration: float = 0.0
    error: Optional[Exception] = None


@dataclass
class ConfigurationResult:
    configuration: str
    flags: FrozenSet[str]
    steps: List[StepResult]

    @property
    def status(self) -> RunStatus:
        if all(s.status is StepStatus.PASSED for s in self.steps):
            return RunStatus.PASSED
        return RunStatus.FAILED

    @property
    def failed_step(self) -> Optional[StepResult]:
        for s in self.steps:
            if s.status is StepStatus.FAILED:
                return s
        return None

    @property
    def invoked(self) -> int:
        """Number of steps whose command was actually started."""
        return sum(1 for s in self.steps if s.status in (StepStatus.PASSED, StepStatus.FAILED))


@dataclass
class PipelineResult:
    trigger: Trigger
    configurations: Dict[str, ConfigurationResult] = field(default_factory=dict)
    triggered: bool = True

    @property
    def status(self) -> RunStatus:
        if not self.triggered:
            return RunStatus.NOT_TRIGGERED
        if all(c.status is RunStatus.PASSED for c in self.configurations.values()):
            return RunStatus.PASSED
        return RunStatus.FAILED

    @property
    def ok(self) -> bool:
        return self.status is not RunStatus.FAILED
