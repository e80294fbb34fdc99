"""Data models for planned and executed build actions.

Defines:
- ActionKind: compile or link
- ActionState: lifecycle of an action inside the executor
- BuildAction: a single compile or link with its prerequisite actions
- BuildPlan: the ordered actions one invocation needs to run
- ExecutionReport: final state of every action after execution
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional, Union

if TYPE_CHECKING:
    from .toolchain import CompileJob, LinkJob


class ActionKind(Enum):
    COMPILE = "compile"
    LINK = "link"


class ActionState(Enum):
    """State of an action in the executor."""

    WAITING = "waiting"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BuildAction:
    """A single compile or link.

    Attributes:
        name: Unique action name (``compile:<source>`` or ``link:<target>``)
        kind: COMPILE or LINK
        job: Toolchain job the action runs
        target: Target concerned (owning target for compiles, "" for common pool)
        dependencies: Names of actions that must succeed first
        after: Names of actions that must finish first, successfully or not
        reasons: Why the action is needed (from the staleness evaluator)
        state: Current state
        error_message: Failure detail if state is FAILED
        stderr: Tool output captured on failure
        start_time: Monotonic start timestamp (None if never started)
        elapsed: Seconds the action took
    """

    name: str
    kind: ActionKind
    job: Union["CompileJob", "LinkJob"]
    target: str = ""
    dependencies: list[str] = field(default_factory=list)
    after: list[str] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    state: ActionState = ActionState.WAITING
    error_message: str = ""
    stderr: Optional[str] = None
    start_time: float | None = None
    elapsed: float = 0.0

    def mark_started(self) -> None:
        self.start_time = time.monotonic()
        self.state = ActionState.RUNNING

    def update_elapsed(self) -> None:
        if self.start_time is not None:
            self.elapsed = time.monotonic() - self.start_time

    def finish(self) -> None:
        self.state = ActionState.DONE
        self.update_elapsed()

    def fail(self, error: str, stderr: Optional[str] = None) -> None:
        """Mark this action as failed with an error message."""
        self.state = ActionState.FAILED
        self.error_message = error
        self.stderr = stderr
        self.update_elapsed()

    @property
    def is_compile(self) -> bool:
        return self.kind == ActionKind.COMPILE

    @property
    def is_link(self) -> bool:
        return self.kind == ActionKind.LINK

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "name": self.name,
            "kind": self.kind.value,
            "target": self.target,
            "dependencies": list(self.dependencies),
            "after": list(self.after),
            "reasons": list(self.reasons),
            "state": self.state.value,
            "error_message": self.error_message,
            "elapsed": self.elapsed,
        }


@dataclass
class BuildPlan:
    """Actions needed to bring every target up to date.

    Compile actions come first (common pool, then targets by name), then
    link actions (libraries before executables).

    Attributes:
        actions: Planned actions in order
        up_to_date: Names of targets that need no link
    """

    actions: list[BuildAction] = field(default_factory=list)
    up_to_date: list[str] = field(default_factory=list)

    @property
    def compile_actions(self) -> list[BuildAction]:
        return [a for a in self.actions if a.is_compile]

    @property
    def link_actions(self) -> list[BuildAction]:
        return [a for a in self.actions if a.is_link]

    @property
    def is_empty(self) -> bool:
        return not self.actions

    def to_dict(self) -> dict[str, Any]:
        return {
            "actions": [a.to_dict() for a in self.actions],
            "up_to_date": list(self.up_to_date),
        }


@dataclass
class ExecutionReport:
    """Result of executing a BuildPlan.

    Attributes:
        actions: Final state of all actions
        total_elapsed: Wall-clock seconds
        success: True if every action completed
    """

    actions: list[BuildAction]
    total_elapsed: float
    success: bool

    @property
    def completed_count(self) -> int:
        return sum(1 for a in self.actions if a.state == ActionState.DONE)

    @property
    def failed_count(self) -> int:
        return sum(1 for a in self.actions if a.state == ActionState.FAILED)

    @property
    def failed_actions(self) -> list[BuildAction]:
        return [a for a in self.actions if a.state == ActionState.FAILED]

    @property
    def compiled_count(self) -> int:
        return sum(1 for a in self.actions if a.is_compile and a.state == ActionState.DONE)

    @property
    def linked_targets(self) -> list[str]:
        """Targets whose link succeeded."""
        return [a.target for a in self.actions if a.is_link and a.state == ActionState.DONE]

    @property
    def failed_targets(self) -> list[str]:
        """Targets whose link failed or never ran."""
        return [a.target for a in self.actions if a.is_link and a.state == ActionState.FAILED]

    def to_dict(self) -> dict[str, Any]:
        return {
            "actions": [a.to_dict() for a in self.actions],
            "total_elapsed": self.total_elapsed,
            "success": self.success,
        }
