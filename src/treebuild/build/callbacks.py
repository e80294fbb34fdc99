"""Action callback protocol for the build executor.

The executor reports every action transition here; the orchestrator uses it
to drive the console log and the progress bar.
"""

from typing import Protocol, runtime_checkable

from .models import BuildAction


@runtime_checkable
class ActionCallback(Protocol):
    """Receives action transitions from the executor (always on the executor's thread)."""

    def on_action_started(self, action: BuildAction) -> None:
        """Called when an action is submitted to the worker pool."""
        ...

    def on_action_finished(self, action: BuildAction) -> None:
        """Called when an action reaches DONE or FAILED.

        Blocked actions (a prerequisite failed) are reported here without a
        preceding on_action_started.
        """
        ...


class NullCallback:
    """No-op callback for tests and non-interactive use."""

    def on_action_started(self, action: BuildAction) -> None:
        pass

    def on_action_finished(self, action: BuildAction) -> None:
        pass
