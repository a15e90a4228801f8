"""Per-task lifecycle tracking for a single run."""

from __future__ import annotations

from enum import Enum

from runbook import log
from runbook.errors import InvalidTransitionError


class TaskState(str, Enum):
    NOT_STARTED = "not-started"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class TaskTracker:
    """Tracks ``NOT_STARTED -> RUNNING -> (SUCCEEDED | FAILED)`` per task.

    Usage::

        tracker = TaskTracker(["start-db", "init-db"])
        tracker.start("init-db")       # not-started -> running
        tracker.succeed("init-db")     # running -> succeeded
        tracker.fail("init-db")        # running -> failed
    """

    def __init__(self, names: list[str] | None = None) -> None:
        self._state: dict[str, TaskState] = {}
        for name in names or []:
            self._state.setdefault(name, TaskState.NOT_STARTED)

    # ── state queries ────────────────────────────────────────────

    def state(self, name: str) -> TaskState:
        return self._state.get(name, TaskState.NOT_STARTED)

    def count(self, state: TaskState) -> int:
        return sum(1 for s in self._state.values() if s == state)

    def running(self) -> list[str]:
        return [n for n, s in self._state.items() if s == TaskState.RUNNING]

    # ── transitions ──────────────────────────────────────────────

    def _move(self, name: str, allowed: tuple[TaskState, ...], target: TaskState) -> None:
        current = self.state(name)
        if current not in allowed:
            raise InvalidTransitionError(name, current.value, target.value)
        self._state[name] = target
        log.debug(f"Task {name}: {current.value} -> {target.value}")

    def start(self, name: str) -> None:
        self._move(name, (TaskState.NOT_STARTED,), TaskState.RUNNING)

    def succeed(self, name: str) -> None:
        self._move(name, (TaskState.RUNNING,), TaskState.SUCCEEDED)

    def fail(self, name: str) -> None:
        self._move(name, (TaskState.RUNNING,), TaskState.FAILED)

    def reset(self, name: str) -> None:
        """Return a finished task to NOT_STARTED so a later ``just`` call can run it again."""
        if self.state(name) == TaskState.RUNNING:
            raise InvalidTransitionError(name, TaskState.RUNNING.value, TaskState.NOT_STARTED.value)
        self._state[name] = TaskState.NOT_STARTED

    # ── diagnostics ──────────────────────────────────────────────

    def summary(self) -> dict[str, TaskState]:
        return dict(self._state)
