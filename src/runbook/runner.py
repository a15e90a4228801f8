"""Runner: executes a planned task sequence through the host shell."""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass, field

from rich.markup import escape

from runbook import log
from runbook.config import Config, resolve_shell
from runbook.errors import is_command_not_found, tool_hint
from runbook.planner import Step, StepKind, build_plan
from runbook.readiness import wait_until_ready
from runbook.state import TaskState, TaskTracker
from runbook.tasks.model import TaskRegistry


@dataclass
class RunResult:
    """Outcome of one invocation. ``exit_code`` is that of the first failing command."""

    exit_code: int = 0
    failed_task: str = ""
    failed_command: str = ""
    commands_run: int = 0
    states: dict[str, TaskState] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def _normalize_exit_code(code: int) -> int:
    # subprocess reports death-by-signal as -N; shells report 128+N.
    return 128 - code if code < 0 else code


class Runner:
    """Runs tasks sequentially, stopping at the first failing line.

    Usage::

        runner = Runner(registry, cfg)
        result = runner.run(["init-db"])
        sys.exit(result.exit_code)
    """

    def __init__(self, registry: TaskRegistry, cfg: Config) -> None:
        self.registry = registry
        self.cfg = cfg
        self.shell = resolve_shell(cfg, registry.shell)
        self.tracker = TaskTracker(registry.names())
        self._active: list[tuple[int, str]] = []  # (frame, task) from outermost in

    def plan(self, names: list[str]) -> list[Step]:
        return build_plan(self.registry, names, wait_after_calls=self.cfg.wait_after_calls)

    def run(self, names: list[str]) -> RunResult:
        steps = self.plan(names)
        if self.cfg.dry_run:
            self.show_plan(steps)
            return RunResult()

        env = os.environ.copy()
        env.update(self.registry.exports)
        result = RunResult()

        try:
            i = 0
            while i < len(steps):
                step = steps[i]
                i += 1
                self._enter(step)
                code = self._execute(step, env)
                if step.kind == StepKind.COMMAND:
                    result.commands_run += 1
                if code == 0:
                    continue
                if step.line.ignore_failure:
                    log.warn(f"Ignoring failure of [bold]{escape(step.line.text)}[/bold] (exit {code})")
                    continue
                if step.guards:
                    i = self._abandon_call(step, code, steps, i)
                    continue
                self._fail_active()
                self._report_failure(step, code)
                result.exit_code = code
                result.failed_task = step.task
                result.failed_command = step.line.text
                break
            else:
                self._leave(0)
        except KeyboardInterrupt:
            self._fail_active()
            raise
        finally:
            result.states = self.tracker.summary()

        return result

    # ── execution ────────────────────────────────────────────────

    def _execute(self, step: Step, env: dict[str, str]) -> int:
        if step.kind == StepKind.WAIT_READY:
            return self._wait_ready(step)

        if step.echo:
            log.command(step.line.text)
        try:
            proc = subprocess.run([*self.shell, step.line.text], env=env)
        except FileNotFoundError:
            log.error(f"Shell not found: {escape(self.shell[0])}")
            return 127
        return _normalize_exit_code(proc.returncode)

    def _wait_ready(self, step: Step) -> int:
        called = " ".join(step.called)
        log.info(f"Waiting for readiness after {escape(called)}: {escape(self.cfg.ready_check)}")
        ready = wait_until_ready(
            self.cfg.ready_check,
            self.shell,
            timeout=self.cfg.ready_timeout,
            interval=self.cfg.ready_interval,
        )
        if not ready:
            log.error(
                f"Readiness check did not pass within {self.cfg.ready_timeout:g}s: "
                f"{escape(self.cfg.ready_check)}"
            )
            return 1
        log.success(f"{escape(called)} is ready")
        return 0

    def _report_failure(self, step: Step, code: int) -> None:
        if step.kind == StepKind.WAIT_READY:
            return
        log.error(
            f"Task [bold]{escape(step.task)}[/bold] failed: "
            f"{escape(step.line.text)} exited with code {code}"
        )
        if is_command_not_found(code):
            hint = tool_hint(step.line.text)
            if hint:
                log.warn(f"Hint: {hint}")

    # ── task lifecycle ───────────────────────────────────────────

    def _enter(self, step: Step) -> None:
        """Close tasks the step no longer runs under and start the ones it newly enters."""
        frames = list(zip(step.frames, step.chain))
        common = 0
        while (
            common < len(self._active)
            and common < len(frames)
            and self._active[common] == frames[common]
        ):
            common += 1
        self._leave(common)
        for frame, name in frames[common:]:
            if self.tracker.state(name) != TaskState.NOT_STARTED:
                self.tracker.reset(name)
            self.tracker.start(name)
            self._active.append((frame, name))

    def _leave(self, depth: int) -> None:
        while len(self._active) > depth:
            _frame, name = self._active.pop()
            self.tracker.succeed(name)

    def _abandon_call(self, step: Step, code: int, steps: list[Step], i: int) -> int:
        """Fail the tasks inside the innermost `-just` call around *step*; return the index after it."""
        guard = step.guards[-1]
        _call, depth = guard
        self._fail_active(depth)
        log.warn(
            f"Ignoring failure of [bold]{escape(step.line.text)}[/bold] (exit {code}) "
            f"in [bold]{escape(step.task)}[/bold], called with -just"
        )
        while i < len(steps) and guard in steps[i].guards:
            i += 1
        return i

    def _fail_active(self, depth: int = 0) -> None:
        while len(self._active) > depth:
            _frame, name = self._active.pop()
            self.tracker.fail(name)

    # ── dry run ──────────────────────────────────────────────────

    def show_plan(self, steps: list[Step]) -> None:
        if not steps:
            log.info("Nothing to run.")
            return
        for step in steps:
            indent = "  " * (len(step.chain) - 1)
            if step.kind == StepKind.WAIT_READY:
                text = f"[dim](wait until ready: {escape(self.cfg.ready_check)})[/dim]"
            else:
                prefix = "-" if step.line.ignore_failure else ""
                text = escape(prefix + step.line.text)
            log.console.print(f"{indent}[cyan]{escape(step.task)}[/cyan]: {text}")
