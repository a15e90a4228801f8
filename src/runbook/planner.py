"""Expand task invocations into a flat, ordered list of steps.

Expansion happens before anything runs, so a cycle between tasks is reported
as a configuration error instead of surfacing halfway through a run.
"""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import Enum

from runbook import log
from runbook.errors import TaskCycleError
from runbook.tasks.model import CommandLine, TaskRegistry

CALL_PROGRAMS: tuple[str, ...] = ("just", "runbook")


class StepKind(str, Enum):
    COMMAND = "command"
    WAIT_READY = "wait-ready"


@dataclass(frozen=True)
class Step:
    """One unit of work: a shell command, or a readiness wait after a task call."""

    kind: StepKind
    task: str
    line: CommandLine
    chain: tuple[str, ...] = ()
    frames: tuple[int, ...] = ()
    called: tuple[str, ...] = ()
    # Enclosing `-just <task>` calls as (call id, caller depth), outermost first.
    guards: tuple[tuple[int, int], ...] = ()

    @property
    def echo(self) -> bool:
        return not self.line.quiet


def parse_call(text: str, registry: TaskRegistry) -> list[str] | None:
    """Return the task names if *text* is solely a ``just <task>...`` call.

    Lines with flags, shell operators or unknown task names are not calls and
    run as literal shell commands.
    """
    try:
        words = shlex.split(text)
    except ValueError:
        return None
    if len(words) < 2 or words[0] not in CALL_PROGRAMS:
        return None
    names = words[1:]
    if not all(name in registry for name in names):
        return None
    return [registry.resolve(name) for name in names]


def build_plan(
    registry: TaskRegistry,
    names: list[str],
    *,
    wait_after_calls: bool = False,
) -> list[Step]:
    """Flatten *names* (run in order) into the steps to execute."""
    planner = _Planner(registry, wait_after_calls)
    steps: list[Step] = []
    seen: set[str] = set()
    for name in names:
        name = registry.resolve(name)
        if name in seen:
            continue
        steps.extend(planner.expand(name, (), seen))
    log.debug(f"Planned {len(steps)} step(s) for {' '.join(names)}")
    return steps


class _Planner:
    def __init__(self, registry: TaskRegistry, wait_after_calls: bool) -> None:
        self._registry = registry
        self._wait = wait_after_calls
        self._next_frame = 0
        self._next_call = 0

    def expand(
        self,
        name: str,
        chain: tuple[str, ...],
        seen: set[str],
        frames: tuple[int, ...] = (),
        guards: tuple[tuple[int, int], ...] = (),
    ) -> list[Step]:
        """Expand one task. *seen* holds header dependencies already planned in this invocation."""
        if name in chain:
            start = chain.index(name)
            raise TaskCycleError([*chain[start:], name])
        chain = (*chain, name)
        self._next_frame += 1
        frames = (*frames, self._next_frame)
        task = self._registry.get(name)

        steps: list[Step] = []
        for dep in task.dependencies:
            dep = self._registry.resolve(dep)
            if dep in seen:
                continue
            steps.extend(self.expand(dep, chain, seen, frames, guards))
            seen.add(dep)

        for line in task.lines:
            called = parse_call(line.text, self._registry)
            if called is None:
                steps.append(Step(StepKind.COMMAND, name, line, chain, frames, guards=guards))
                continue
            # A `just x` line is a fresh invocation with its own dependency set.
            call_seen: set[str] = set()
            call_guards = guards
            if line.ignore_failure:
                self._next_call += 1
                call_guards = (*guards, (self._next_call, len(chain)))
            for target in called:
                if target in call_seen:
                    continue
                steps.extend(self.expand(target, chain, call_seen, frames, call_guards))
            if self._wait:
                steps.append(
                    Step(StepKind.WAIT_READY, name, line, chain, frames, tuple(called), guards=guards)
                )

        seen.add(name)
        return steps
