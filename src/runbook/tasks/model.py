"""Task and TaskRegistry data models used across parsing, planning and execution."""

from __future__ import annotations

from dataclasses import dataclass, field

from runbook.errors import UnknownTaskError


@dataclass(frozen=True)
class CommandLine:
    text: str
    quiet: bool = False
    ignore_failure: bool = False
    lineno: int = 0


@dataclass(frozen=True)
class Task:
    name: str
    lines: tuple[CommandLine, ...] = ()
    dependencies: tuple[str, ...] = ()
    quiet: bool = False
    doc: str = ""
    lineno: int = 0


@dataclass
class TaskRegistry:
    """All tasks parsed from one file, keyed by name in declaration order."""

    tasks: dict[str, Task] = field(default_factory=dict)
    aliases: dict[str, str] = field(default_factory=dict)
    variables: dict[str, str] = field(default_factory=dict)
    exports: dict[str, str] = field(default_factory=dict)
    shell: list[str] = field(default_factory=list)
    source: str = ""

    def __contains__(self, name: object) -> bool:
        return name in self.tasks or name in self.aliases

    def __len__(self) -> int:
        return len(self.tasks)

    def names(self) -> list[str]:
        return list(self.tasks)

    def resolve(self, name: str) -> str:
        """Return the canonical task name for *name* (following aliases)."""
        if name in self.tasks:
            return name
        target = self.aliases.get(name)
        if target is not None and target in self.tasks:
            return target
        raise UnknownTaskError(name, self.names())

    def get(self, name: str) -> Task:
        return self.tasks[self.resolve(name)]

    def default_task(self) -> Task | None:
        for task in self.tasks.values():
            return task
        return None

    def aliases_for(self, name: str) -> list[str]:
        return [alias for alias, target in self.aliases.items() if target == name]
