"""Configuration defaults, env vars, and runtime options for runbook."""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from runbook.errors import ConfigError


DEFAULT_SHELL: tuple[str, ...] = ("sh", "-cu")

TASK_FILE_NAMES: tuple[str, ...] = ("justfile", "Justfile", ".justfile")


@dataclass
class Config:
    """Runtime configuration, filled from CLI flags with env var fallbacks."""

    # Task file
    task_file: str = ""

    # Execution
    shell: list[str] = field(default_factory=list)
    dry_run: bool = False

    # Readiness wait after `just <task>` calls (off by default)
    ready_check: str = ""
    ready_timeout: float = 30.0
    ready_interval: float = 1.0

    # Misc
    verbose: bool = False

    def __post_init__(self) -> None:
        if not self.task_file:
            self.task_file = os.environ.get("RUNBOOK_FILE", "")
        if not self.shell:
            raw = os.environ.get("RUNBOOK_SHELL", "")
            if raw:
                try:
                    self.shell = shlex.split(raw)
                except ValueError as e:
                    raise ConfigError(f"RUNBOOK_SHELL is not a valid command line: {e}") from e
                if not self.shell:
                    raise ConfigError("RUNBOOK_SHELL is blank")
        if not self.ready_check:
            self.ready_check = os.environ.get("RUNBOOK_READY_CHECK", "")

    @property
    def wait_after_calls(self) -> bool:
        return bool(self.ready_check)


def find_task_file(start: Path | None = None) -> Path | None:
    """Search *start* and its parents for a justfile and return the first match."""
    here = (start or Path.cwd()).resolve()
    for directory in (here, *here.parents):
        for name in TASK_FILE_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate
    return None


def resolve_shell(cfg: Config, file_shell: list[str] | None = None) -> list[str]:
    """Pick the shell: CLI/env override, then ``set shell`` from the file, then ``sh -cu``."""
    if cfg.shell:
        return list(cfg.shell)
    if file_shell:
        return list(file_shell)
    return list(DEFAULT_SHELL)
