"""Error types and exit-code classification for task runs."""

from __future__ import annotations

from pathlib import Path

# POSIX shells report "command not found" / "not executable" with these codes.
COMMAND_NOT_FOUND_CODES: tuple[int, ...] = (126, 127)

INTERRUPTED_EXIT_CODE = 130

TOOL_HINTS: dict[str, str] = {
    "docker-compose": "Install Docker Compose and ensure the Docker daemon is running.",
    "docker": "Install Docker and ensure the daemon is running.",
    "pg_ctl": "Install PostgreSQL server binaries or enter the nix dev shell.",
    "createdb": "Install PostgreSQL client binaries or enter the nix dev shell.",
    "createuser": "Install PostgreSQL client binaries or enter the nix dev shell.",
    "psql": "Install the PostgreSQL client (psql) or fix PATH.",
    "diesel": "Install diesel_cli (cargo install diesel_cli --no-default-features --features postgres).",
    "cargo": "Install the Rust toolchain (rustup) or enter the nix dev shell.",
    "nix": "Install Nix (https://nixos.org/download).",
    "just": "Install just or call runbook directly.",
}


class RunbookError(Exception):
    """Base class for configuration errors reported before or during a run."""


class TaskFileError(RunbookError):
    """The task file cannot be read or does not parse."""

    def __init__(self, message: str, path: Path | None = None, lineno: int | None = None) -> None:
        self.message = message
        self.path = path
        self.lineno = lineno
        super().__init__(str(self))

    def __str__(self) -> str:
        where = str(self.path) if self.path else "<task file>"
        if self.lineno is not None:
            where = f"{where}:{self.lineno}"
        return f"{where}: {self.message}"


class UnknownTaskError(RunbookError):
    def __init__(self, name: str, known: list[str] | None = None) -> None:
        self.name = name
        self.known = known or []
        msg = f"Unknown task: {name}"
        if self.known:
            msg += f" (available: {', '.join(self.known)})"
        super().__init__(msg)


class TaskCycleError(RunbookError):
    """Tasks reference each other in a loop."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Task cycle detected: {' -> '.join(cycle)}")


class ConfigError(RunbookError):
    """A runtime option (flag or environment variable) has an invalid value."""


class InvalidTransitionError(RunbookError):
    def __init__(self, task: str, current: str, target: str) -> None:
        self.task = task
        super().__init__(f"Task {task}: cannot move from {current} to {target}")


def is_command_not_found(exit_code: int) -> bool:
    """Return ``True`` when the shell could not find or execute the command."""
    return exit_code in COMMAND_NOT_FOUND_CODES


def tool_hint(command: str) -> str | None:
    """Return an install hint for the first known tool mentioned in *command*."""
    if not command:
        return None
    words = command.replace("|", " ").replace(";", " ").replace("&", " ").split()
    for word in words:
        name = word.rsplit("/", 1)[-1]
        if name in TOOL_HINTS:
            return TOOL_HINTS[name]
    return None
