"""runbook CLI: run named tasks from a justfile.

Installed as ``runbook`` console_script via pipx / pip.
"""

from __future__ import annotations

import shlex
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.markup import escape

from runbook import __version__
from runbook.config import Config, find_task_file

if TYPE_CHECKING:
    from runbook.tasks.model import TaskRegistry


CONTEXT_SETTINGS = dict(help_option_names=["-h", "--help"])


def _parse_shell_option(raw: str) -> list[str]:
    if not raw:
        return []
    try:
        words = shlex.split(raw)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--shell") from e
    if not words:
        raise click.BadParameter("Shell cannot be empty (example: --shell 'bash -c').", param_hint="--shell")
    return words


@click.command(context_settings=CONTEXT_SETTINGS)
@click.argument("tasks", nargs=-1)
@click.option("-f", "--file", "task_file", default="", help="Task file (default: nearest justfile)")
@click.option("-l", "--list", "list_tasks", is_flag=True, help="List available tasks and exit")
@click.option("--show", "show_task", default="", metavar="TASK", help="Print a task's commands and exit")
@click.option("-n", "--dry-run", is_flag=True, help="Show what would run without executing")
@click.option("--shell", "shell", default="", help="Shell used to run each line (default: sh -cu)")
@click.option("--ready-check", default="", help="Command polled after each `just <task>` call until it succeeds")
@click.option("--ready-timeout", type=float, default=30.0, show_default=True, help="Seconds to wait for --ready-check")
@click.option("--ready-interval", type=float, default=1.0, show_default=True, help="Seconds between --ready-check probes")
@click.option("-v", "--verbose", is_flag=True, help="Show debug output")
@click.version_option(__version__, prog_name="runbook")
def main(
    tasks: tuple[str, ...],
    task_file: str,
    list_tasks: bool,
    show_task: str,
    dry_run: bool,
    shell: str,
    ready_check: str,
    ready_timeout: float,
    ready_interval: float,
    verbose: bool,
) -> None:
    """runbook: run named tasks from a justfile.

    Runs each task's lines in order through the shell and stops at the first
    failing line. A line that is only ``just <task>`` runs that task in place.

    \b
    EXAMPLES:
      runbook                        # Run the first task in the file
      runbook init-db                # Start the database, then diesel setup
      runbook -f ops/justfile psql   # Use another task file
      runbook --list                 # Show available tasks
      runbook -n init-db             # Print the plan only
      runbook --ready-check 'pg_isready' init-db
    """
    from runbook import log as rlog

    rlog.set_verbose(verbose)

    if ready_timeout < 0 or ready_interval <= 0:
        raise click.BadParameter(
            "--ready-timeout must be >= 0 and --ready-interval > 0.",
            param_hint="--ready-timeout/--ready-interval",
        )

    from runbook.errors import ConfigError

    try:
        cfg = Config(
            task_file=task_file,
            shell=_parse_shell_option(shell),
            dry_run=dry_run,
            ready_check=ready_check,
            ready_timeout=ready_timeout,
            ready_interval=ready_interval,
            verbose=verbose,
        )
    except ConfigError as e:
        rlog.error(escape(str(e)))
        sys.exit(1)

    registry = _load_registry(cfg)

    if list_tasks:
        _show_list(registry)
        return

    if show_task:
        _show_task(registry, show_task)
        return

    names = list(tasks)
    if not names:
        default = registry.default_task()
        if default is None:
            rlog.error(f"No tasks defined in {escape(cfg.task_file)}")
            sys.exit(1)
        names = [default.name]

    _run_tasks(cfg, registry, names)


def _load_registry(cfg: Config) -> TaskRegistry:
    from runbook import log as rlog
    from runbook.errors import RunbookError
    from runbook.tasks.parser import load_task_file

    if cfg.task_file:
        path = Path(cfg.task_file)
    else:
        found = find_task_file()
        if found is None:
            rlog.error("No justfile found in this directory or any parent")
            sys.exit(1)
        path = found
    cfg.task_file = str(path)

    if not path.is_file():
        rlog.error(f"Task file not found: {escape(str(path))}")
        sys.exit(1)

    try:
        return load_task_file(path)
    except RunbookError as e:
        rlog.error(escape(str(e)))
        sys.exit(1)


def _run_tasks(cfg: Config, registry: TaskRegistry, names: list[str]) -> None:
    from runbook import log as rlog
    from runbook.errors import INTERRUPTED_EXIT_CODE, RunbookError
    from runbook.runner import Runner

    runner = Runner(registry, cfg)
    try:
        result = runner.run(names)
    except RunbookError as e:
        rlog.error(escape(str(e)))
        sys.exit(1)
    except KeyboardInterrupt:
        rlog.warn("Interrupted!")
        sys.exit(INTERRUPTED_EXIT_CODE)

    if not result.ok:
        sys.exit(result.exit_code)
    rlog.debug(f"{result.commands_run} command(s) succeeded")


def _show_list(registry: TaskRegistry) -> None:
    from runbook import log as rlog

    rlog.console.print("Available tasks:")
    if not registry.names():
        rlog.console.print("  [dim](none)[/dim]")
        return
    width = max(len(n) for n in registry.names())
    for name in registry.names():
        task = registry.get(name)
        line = f"  {escape(name.ljust(width))}"
        aliases = registry.aliases_for(name)
        if task.doc:
            line += f"  [dim]# {escape(task.doc)}[/dim]"
        if aliases:
            line += f"  [dim]\\[alias: {escape(', '.join(aliases))}][/dim]"
        rlog.console.print(line)


def _show_task(registry: TaskRegistry, name: str) -> None:
    from runbook import log as rlog
    from runbook.errors import UnknownTaskError

    try:
        task = registry.get(name)
    except UnknownTaskError as e:
        rlog.error(escape(str(e)))
        sys.exit(1)

    if task.doc:
        rlog.console.print(f"# {escape(task.doc)}")
    header = ("@" if task.quiet else "") + task.name + ":"
    if task.dependencies:
        header += " " + " ".join(task.dependencies)
    rlog.console.print(escape(header))
    for line in task.lines:
        prefix = ("-" if line.ignore_failure else "") + ("@" if line.quiet != task.quiet else "")
        rlog.console.print(f"    {escape(prefix + line.text)}")
