"""Parse justfile-style task files into a :class:`TaskRegistry`.

Supported subset::

    # Start the database          <- doc comment for the next task
    db := "data/"                  <- variable, used as {{db}} in lines
    export PGDATA := "data/"       <- variable also exported to commands
    alias up := start-db
    set shell := ["bash", "-uc"]

    start-db:
        pg_ctl start -D {{db}}

    @init-db: start-db             <- quiet task with a header dependency
        -createuser postgres       <- "-" ignores failure, "@" toggles echo
        diesel setup
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from runbook import log
from runbook.errors import TaskFileError
from runbook.io_utils import read_text
from runbook.tasks.model import CommandLine, Task, TaskRegistry

_NAME = r"[A-Za-z_][A-Za-z0-9_-]*"

_ASSIGN_RE = re.compile(rf"^(export\s+)?({_NAME})\s*:=\s*(.*)$")
_ALIAS_RE = re.compile(rf"^alias\s+({_NAME})\s*:=\s*({_NAME})\s*$")
_SET_RE = re.compile(rf"^set\s+({_NAME})(?:\s*:=\s*(.*))?$")
_HEADER_RE = re.compile(rf"^(@)?({_NAME})([^:]*):(.*)$")
_INTERP_RE = re.compile(r"\{\{\{\{|\{\{(.*?)\}\}")

_Fail = Callable[[str, "int | None"], TaskFileError]


@dataclass
class _PendingTask:
    name: str
    quiet: bool
    dependencies: list[str]
    doc: str
    lineno: int
    raw_lines: list[tuple[str, int]] = field(default_factory=list)


def load_task_file(path: Path) -> TaskRegistry:
    """Read and parse the task file at *path*."""
    try:
        text = read_text(path)
    except OSError as e:
        raise TaskFileError(f"cannot read task file: {e.strerror or e}", path=path) from e
    except UnicodeDecodeError as e:
        raise TaskFileError("task file is not valid UTF-8", path=path) from e
    registry = parse_task_file(text, path=path)
    log.debug(f"Loaded {len(registry)} task(s) from {path}")
    return registry


def parse_task_file(text: str, path: Path | None = None) -> TaskRegistry:
    registry = TaskRegistry(source=str(path) if path else "")
    pending: list[_PendingTask] = []
    current: _PendingTask | None = None
    doc = ""

    def fail(message: str, lineno: int | None) -> TaskFileError:
        return TaskFileError(message, path=path, lineno=lineno)

    lines = text.splitlines()
    i = 0
    while i < len(lines):
        lineno = i + 1
        raw = lines[i]
        i += 1

        if not raw.strip():
            doc = ""
            continue

        if raw[0] in " \t":
            if current is None:
                raise fail("indented line outside of a task", lineno)
            body = raw.strip()
            # Trailing backslash joins the next body line.
            while body.endswith("\\") and i < len(lines) and lines[i][:1] in (" ", "\t"):
                body = body[:-1].rstrip() + " " + lines[i].strip()
                i += 1
            current.raw_lines.append((body, lineno))
            continue

        current = None
        stripped = raw.strip()

        if stripped.startswith("#"):
            doc = stripped.lstrip("#").strip()
            continue

        m = _ALIAS_RE.match(stripped)
        if m:
            alias, target = m.groups()
            if alias in registry.aliases:
                raise fail(f"duplicate alias: {alias}", lineno)
            registry.aliases[alias] = target
            doc = ""
            continue

        m = _SET_RE.match(stripped)
        if m:
            _apply_setting(registry, m.group(1), m.group(2), fail, lineno)
            doc = ""
            continue

        m = _ASSIGN_RE.match(stripped)
        if m:
            exported, name, value = m.groups()
            registry.variables[name] = _parse_value(value, fail, lineno)
            if exported:
                registry.exports[name] = registry.variables[name]
            doc = ""
            continue

        m = _HEADER_RE.match(_strip_comment(stripped))
        if m:
            quiet, name, params, deps = m.groups()
            if params.strip():
                raise fail(f"task {name} declares parameters, which are not supported", lineno)
            if deps.startswith("="):
                raise fail(f"invalid assignment: {stripped}", lineno)
            if any(p.name == name for p in pending):
                raise fail(f"duplicate task: {name}", lineno)
            current = _PendingTask(
                name=name,
                quiet=bool(quiet),
                dependencies=deps.split(),
                doc=doc,
                lineno=lineno,
            )
            pending.append(current)
            doc = ""
            continue

        raise fail(f"cannot parse line: {stripped}", lineno)

    for p in pending:
        registry.tasks[p.name] = Task(
            name=p.name,
            lines=tuple(
                _command_line(_interpolate(body, registry.variables, fail, ln), ln, p.quiet)
                for body, ln in p.raw_lines
            ),
            dependencies=tuple(p.dependencies),
            quiet=p.quiet,
            doc=p.doc,
            lineno=p.lineno,
        )

    _check_references(registry, pending, fail)
    return registry


def _strip_comment(line: str) -> str:
    if " #" in line:
        return line.split(" #", 1)[0].rstrip()
    return line


def _parse_value(value: str, fail: _Fail, lineno: int) -> str:
    value = value.strip()
    if value.startswith('"'):
        end = value.rfind('"')
        if end <= 0:
            raise fail("unterminated string", lineno)
        try:
            return json.loads(value[: end + 1])
        except ValueError as e:
            raise fail(f"invalid string literal: {value[: end + 1]}", lineno) from e
    if value.startswith("'"):
        end = value.find("'", 1)
        if end < 0:
            raise fail("unterminated string", lineno)
        return value[1:end]
    return _strip_comment(value)


def _apply_setting(registry: TaskRegistry, name: str, value: str | None, fail: _Fail, lineno: int) -> None:
    if name != "shell":
        log.debug(f"Ignoring unsupported setting: {name}")
        return
    try:
        parsed = json.loads(value or "")
    except ValueError as e:
        raise fail('set shell expects a list like ["bash", "-c"]', lineno) from e
    if not isinstance(parsed, list) or not parsed or not all(isinstance(x, str) for x in parsed):
        raise fail('set shell expects a list like ["bash", "-c"]', lineno)
    registry.shell = parsed


def _interpolate(body: str, variables: dict[str, str], fail: _Fail, lineno: int) -> str:
    def replace(m: re.Match[str]) -> str:
        if m.group(0) == "{{{{":
            return "{{"
        name = m.group(1).strip()
        if name not in variables:
            raise fail(f"unknown variable in interpolation: {name}", lineno)
        return variables[name]

    return _INTERP_RE.sub(replace, body)


def _command_line(body: str, lineno: int, task_quiet: bool) -> CommandLine:
    at = False
    dash = False
    while body[:1] in ("@", "-"):
        if body[0] == "@" and not at:
            at = True
        elif body[0] == "-" and not dash:
            dash = True
        else:
            break
        body = body[1:]
    return CommandLine(
        text=body.lstrip(),
        quiet=task_quiet != at,
        ignore_failure=dash,
        lineno=lineno,
    )


def _check_references(registry: TaskRegistry, pending: list[_PendingTask], fail: _Fail) -> None:
    for alias, target in registry.aliases.items():
        if alias in registry.tasks:
            raise fail(f"alias {alias} shadows a task of the same name", None)
        if target not in registry.tasks:
            raise fail(f"alias {alias} points to unknown task {target}", None)
    for p in pending:
        for dep in p.dependencies:
            if dep not in registry:
                raise fail(f"task {p.name} depends on unknown task {dep}", p.lineno)
