"""Shared fixtures for runbook tests.

File handling in tests:
- Use tmp_path for any task file so tests are isolated and cleaned up.
- Task file bodies are dedented, so tests can write them as indented literals.
"""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from runbook import log
from runbook.config import Config
from runbook.tasks.model import TaskRegistry
from runbook.tasks.parser import parse_task_file


def _dedent(text: str) -> str:
    return textwrap.dedent(text).lstrip("\n")


@pytest.fixture(autouse=True)
def _reset_verbose():
    """Keep the module-level verbose switch from leaking between tests."""
    yield
    log.set_verbose(False)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove RUNBOOK_* overrides so Config defaults are deterministic."""
    for name in ("RUNBOOK_FILE", "RUNBOOK_SHELL", "RUNBOOK_READY_CHECK"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def write_justfile(tmp_path: Path):
    """Factory fixture: write a (dedented) justfile under tmp_path and return its path."""

    def _write(text: str, name: str = "justfile") -> Path:
        path = tmp_path / name
        path.write_text(_dedent(text), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def make_registry():
    """Factory fixture: parse (dedented) task file text into a TaskRegistry."""

    def _make(text: str) -> TaskRegistry:
        return parse_task_file(_dedent(text))

    return _make


@pytest.fixture
def make_config(clean_env):
    """Factory fixture: Config with env overrides cleared."""

    def _make(**kwargs) -> Config:
        return Config(**kwargs)

    return _make
