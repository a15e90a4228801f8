"""Tests for runbook.planner: expansion of task references into steps."""

from __future__ import annotations

import pytest

from runbook.errors import TaskCycleError, UnknownTaskError
from runbook.planner import StepKind, build_plan, parse_call


def _texts(steps) -> list[str]:
    return [s.line.text for s in steps if s.kind == StepKind.COMMAND]


INIT_DB = """
start-db:
    pg_ctl start -D data/
    sleep 0

init-db:
    pg_ctl init -D data/
    just start-db
    createdb
    diesel setup
"""


class TestParseCall:
    def test_plain_call(self, make_registry):
        reg = make_registry("a:\n    echo a\nb:\n    echo b\n")
        assert parse_call("just a", reg) == ["a"]
        assert parse_call("just a b", reg) == ["a", "b"]

    def test_call_through_alias(self, make_registry):
        reg = make_registry("alias x := a\na:\n    echo a\n")
        assert parse_call("just x", reg) == ["a"]

    @pytest.mark.parametrize("text", [
        "just",
        "just --list",
        "just a && echo done",
        "just missing",
        "echo just a",
        "just 'unterminated",
    ])
    def test_not_a_call(self, make_registry, text):
        reg = make_registry("a:\n    echo a\n")
        assert parse_call(text, reg) is None


class TestExpansion:
    def test_task_without_references_runs_its_lines(self, make_registry):
        reg = make_registry("a:\n    echo one\n    echo two\n    echo three\n")
        assert _texts(build_plan(reg, ["a"])) == ["echo one", "echo two", "echo three"]

    def test_reference_expands_in_place(self, make_registry):
        reg = make_registry(INIT_DB)
        assert _texts(build_plan(reg, ["init-db"])) == [
            "pg_ctl init -D data/",
            "pg_ctl start -D data/",
            "sleep 0",
            "createdb",
            "diesel setup",
        ]

    def test_reference_as_first_step(self, make_registry):
        reg = make_registry("""
            db-start:
                docker-compose up -d
            db-init:
                just db-start
                diesel setup
        """)
        assert _texts(build_plan(reg, ["db-init"])) == ["docker-compose up -d", "diesel setup"]

    def test_chain_records_call_path(self, make_registry):
        reg = make_registry(INIT_DB)
        steps = build_plan(reg, ["init-db"])
        assert steps[0].chain == ("init-db",)
        assert steps[1].chain == ("init-db", "start-db")
        assert steps[1].task == "start-db"
        assert steps[3].chain == ("init-db",)

    def test_each_call_gets_its_own_frame(self, make_registry):
        reg = make_registry("a:\n    echo a\nb:\n    just a\n    just a\n")
        steps = build_plan(reg, ["b"])
        assert _texts(steps) == ["echo a", "echo a"]
        assert steps[0].frames != steps[1].frames

    def test_nested_references(self, make_registry):
        reg = make_registry("""
            a:
                echo a
            b:
                just a
                echo b
            c:
                just b
                echo c
        """)
        assert _texts(build_plan(reg, ["c"])) == ["echo a", "echo b", "echo c"]

    def test_header_dependencies_run_first_once(self, make_registry):
        reg = make_registry("""
            a:
                echo a
            b: a
                echo b
            c: a b
                echo c
        """)
        assert _texts(build_plan(reg, ["c"])) == ["echo a", "echo b", "echo c"]

    def test_top_level_names_share_dependencies(self, make_registry):
        reg = make_registry("a:\n    echo a\nb: a\n    echo b\n")
        assert _texts(build_plan(reg, ["a", "b"])) == ["echo a", "echo b"]

    def test_call_line_is_fresh_invocation(self, make_registry):
        reg = make_registry("""
            a:
                echo a
            b: a
                echo b
            c: a
                just b
        """)
        assert _texts(build_plan(reg, ["c"])) == ["echo a", "echo a", "echo b"]

    def test_duplicate_target_in_one_call_planned_once(self, make_registry):
        reg = make_registry("a:\n    echo a\nb:\n    just a a\n")
        assert _texts(build_plan(reg, ["b"])) == ["echo a"]

    def test_ignored_call_guards_only_its_own_steps(self, make_registry):
        reg = make_registry("""
            a:
                echo a
            b:
                -just a
                echo b
        """)
        steps = build_plan(reg, ["b"])
        assert _texts(steps) == ["echo a", "echo b"]
        assert len(steps[0].guards) == 1
        assert steps[0].guards[0][1] == 1
        assert steps[1].guards == ()

    def test_wait_step_carries_call_line(self, make_registry):
        reg = make_registry("a:\n    echo a\nb:\n    -just a\n")
        wait = build_plan(reg, ["b"], wait_after_calls=True)[-1]
        assert wait.kind == StepKind.WAIT_READY
        assert wait.line.text == "just a"
        assert wait.line.ignore_failure

    def test_plain_call_is_unguarded(self, make_registry):
        reg = make_registry("a:\n    echo a\nb:\n    just a\n")
        assert all(s.guards == () for s in build_plan(reg, ["b"]))

    def test_unknown_top_level_task(self, make_registry):
        reg = make_registry("a:\n    echo a\n")
        with pytest.raises(UnknownTaskError):
            build_plan(reg, ["nope"])


class TestCycles:
    def test_self_reference(self, make_registry):
        reg = make_registry("a:\n    just a\n")
        with pytest.raises(TaskCycleError) as exc:
            build_plan(reg, ["a"])
        assert exc.value.cycle == ["a", "a"]

    def test_mutual_reference(self, make_registry):
        reg = make_registry("a:\n    just b\nb:\n    just a\n")
        with pytest.raises(TaskCycleError, match="a -> b -> a"):
            build_plan(reg, ["a"])

    def test_cycle_through_header_dependency(self, make_registry):
        reg = make_registry("a: b\n    echo a\nb:\n    just a\n")
        with pytest.raises(TaskCycleError):
            build_plan(reg, ["a"])


class TestReadinessSteps:
    def test_off_by_default(self, make_registry):
        reg = make_registry(INIT_DB)
        kinds = {s.kind for s in build_plan(reg, ["init-db"])}
        assert kinds == {StepKind.COMMAND}

    def test_wait_inserted_after_call(self, make_registry):
        reg = make_registry(INIT_DB)
        steps = build_plan(reg, ["init-db"], wait_after_calls=True)
        kinds = [s.kind for s in steps]
        assert kinds == [
            StepKind.COMMAND,
            StepKind.COMMAND,
            StepKind.COMMAND,
            StepKind.WAIT_READY,
            StepKind.COMMAND,
            StepKind.COMMAND,
        ]
        assert steps[3].called == ("start-db",)
        assert steps[3].task == "init-db"
