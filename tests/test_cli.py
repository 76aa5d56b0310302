"""Tests for the pipexec command line."""

import json
import textwrap

import pytest
from click.testing import CliRunner

from pipexec.cli import EXIT_CONFIG, EXIT_FAILED, EXIT_PASSED, cli

PIPELINE = textwrap.dedent("""
    name: demo
    on:
      push:
        branches: [stable]
      pull_request:
        branches: [stable]
    steps:
      build:
        run: echo build {flags} >> calls.log
      test:
        run: echo test {flags} >> calls.log; exit ${FAIL_TEST:-0}
      format-check:
        run: echo format >> calls.log
        flag_insensitive: true
    configurations:
      default: [build, test, format-check]
""")


@pytest.fixture
def project(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    for var in ("GITHUB_EVENT_NAME", "GITHUB_REF_NAME", "GITHUB_REF", "GITHUB_BASE_REF", "FAIL_TEST"):
        monkeypatch.delenv(var, raising=False)
    (tmp_path / "pipexec.yml").write_text(PIPELINE)
    return tmp_path


def _invoke(*args):
    return CliRunner().invoke(cli, list(args))


def test_run_passes(project):
    result = _invoke("run", "--branch", "stable")

    assert result.exit_code == EXIT_PASSED, result.output
    assert "RUN STARTED" in result.output
    assert "default: PASSED (3/3 steps run)" in result.output
    assert (project / "calls.log").read_text().split() == ["build", "test", "format"]


def test_run_fails_with_exit_one(project, monkeypatch):
    monkeypatch.setenv("FAIL_TEST", "3")

    result = _invoke("run", "--branch", "stable", "--report", "out/report.json")

    assert result.exit_code == EXIT_FAILED
    assert "STEP FAILED: test" in result.output
    assert "Exit code: 3" in result.output
    assert (project / "calls.log").read_text().split() == ["build", "test"]
    report = json.loads((project / "out" / "report.json").read_text())
    assert report["configurations"]["default"]["failed_step"] == "test"


def test_run_not_triggered(project):
    result = _invoke("run", "--event", "pull_request", "--branch", "feature/x")

    assert result.exit_code == EXIT_PASSED
    assert "NOT TRIGGERED" in result.output
    assert not (project / "calls.log").exists()


def test_run_uses_ci_environment(project, monkeypatch):
    monkeypatch.setenv("GITHUB_EVENT_NAME", "pull_request")
    monkeypatch.setenv("GITHUB_BASE_REF", "stable")

    result = _invoke("run")

    assert result.exit_code == EXIT_PASSED
    assert "Trigger: pull_request -> stable" in result.output


def test_run_invalid_definition(project):
    (project / "pipexec.yml").write_text("configurations:\n  default: []\n")

    result = _invoke("run", "--branch", "stable")

    assert result.exit_code == EXIT_CONFIG
    assert not (project / "calls.log").exists()


def test_run_unknown_only(project):
    result = _invoke("run", "--branch", "stable", "--only", "multi")
    assert result.exit_code == EXIT_CONFIG


def test_missing_workflow(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert _invoke("run", "--branch", "stable").exit_code == EXIT_CONFIG
    assert _invoke("run", "--workflow", "nope.yml").exit_code == EXIT_CONFIG


def test_multiple_workflows(project):
    (project / "other_workflow.py").write_text("")
    assert _invoke("validate").exit_code == EXIT_CONFIG
    assert _invoke("validate", "--workflow", "pipexec.yml").exit_code == EXIT_PASSED


def test_validate(project):
    result = _invoke("validate")
    assert result.exit_code == EXIT_PASSED
    assert "OK (1 configuration(s))" in result.output

    (project / "pipexec.yml").write_text("configurations:\n  a: [nope]\n")
    assert _invoke("validate").exit_code == EXIT_CONFIG


def test_plan(project):
    (project / "pipexec.yml").write_text(
        PIPELINE + "  multi:\n    flags: [multi]\n    steps: [build, format-check]\n"
    )

    result = _invoke("plan")

    assert result.exit_code == EXIT_PASSED, result.output
    assert "on push: stable" in result.output
    assert "  1. build: echo build --features multi >> calls.log" in result.output
    assert "  2. format-check: echo format >> calls.log" in result.output
    assert not (project / "calls.log").exists()


@pytest.mark.parametrize("args", [["run", "--branch", "stable"], ["validate"], ["plan"]])
def test_broken_python_workflow_exits_with_config_error(project, args):
    (project / "pipexec.yml").unlink()
    (project / "bad_workflow.py").write_text("def workflow():\n    raise RuntimeError('boom')\n")

    result = _invoke(*args)

    assert result.exit_code == EXIT_CONFIG, result.output
    assert "bad_workflow.py could not be loaded" in result.output
    assert "RuntimeError: boom" in result.output


def test_duplicate_yaml_key_exits_with_config_error(project):
    (project / "pipexec.yml").write_text(PIPELINE + "  default: [build]\n")

    result = _invoke("validate")

    assert result.exit_code == EXIT_CONFIG
    assert "Duplicate key 'default'" in result.output


def test_unexpected_error_is_reported(project, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("worker pool died")

    monkeypatch.setattr("pipexec.cli.execute", explode)

    result = _invoke("run", "--branch", "stable")

    assert result.exit_code == EXIT_FAILED
    assert "Error: worker pool died" in result.output
    assert isinstance(result.exception, SystemExit)
