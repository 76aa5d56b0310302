"""Tests for validation and command rendering."""

import pytest

from pipexec import ConfigurationError, configuration, pipeline, sh
from pipexec.plan import build_plan, render_command, validate


@pytest.mark.parametrize(
    "run, flags, expected",
    [
        ("cargo build {flags} --verbose", ["multi"], "cargo build --features multi --verbose"),
        ("cargo build {flags} --verbose", [], "cargo build --verbose"),
        ("cargo build --verbose", ["multi"], "cargo build --verbose --features multi"),
        ("cargo build", ["b", "a"], "cargo build --features a,b"),
        ("{flags}", [], ""),
    ],
)
def test_render_command(run, flags, expected):
    assert render_command(sh("build", run), flags) == expected


def test_flag_insensitive_step_drops_flags():
    step = sh("format-check", "cargo fmt --check", flag_insensitive=True)
    assert render_command(step, ["multi"]) == "cargo fmt --check"


def test_custom_flag_format():
    step = sh("test", "pytest {flags} -q", flag_format="-m '{flags}'")
    assert render_command(step, ["slow"]) == "pytest -m 'slow' -q"


def test_other_braces_are_untouched():
    step = sh("awk", "awk '{print $1}' file")
    assert render_command(step, ["x"]) == "awk '{print $1}' file --features x"


def test_validate_collects_every_problem():
    p = pipeline(
        "broken",
        configuration("empty"),
        configuration("dupe", sh("a", "true")),
        configuration("dupe", sh("b", "")),
        configuration("refs", "missing"),
        configuration("fmt", sh("c", "true", flag_format="--features")),
    )

    with pytest.raises(ConfigurationError) as exc:
        validate(p)

    problems = "\n".join(exc.value.problems)
    assert "configuration 'empty' has no steps" in problems
    assert "duplicate configuration names: ['dupe']" in problems
    assert "step 'b' has an empty command" in problems
    assert "unknown step 'missing'" in problems
    assert "flag_format must contain {flags}" in problems
    assert "Invalid pipeline 'broken'" in str(exc.value)


def test_validate_rejects_empty_pipeline():
    with pytest.raises(ConfigurationError, match="Invalid pipeline"):
        validate(pipeline("nothing"))


def test_validate_rejects_non_positive_timeout():
    with pytest.raises(ConfigurationError):
        validate(pipeline("t", configuration("a", sh("x", "true", timeout=0))))


def test_build_plan_resolves_catalog_in_order():
    p = pipeline(
        "ci",
        configuration("default", "build", sh("inline", "echo hi")),
        configuration("multi", "build", flags=["multi"]),
        catalog=[sh("build", "cargo build {flags}")],
    )

    plan = build_plan(p)

    assert list(plan) == ["default", "multi"]
    assert [(s.step.name, s.command) for s in plan["default"]] == [
        ("build", "cargo build"),
        ("inline", "echo hi"),
    ]
    assert [s.command for s in plan["multi"]] == ["cargo build --features multi"]
