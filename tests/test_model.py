from dataclasses import FrozenInstanceError

import pytest

from pipexec.model import (
    ConfigurationResult,
    EventKind,
    Pipeline,
    PipelineResult,
    RunStatus,
    StepResult,
    StepStatus,
    Trigger,
)


def _steps(*statuses):
    return [StepResult(step=f"s{i}", command="true", status=s) for i, s in enumerate(statuses)]


def test_trigger_is_immutable_and_printable():
    t = Trigger(EventKind.PULL_REQUEST, "stable")
    assert str(t) == "pull_request@stable"
    with pytest.raises(FrozenInstanceError):
        t.branch = "main"


def test_trigger_accepts_event_name():
    t = Trigger("push", "stable")
    assert t.event is EventKind.PUSH
    assert str(t) == "push@stable"
    assert t == Trigger(EventKind.PUSH, "stable")
    assert Pipeline(name="p", configurations=[]).matches(t)
    with pytest.raises(ValueError):
        Trigger("tag", "stable")


def test_pipeline_matches_default_branch():
    p = Pipeline(name="p", configurations=[])
    assert p.matches(Trigger(EventKind.PUSH, "stable"))
    assert p.matches(Trigger(EventKind.PULL_REQUEST, "stable"))
    assert not p.matches(Trigger(EventKind.PUSH, "feature/x"))


def test_configuration_status():
    passed = ConfigurationResult("a", frozenset(), _steps(StepStatus.PASSED, StepStatus.PASSED))
    failed = ConfigurationResult(
        "b", frozenset(), _steps(StepStatus.PASSED, StepStatus.FAILED, StepStatus.SKIPPED)
    )

    assert passed.status is RunStatus.PASSED
    assert passed.failed_step is None
    assert passed.invoked == 2
    assert failed.status is RunStatus.FAILED
    assert failed.failed_step.step == "s1"
    assert failed.invoked == 2


def test_unfinished_configuration_is_not_passed():
    pending = ConfigurationResult("a", frozenset(), _steps(StepStatus.PASSED, StepStatus.PENDING))
    assert pending.status is RunStatus.FAILED


def test_pipeline_status_is_and_of_configurations():
    trigger = Trigger(EventKind.PUSH, "stable")
    ok = ConfigurationResult("a", frozenset(), _steps(StepStatus.PASSED))
    bad = ConfigurationResult("b", frozenset(), _steps(StepStatus.FAILED))

    assert PipelineResult(trigger, {"a": ok}).status is RunStatus.PASSED
    assert PipelineResult(trigger, {"a": ok, "b": bad}).status is RunStatus.FAILED
    assert PipelineResult(trigger, triggered=False).status is RunStatus.NOT_TRIGGERED
    assert PipelineResult(trigger, triggered=False).ok
