import json

from pipexec import EventKind, Trigger, configuration, execute, sh
from pipexec.report import result_to_dict, write_report


def test_report_shape(tmp_path):
    result = execute(
        Trigger(EventKind.PUSH, "stable"),
        [
            configuration("default", sh("build", "echo built"), sh("test", "exit 1"), sh("lint", "true")),
            configuration("multi", sh("build", "true"), flags=["multi"]),
        ],
        root=tmp_path,
    )

    data = result_to_dict(result)

    assert data["trigger"] == {"event": "push", "branch": "stable"}
    assert data["status"] == "failed"
    default = data["configurations"]["default"]
    assert default["status"] == "failed"
    assert default["failed_step"] == "test"
    assert [s["status"] for s in default["steps"]] == ["passed", "failed", "skipped"]
    assert default["steps"][0]["log"] == "built\n"
    assert default["steps"][1]["error"]["type"] == "StepExecutionError"
    assert default["steps"][1]["error"]["kind"] == "step_failed"
    assert data["configurations"]["multi"]["flags"] == ["multi"]


def test_write_report(tmp_path):
    result = execute(Trigger(EventKind.PUSH, "main"), [configuration("a", sh("x", "true"))], root=tmp_path)

    path = write_report(result, tmp_path / "out" / "report.json")

    data = json.loads(path.read_text())
    assert data == {
        "trigger": {"event": "push", "branch": "main"},
        "status": "not_triggered",
        "configurations": {},
    }


def test_report_with_event_given_by_name(tmp_path):
    result = execute(Trigger("pull_request", "stable"), [configuration("a", sh("x", "true"))], root=tmp_path)

    assert result_to_dict(result)["trigger"] == {"event": "pull_request", "branch": "stable"}
