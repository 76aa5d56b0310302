# report.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from .model import ConfigurationResult, PipelineResult, StepResult


def _step_to_dict(step: StepResult) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "step": step.step,
        "command": step.command,
        "status": step.status.value,
        "exit_code": step.exit_code,
        "duration": round(step.duration, 3),
        "log": step.log,
    }
    if step.error is not None:
        data["error"] = {
            "type": type(step.error).__name__,
            "kind": getattr(step.error, "kind", None),
            "message": str(step.error),
        }
    return data


def _configuration_to_dict(result: ConfigurationResult) -> Dict[str, Any]:
    failed = result.failed_step
    return {
        "status": result.status.value,
        "flags": sorted(result.flags),
        "failed_step": failed.step if failed else None,
        "steps": [_step_to_dict(s) for s in result.steps],
    }


def result_to_dict(result: PipelineResult) -> Dict[str, Any]:
    """Convert a pipeline result to a JSON-ready dictionary."""
    return {
        "trigger": {"event": result.trigger.event.value, "branch": result.trigger.branch},
        "status": result.status.value,
        "configurations": {
            name: _configuration_to_dict(c) for name, c in result.configurations.items()
        },
    }


def write_report(result: PipelineResult, path: str | Path) -> Path:
    """Write the result as JSON, creating parent directories as needed."""
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps(result_to_dict(result), indent=2) + "\n", encoding="utf-8")
    return out
