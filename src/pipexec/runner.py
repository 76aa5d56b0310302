# runner.py
from __future__ import annotations

import logging
import os
import subprocess
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .errors import ConfigurationError, StepEnvironmentError, StepExecutionError
from .model import (
    DEFAULT_BRANCHES,
    Configuration,
    ConfigurationResult,
    EventKind,
    Pipeline,
    PipelineResult,
    StepResult,
    StepStatus,
    Trigger,
)
from .plan import PlannedStep, plan_configuration, validate
from .ui.console import Console
from .workspace import isolated_workspace, shared_workspace

logger = logging.getLogger(__name__)

# Keep this much of a step's output on the result (and in the log record).
LOG_TAIL = 4000

# Shell exit codes for "command not found" / "found but not executable".
_NOT_FOUND = 127
_NOT_EXECUTABLE = 126

TOOL_HINTS = {
    "cargo": "Install the Rust toolchain (rustup) or fix PATH.",
    "rustfmt": "Install rustfmt (rustup component add rustfmt).",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "ruff": "Install ruff (e.g., pip install ruff).",
    "git": "Install git or fix PATH.",
}


def _tail(text: str | bytes | None) -> str:
    if text is None:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return text[-LOG_TAIL:]


def _hint(command: str) -> str:
    tool = command.split()[0] if command.split() else command
    return TOOL_HINTS.get(tool, f"Install {tool} or fix PATH.")


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _fail(result: StepResult, err: StepExecutionError) -> StepResult:
    result.status = StepStatus.FAILED
    result.exit_code = err.exit_code
    result.log = err.output
    result.error = err
    return result


def _run_step(
    configuration: Configuration,
    planned: PlannedStep,
    workdir: Path,
    env: Mapping[str, str],
) -> StepResult:
    step = planned.step
    result = StepResult(step=step.name, command=planned.command, status=StepStatus.RUNNING)

    cwd = (workdir / (step.cwd or ".")).resolve()
    if not cwd.is_dir():
        return _fail(result, StepEnvironmentError(
            configuration=configuration.name,
            step=step.name,
            command=planned.command,
            exit_code=None,
            output=f"cwd not found: {cwd}",
            details={"cwd": str(cwd)},
        ))

    start = time.monotonic()
    try:
        proc = subprocess.run(
            planned.command,
            shell=True,
            cwd=str(cwd),
            env=dict(env),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,  # one log stream per step
            text=True,
            errors="replace",
            timeout=step.timeout,
        )
    except subprocess.TimeoutExpired as e:
        result.duration = time.monotonic() - start
        return _fail(result, StepEnvironmentError(
            configuration=configuration.name,
            step=step.name,
            command=planned.command,
            exit_code=None,
            output=_tail(e.output),
            details={"timeout": step.timeout},
        ))
    except OSError as e:
        result.duration = time.monotonic() - start
        return _fail(result, StepEnvironmentError(
            configuration=configuration.name,
            step=step.name,
            command=planned.command,
            exit_code=None,
            output=str(e),
            details={"error": type(e).__name__},
        ))

    result.duration = time.monotonic() - start
    result.exit_code = proc.returncode
    result.log = _tail(proc.stdout)

    if proc.returncode == 0:
        result.status = StepStatus.PASSED
        return result

    if proc.returncode in (_NOT_FOUND, _NOT_EXECUTABLE):
        err: StepExecutionError = StepEnvironmentError(
            configuration=configuration.name,
            step=step.name,
            command=planned.command,
            exit_code=proc.returncode,
            output=result.log,
            details={"hint": _hint(planned.command)},
        )
    else:
        err = StepExecutionError(
            configuration=configuration.name,
            step=step.name,
            command=planned.command,
            exit_code=proc.returncode,
            output=result.log,
        )
    return _fail(result, err)


def _log_step(configuration: Configuration, result: StepResult) -> None:
    extra = {
        "configuration": configuration.name,
        "step": result.step,
        "command": result.command,
        "exit_code": result.exit_code,
    }
    if result.status is StepStatus.PASSED:
        logger.info(
            "[%s] step '%s' passed in %.1fs: %s",
            configuration.name, result.step, result.duration, result.command,
            extra=extra,
        )
    else:
        logger.error(
            "[%s] step '%s' failed (exit=%s): %s\n%s",
            configuration.name, result.step, result.exit_code, result.command, result.log,
            extra=extra,
        )


def _run_configuration(
    pipeline: Pipeline,
    configuration: Configuration,
    root: Path,
    isolate: bool,
    console: Optional[Console],
) -> ConfigurationResult:
    """
    Run one configuration's steps in order, stopping at the first failure.

    Never raises for step failures; they are recorded on the result so that
    sibling configurations are unaffected.
    """
    planned = plan_configuration(pipeline, configuration)
    results = [StepResult(step=p.step.name, command=p.command) for p in planned]

    env = os.environ.copy()
    env.update(pipeline.env)
    env.update(configuration.env)
    env["PIPEXEC_CONFIGURATION"] = configuration.name
    env["PIPEXEC_FLAGS"] = ",".join(sorted(configuration.flags))

    if console:
        console.print_configuration_start(configuration)

    workspace = isolated_workspace if isolate else shared_workspace
    try:
        with workspace(root, configuration.name) as workdir:
            for i, p in enumerate(planned):
                if console:
                    console.print_step(configuration.name, p.step.name, p.command)
                results[i] = _run_step(configuration, p, workdir, env)
                _log_step(configuration, results[i])
                if console:
                    console.print_step_result(configuration.name, results[i])

                if results[i].status is StepStatus.FAILED:
                    for rest in results[i + 1:]:
                        rest.status = StepStatus.SKIPPED
                    break
    except OSError as e:
        # The workspace itself could not be prepared; nothing ran.
        first = next((r for r in results if r.status is StepStatus.PENDING), None)
        if first is None:
            raise
        _fail(first, StepEnvironmentError(
            configuration=configuration.name,
            step=first.step,
            command=first.command,
            exit_code=None,
            output=str(e),
            details={"workspace": str(root)},
        ))
        _log_step(configuration, first)
        for r in results:
            if r.status is StepStatus.PENDING:
                r.status = StepStatus.SKIPPED

    outcome = ConfigurationResult(
        configuration=configuration.name,
        flags=configuration.flags,
        steps=results,
    )
    if console:
        console.print_configuration_result(outcome)
    return outcome


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def as_pipeline(
    configurations: Union[Pipeline, Sequence[Configuration]],
    branches: Optional[Iterable[str]] = None,
) -> Pipeline:
    """Accept either a full Pipeline or a bare list of configurations."""
    if isinstance(configurations, Pipeline):
        return configurations
    allow = tuple(branches) if branches is not None else DEFAULT_BRANCHES
    return Pipeline(
        name="pipeline",
        configurations=list(configurations),
        triggers={kind: allow for kind in EventKind},
    )


def select_configurations(pipeline: Pipeline, only: Optional[Iterable[str]]) -> List[Configuration]:
    if not only:
        return list(pipeline.configurations)
    wanted = list(only)
    known = {c.name for c in pipeline.configurations}
    missing = [n for n in wanted if n not in known]
    if missing:
        raise ConfigurationError(
            f"Unknown configuration(s): {missing}",
            [f"known configurations: {sorted(known)}"],
        )
    return [c for c in pipeline.configurations if c.name in wanted]


def execute(
    trigger: Trigger,
    configurations: Union[Pipeline, Sequence[Configuration]],
    *,
    branches: Optional[Iterable[str]] = None,
    root: str | Path = ".",
    max_workers: int | None = None,
    isolate: bool = False,
    only: Optional[Iterable[str]] = None,
    console: Optional[Console] = None,
) -> PipelineResult:
    """
    Run every configuration of a pipeline for one trigger.

    - The definition is validated first; ConfigurationError is raised before
      any step runs.
    - A trigger outside the branch filter returns a NOT_TRIGGERED result.
    - Configurations run concurrently (at most `max_workers`, default one
      worker each); steps inside a configuration run in order and stop at the
      first failure. One configuration failing never stops another.
    """
    pipeline = as_pipeline(configurations, branches)
    validate(pipeline)
    selected = select_configurations(pipeline, only)

    if max_workers is not None and max_workers < 1:
        raise ConfigurationError(f"max_workers must be at least 1, got {max_workers}")

    if not pipeline.matches(trigger):
        logger.info("pipeline '%s' not triggered by %s", pipeline.name, trigger)
        if console:
            console.print_not_triggered(trigger)
        return PipelineResult(trigger=trigger, triggered=False)

    root_p = Path(root).resolve()
    workers = max_workers or len(selected)
    logger.info(
        "pipeline '%s' triggered by %s: %d configuration(s), %d worker(s)",
        pipeline.name, trigger, len(selected), workers,
    )

    done: Dict[str, ConfigurationResult] = {}
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {
            pool.submit(_run_configuration, pipeline, c, root_p, isolate, console): c.name
            for c in selected
        }
        for fut in as_completed(futures):
            done[futures[fut]] = fut.result()

    # Report in declaration order, regardless of completion order.
    result = PipelineResult(
        trigger=trigger,
        configurations={c.name: done[c.name] for c in selected},
    )
    logger.info("pipeline '%s' finished: %s", pipeline.name, result.status.value)
    return result
