# plan.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List

from .errors import ConfigurationError
from .model import Configuration, Pipeline, Step

FLAGS_PLACEHOLDER = "{flags}"


@dataclass(frozen=True)
class PlannedStep:
    step: Step
    command: str


def render_flags(step: Step, flags: Iterable[str]) -> str:
    """The flag argument a step receives, or "" when it gets none."""
    flags = sorted(set(flags))
    if step.flag_insensitive or not flags:
        return ""
    return step.flag_format.replace(FLAGS_PLACEHOLDER, ",".join(flags))


def render_command(step: Step, flags: Iterable[str]) -> str:
    """
    Merge a configuration's flags into a step's command.

    `{flags}` in the command marks where the flag argument goes; without it
    the argument is appended. Braces elsewhere in the command are left alone.
    """
    arg = render_flags(step, flags)
    if FLAGS_PLACEHOLDER in step.run:
        if arg:
            return step.run.replace(FLAGS_PLACEHOLDER, arg)
        return step.run.replace(" " + FLAGS_PLACEHOLDER, "").replace(FLAGS_PLACEHOLDER, "")
    return f"{step.run} {arg}" if arg else step.run


def _problems(pipeline: Pipeline) -> List[str]:
    problems: List[str] = []

    if not pipeline.configurations:
        problems.append("pipeline defines no configurations")

    names = [c.name for c in pipeline.configurations]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        problems.append(f"duplicate configuration names: {dupes}")

    for event, branches in pipeline.triggers.items():
        for b in branches:
            if not isinstance(b, str) or not b:
                problems.append(f"trigger '{event.value}' has an invalid branch name: {b!r}")

    for c in pipeline.configurations:
        if not c.name:
            problems.append("configuration with an empty name")
        if not c.steps:
            problems.append(f"configuration '{c.name}' has no steps")
        for i, ref in enumerate(c.steps):
            if isinstance(ref, str):
                if ref not in pipeline.catalog:
                    problems.append(
                        f"configuration '{c.name}' step {i} references unknown step '{ref}'. "
                        f"Known steps: {sorted(pipeline.catalog)}"
                    )
                continue
            if not isinstance(ref, Step):
                problems.append(f"configuration '{c.name}' step {i} is not a step: {ref!r}")
                continue
            problems.extend(f"configuration '{c.name}': {p}" for p in _step_problems(ref))

    for name, step in pipeline.catalog.items():
        problems.extend(f"catalog step '{name}': {p}" for p in _step_problems(step))

    return problems


def _step_problems(step: Step) -> List[str]:
    problems = []
    if not step.name:
        problems.append("step with an empty name")
    if not step.run or not step.run.strip():
        problems.append(f"step '{step.name}' has an empty command")
    if not step.flag_insensitive and FLAGS_PLACEHOLDER not in step.flag_format:
        problems.append(f"step '{step.name}' flag_format must contain {FLAGS_PLACEHOLDER}")
    if step.timeout is not None and step.timeout <= 0:
        problems.append(f"step '{step.name}' timeout must be positive")
    return problems


def validate(pipeline: Pipeline) -> None:
    """Raise ConfigurationError listing every problem found in the definition."""
    problems = _problems(pipeline)
    if problems:
        raise ConfigurationError(f"Invalid pipeline '{pipeline.name}'", problems)


def resolve_steps(pipeline: Pipeline, configuration: Configuration) -> List[Step]:
    """Replace catalog references with the catalog steps they name."""
    return [pipeline.catalog[s] if isinstance(s, str) else s for s in configuration.steps]


def plan_configuration(pipeline: Pipeline, configuration: Configuration) -> List[PlannedStep]:
    flags: FrozenSet[str] = configuration.flags
    return [
        PlannedStep(step=s, command=render_command(s, flags))
        for s in resolve_steps(pipeline, configuration)
    ]


def build_plan(pipeline: Pipeline) -> Dict[str, List[PlannedStep]]:
    """
    Validate the pipeline and render every command it would run.

    Returns configuration name -> ordered planned steps, in declaration order.
    """
    validate(pipeline)
    return {c.name: plan_configuration(pipeline, c) for c in pipeline.configurations}
