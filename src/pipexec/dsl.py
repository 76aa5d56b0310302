# dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

from .model import DEFAULT_BRANCHES, DEFAULT_FLAG_FORMAT, Configuration, EventKind, Pipeline, Step, StepRef


# ---------------------------------------------------------------------
# Step helper
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    cwd: str | None = None,
    flag_insensitive: bool = False,
    flag_format: str = DEFAULT_FLAG_FORMAT,
    timeout: float | None = None,
) -> Step:
    """Create a shell step."""
    return Step(
        name=name,
        run=cmd,
        cwd=cwd,
        flag_insensitive=flag_insensitive,
        flag_format=flag_format,
        timeout=timeout,
    )


# ---------------------------------------------------------------------
# Functional Configuration helper
# ---------------------------------------------------------------------

def configuration(
    name: str,
    *steps: StepRef,  # allow: configuration("x", sh(...), "build")
    steps_list: Optional[List[StepRef]] = None,
    flags: Optional[Iterable[str]] = None,
    title: str | None = None,
    env: Optional[Dict[str, str]] = None,
    cwd: str | None = None,  # default cwd applied to steps missing cwd
) -> Configuration:
    steps_final: List[StepRef] = []
    if steps_list:
        steps_final.extend(steps_list)
    steps_final.extend(steps)

    # An empty configuration is reported by plan.validate, not here, so that
    # every problem in a definition shows up in one error.
    if cwd is not None:
        steps_final = [
            s if isinstance(s, str) or s.cwd is not None else replace(s, cwd=cwd)
            for s in steps_final
        ]

    return Configuration(
        name=name,
        steps=steps_final,
        flags=frozenset(flags or ()),
        title=title,
        env={k: str(v) for k, v in (env or {}).items()},
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class ConfigurationBuilder:
    def __init__(self, name: str):
        self.name = name
        self._steps: list[StepRef] = []
        self._flags: set[str] = set()
        self._title: str | None = None
        self._env: dict[str, str] = {}

    def titled(self, title: str):
        self._title = title
        return self

    def with_flags(self, *flags: str):
        self._flags.update(flags)
        return self

    def with_env(self, **env):
        # force values to str for env compatibility
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def define_step(self, name: str, run: str, cwd: str | None = None, **options):
        self._steps.append(sh(name, run, cwd=cwd, **options))
        return self

    def use(self, *steps: StepRef):
        self._steps.extend(steps)
        return self

    def build(self) -> Configuration:
        return Configuration(
            name=self.name,
            steps=list(self._steps),
            flags=frozenset(self._flags),
            title=self._title,
            env=dict(self._env),
        )


def build(name: str) -> ConfigurationBuilder:
    """Convenience: build('multi').with_flags('multi').define_step(...).build()"""
    return ConfigurationBuilder(name)


# ---------------------------------------------------------------------
# Feature matrix
# ---------------------------------------------------------------------

class Features:
    """
    Stamps out one configuration per flag set.

    Example:
        features({"default": [], "multi": ["multi"]}).configurations(
            lambda name, flags: configuration(name, build_step, flags=flags)
        )
    """
    def __init__(self, flag_sets: Dict[str, Sequence[str]]):
        self.flag_sets = {name: list(flags) for name, flags in flag_sets.items()}

    def configurations(
        self, builder: Callable[[str, List[str]], Configuration]
    ) -> List[Configuration]:
        return [builder(name, flags) for name, flags in self.flag_sets.items()]


def features(flag_sets: Dict[str, Sequence[str]]) -> Features:
    return Features(flag_sets)


# ---------------------------------------------------------------------
# Triggers + pipeline
# ---------------------------------------------------------------------

BranchList = Union[str, Sequence[str], None]


def _branches(value: BranchList) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def on(*, push: BranchList = DEFAULT_BRANCHES, pull_request: BranchList = DEFAULT_BRANCHES) -> Dict[EventKind, tuple[str, ...]]:
    """Branch filter per event kind. Pass None to never fire on that event."""
    return {
        EventKind.PUSH: _branches(push),
        EventKind.PULL_REQUEST: _branches(pull_request),
    }


def pipeline(
    name: str,
    *configurations: Union[Configuration, List[Configuration]],
    triggers: Optional[Dict[EventKind, tuple[str, ...]]] = None,
    env: Optional[Dict[str, str]] = None,
    catalog: Optional[Iterable[Step]] = None,
) -> Pipeline:
    """
    Pipeline definition helper.

    Users can write:
        from pipexec import pipeline, configuration, sh, on

        def workflow():
            return pipeline(
                "ci",
                configuration("default", sh("Build", "make")),
                triggers=on(push="stable"),
            )
    """
    flat: List[Configuration] = []
    for c in configurations:
        if isinstance(c, list):
            flat.extend(c)
        else:
            flat.append(c)

    return Pipeline(
        name=name,
        configurations=flat,
        triggers=triggers if triggers is not None else on(),
        env={k: str(v) for k, v in (env or {}).items()},
        catalog={s.name: s for s in (catalog or [])},
    )
