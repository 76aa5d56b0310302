# loader.py
from __future__ import annotations

import runpy
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .dsl import on
from .errors import ConfigurationError
from .model import DEFAULT_BRANCHES, DEFAULT_FLAG_FORMAT, Configuration, EventKind, Pipeline, Step, StepRef

YAML_SUFFIXES = (".yml", ".yaml")

DEFAULT_WORKFLOW_FILES = ("pipexec.yml", "pipexec.yaml", "pipexec_workflow.py")

_STEP_KEYS = {"name", "run", "cwd", "flag_insensitive", "flag_format", "timeout"}
_CONFIGURATION_KEYS = {"title", "flags", "env", "steps"}


# ----------------------------------------------------------------------
# Discovery
# ----------------------------------------------------------------------

def find_workflow_files(directory: str | Path = ".") -> List[Path]:
    """Every file in `directory` that looks like a pipeline definition."""
    base = Path(directory)
    found = [base / name for name in DEFAULT_WORKFLOW_FILES if (base / name).exists()]
    for path in sorted(base.glob("*_workflow.py")):
        if path not in found:
            found.append(path)
    return found


# ----------------------------------------------------------------------
# Python workflows
# ----------------------------------------------------------------------

def _load_python(path: Path) -> Pipeline:
    """
    The file must define either:
      - workflow() -> Pipeline | List[Configuration]
      - PIPELINE = Pipeline(...)
    """
    module_name = f"pipexec_workflow_{path.stem}"
    try:
        globals_dict = runpy.run_path(str(path), run_name=module_name)

        if "workflow" in globals_dict and callable(globals_dict["workflow"]):
            defined = globals_dict["workflow"]()
        elif "PIPELINE" in globals_dict:
            defined = globals_dict["PIPELINE"]
        else:
            raise ConfigurationError(
                f"{path.name} defines no pipeline",
                ["define workflow() -> Pipeline, or PIPELINE = pipeline(...)"],
            )
    except ConfigurationError:
        raise
    except Exception as e:
        # A broken workflow file is a broken definition, not a failed run.
        raise ConfigurationError(
            f"{path.name} could not be loaded",
            [f"{type(e).__name__}: {e}"],
        ) from e

    if isinstance(defined, Pipeline):
        return defined
    if isinstance(defined, list) and all(isinstance(c, Configuration) for c in defined):
        return Pipeline(name=path.stem, configurations=defined)
    raise ConfigurationError(
        f"{path.name}: workflow must return a Pipeline or a List[Configuration], "
        f"got {type(defined).__name__}"
    )


# ----------------------------------------------------------------------
# YAML workflows
# ----------------------------------------------------------------------

def _expect(value: Any, kind: type, where: str) -> Any:
    if not isinstance(value, kind):
        raise ConfigurationError(f"'{where}' must be a {kind.__name__}, got {type(value).__name__}")
    return value


def _str_list(value: Any, where: str) -> List[str]:
    if isinstance(value, str):
        return [value]
    items = _expect(value, list, where)
    for i, item in enumerate(items):
        _expect(item, str, f"{where}[{i}]")
    return list(items)


def _str_map(value: Any, where: str) -> Dict[str, str]:
    if value is None:
        return {}
    mapping = _expect(value, dict, where)
    out = {}
    for k, v in mapping.items():
        if isinstance(v, (dict, list)) or v is None:
            raise ConfigurationError(f"'{where}.{k}' must be a scalar")
        # YAML booleans would otherwise become "True"
        out[str(k)] = str(v).lower() if isinstance(v, bool) else str(v)
    return out


def _parse_triggers(raw: Any) -> Dict[EventKind, tuple[str, ...]]:
    if raw is None:
        return on()

    if isinstance(raw, str):
        raw = [raw]
    if isinstance(raw, list):
        # `on: [push]`: listed events fire on the default branches
        raw = {event: None for event in _str_list(raw, "on")}
    _expect(raw, dict, "on")

    triggers: Dict[EventKind, tuple[str, ...]] = {kind: () for kind in EventKind}
    for event, entry in raw.items():
        try:
            kind = EventKind(event)
        except ValueError:
            raise ConfigurationError(
                f"'on.{event}' is not a supported event",
                [f"supported: {[k.value for k in EventKind]}"],
            ) from None

        if entry is None:
            triggers[kind] = DEFAULT_BRANCHES
        elif isinstance(entry, dict):
            if "branches" not in entry:
                raise ConfigurationError(f"'on.{event}' must list 'branches'")
            triggers[kind] = tuple(_str_list(entry["branches"], f"on.{event}.branches"))
        else:
            triggers[kind] = tuple(_str_list(entry, f"on.{event}"))
    return triggers


def _parse_step(raw: Any, where: str, name: Optional[str] = None) -> Step:
    if isinstance(raw, str):
        raw = {"run": raw}
    _expect(raw, dict, where)

    unknown = sorted(set(raw) - _STEP_KEYS)
    if unknown:
        raise ConfigurationError(f"'{where}' has unknown keys: {unknown}")

    step_name = raw.get("name", name)
    if not isinstance(step_name, str) or not step_name:
        raise ConfigurationError(f"'{where}' missing 'name'")
    if "run" not in raw:
        raise ConfigurationError(f"'{where}' missing 'run'")

    timeout = raw.get("timeout")
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float))):
        raise ConfigurationError(f"'{where}.timeout' must be a number of seconds")

    return Step(
        name=step_name,
        run=_expect(raw["run"], str, f"{where}.run"),
        cwd=_expect(raw["cwd"], str, f"{where}.cwd") if raw.get("cwd") is not None else None,
        flag_insensitive=bool(raw.get("flag_insensitive", False)),
        flag_format=_expect(raw.get("flag_format", DEFAULT_FLAG_FORMAT), str, f"{where}.flag_format"),
        timeout=float(timeout) if timeout is not None else None,
    )


def _parse_configuration(name: str, raw: Any) -> Configuration:
    where = f"configurations.{name}"
    if raw is None:
        raw = {}
    if isinstance(raw, list):
        # shorthand: `default: [build, test]`
        raw = {"steps": raw}
    _expect(raw, dict, where)

    unknown = sorted(set(raw) - _CONFIGURATION_KEYS)
    if unknown:
        raise ConfigurationError(f"'{where}' has unknown keys: {unknown}")

    steps: List[StepRef] = []
    for i, entry in enumerate(_expect(raw.get("steps") or [], list, f"{where}.steps")):
        if isinstance(entry, str):
            steps.append(entry)  # catalog reference, checked by plan.validate
        else:
            steps.append(_parse_step(entry, f"{where}.steps[{i}]"))

    title = raw.get("title")
    return Configuration(
        name=name,
        steps=steps,
        flags=frozenset(_str_list(raw.get("flags") or [], f"{where}.flags")),
        title=_expect(title, str, f"{where}.title") if title is not None else None,
        env=_str_map(raw.get("env"), f"{where}.env"),
    )


def parse_pipeline_dict(config: Any, default_name: str = "pipeline") -> Pipeline:
    """Build a Pipeline from an already-parsed mapping."""
    if not config:
        raise ConfigurationError("Empty pipeline definition")
    _expect(config, dict, "pipeline")

    # YAML 1.1 reads a bare `on:` key as the boolean True.
    raw_on = config.get("on", config.get(True))

    catalog_raw = config.get("steps") or {}
    _expect(catalog_raw, dict, "steps")
    catalog = {name: _parse_step(raw, f"steps.{name}", name=name) for name, raw in catalog_raw.items()}

    configurations_raw = config.get("configurations")
    if configurations_raw is None:
        raise ConfigurationError("Pipeline must have 'configurations' defined")
    _expect(configurations_raw, dict, "configurations")

    name = config.get("name", default_name)
    return Pipeline(
        name=_expect(name, str, "name"),
        configurations=[_parse_configuration(str(n), raw) for n, raw in configurations_raw.items()],
        triggers=_parse_triggers(raw_on),
        env=_str_map(config.get("env"), "env"),
        catalog=catalog,
    )


class _UniqueKeyLoader(yaml.SafeLoader):
    """SafeLoader that refuses a key repeated inside one mapping."""


def _construct_unique_mapping(loader: _UniqueKeyLoader, node: yaml.MappingNode) -> Dict[Any, Any]:
    loader.flatten_mapping(node)
    seen = set()
    for key_node, _ in node.value:
        key = loader.construct_object(key_node, deep=True)
        try:
            repeated = key in seen
        except TypeError:
            continue  # unhashable; construct_mapping reports it
        if repeated:
            raise ConfigurationError(
                f"Duplicate key {key!r} (line {key_node.start_mark.line + 1})",
                ["a later entry would silently replace the earlier one"],
            )
        seen.add(key)
    return loader.construct_mapping(node, deep=True)


_UniqueKeyLoader.add_constructor(yaml.resolver.BaseResolver.DEFAULT_MAPPING_TAG, _construct_unique_mapping)


def parse_pipeline_yaml(text: str, default_name: str = "pipeline") -> Pipeline:
    """Parse a YAML pipeline definition from a string."""
    try:
        config = yaml.load(text, Loader=_UniqueKeyLoader)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML: {e}") from e
    return parse_pipeline_dict(config, default_name=default_name)


# ----------------------------------------------------------------------
# Entry point
# ----------------------------------------------------------------------

def load_pipeline(path: str | Path) -> Pipeline:
    """
    Load a pipeline definition from a .py workflow or a .yml/.yaml file.

    The result is not validated here; plan.validate / runner.execute do that.
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")

    if wf_path.suffix == ".py":
        return _load_python(wf_path)
    if wf_path.suffix in YAML_SUFFIXES:
        return parse_pipeline_yaml(wf_path.read_text(encoding="utf-8"), default_name=wf_path.stem)
    raise ConfigurationError(
        f"Unsupported workflow file: {wf_path.name}",
        [f"expected .py or one of {list(YAML_SUFFIXES)}"],
    )
