# trigger.py
from __future__ import annotations

import os
import subprocess
from typing import Mapping, Optional

from .errors import ConfigurationError
from .git_facts.git import current_branch
from .model import EventKind, Trigger

# GitHub Actions names; other hosts can export the same variables.
EVENT_VAR = "GITHUB_EVENT_NAME"
BASE_REF_VAR = "GITHUB_BASE_REF"
REF_NAME_VAR = "GITHUB_REF_NAME"
REF_VAR = "GITHUB_REF"

_HEADS_PREFIX = "refs/heads/"


def parse_event(value: str) -> EventKind:
    try:
        return EventKind(value)
    except ValueError:
        known = ", ".join(k.value for k in EventKind)
        raise ConfigurationError(f"Unknown event kind {value!r} (expected one of: {known})") from None


def _branch_from_env(event: EventKind, environ: Mapping[str, str]) -> Optional[str]:
    # A pull request is filtered on the branch it targets, not the one it comes from.
    if event is EventKind.PULL_REQUEST and environ.get(BASE_REF_VAR):
        return environ[BASE_REF_VAR]
    if environ.get(REF_NAME_VAR):
        return environ[REF_NAME_VAR]
    ref = environ.get(REF_VAR, "")
    if ref.startswith(_HEADS_PREFIX):
        return ref[len(_HEADS_PREFIX):]
    return None


def resolve_trigger(
    event: str | None = None,
    branch: str | None = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Trigger:
    """
    Work out which event this run reacts to.

    Precedence:
      1. explicit event / branch arguments
      2. CI environment variables (GITHUB_EVENT_NAME, GITHUB_BASE_REF, GITHUB_REF_NAME, GITHUB_REF)
      3. the currently checked-out git branch

    Raises:
        ConfigurationError: unknown event kind, or no branch could be found.
    """
    environ = os.environ if environ is None else environ

    kind = parse_event(event or environ.get(EVENT_VAR) or EventKind.PUSH.value)

    if branch is None:
        branch = _branch_from_env(kind, environ)
    if branch is None:
        try:
            branch = current_branch()
        except (subprocess.CalledProcessError, FileNotFoundError):
            raise ConfigurationError(
                "Could not determine the branch to run for",
                ["pass --branch, set GITHUB_REF_NAME, or run inside a git checkout"],
            ) from None

    return Trigger(event=kind, branch=branch)
