from __future__ import annotations

from pathlib import Path

import pytest

from pipexec import EventKind, Trigger, sh
from pipexec.model import Step

EXAMPLES = Path(__file__).resolve().parent.parent / "examples"


def recording_step(log: Path, name: str, exit_code: int = 0, **options) -> Step:
    """A step that appends its name to `log`, then exits with `exit_code`."""
    return sh(name, f'echo {name} >> "{log}"; exit {exit_code}', **options)


def calls(log: Path) -> list[str]:
    if not log.exists():
        return []
    return log.read_text().split()


@pytest.fixture
def stable_push() -> Trigger:
    return Trigger(event=EventKind.PUSH, branch="stable")


@pytest.fixture
def examples_dir() -> Path:
    return EXAMPLES
