# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


class ConfigurationError(Exception):
    """
    The pipeline definition is malformed.

    Raised before anything runs; a pipeline with a configuration error never
    produces a partial result.
    """

    def __init__(self, message: str, problems: List[str] | None = None):
        super().__init__(message)
        self.message = message
        self.problems = list(problems or [])

    def __str__(self) -> str:
        if not self.problems:
            return self.message
        return "\n".join([self.message, *(f"  - {p}" for p in self.problems)])


@dataclass
class StepExecutionError(Exception):
    """
    A step command exited non-zero.

    Carries enough context to name the configuration and step that failed
    along with the tail of what the command printed.
    """
    configuration: str
    step: str
    command: str
    exit_code: Optional[int]
    output: str = ""
    details: dict = field(default_factory=dict)

    kind = "step_failed"

    def _exit_text(self) -> str:
        return f" (exit={self.exit_code})" if self.exit_code is not None else ""

    def __str__(self) -> str:
        lines = [
            f"[{self.configuration}] step '{self.step}' failed{self._exit_text()}: {self.command}"
        ]
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class StepEnvironmentError(StepExecutionError):
    """The step could not be run at all (missing binary, bad cwd, timeout, spawn failure)."""

    kind = "environment"
