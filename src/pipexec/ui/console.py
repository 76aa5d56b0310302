"""Console output formatting utilities for pipexec."""

from __future__ import annotations

import sys
import threading
from typing import TYPE_CHECKING, Dict, List, Optional

from ..model import RunStatus, StepStatus

if TYPE_CHECKING:
    from ..model import Configuration, ConfigurationResult, PipelineResult, StepResult, Trigger
    from ..plan import PlannedStep


# How much of a failed step's output to echo in non-debug mode.
FAILURE_TAIL_LINES = 20


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, stream=None, err_stream=None):
        """
        Initialize console formatter.

        Args:
            debug: If True, show full step output and stack traces
            stream: Where normal output goes (defaults to sys.stdout at call time)
            err_stream: Where errors go (defaults to sys.stderr at call time)
        """
        self.debug = debug
        self._stream = stream
        self._err_stream = err_stream
        # configurations report from worker threads
        self._lock = threading.Lock()

    @property
    def out(self):
        return self._stream or sys.stdout

    @property
    def err(self):
        return self._err_stream or sys.stderr

    def _emit(self, *lines: str, error: bool = False) -> None:
        with self._lock:
            target = self.err if error else self.out
            for line in lines:
                print(line, file=target)

    def print_run_started(
        self,
        repository: str,
        pipeline: str,
        trigger: "Trigger",
        configuration_count: int,
    ) -> None:
        """Print run start information."""
        self._emit(
            "",
            "RUN STARTED",
            f"Repository: {repository}",
            f"Pipeline: {pipeline}",
            f"Trigger: {trigger.event.value} -> {trigger.branch}",
            f"Configurations: {configuration_count}",
            "",
        )

    def print_not_triggered(self, trigger: "Trigger") -> None:
        self._emit(f"NOT TRIGGERED: no branch filter matches {trigger.event.value} -> {trigger.branch}")

    def print_configuration_start(self, configuration: "Configuration") -> None:
        flags = ",".join(sorted(configuration.flags)) or "none"
        self._emit(f"\nCONFIGURATION STARTED: {configuration.display_name} (flags: {flags})")

    def print_step(self, configuration: str, step: str, command: str) -> None:
        """Print step start message."""
        self._emit(f"[{configuration}] STEP: {step}", f"[{configuration}]   $ {command}")

    def print_step_result(self, configuration: str, result: "StepResult") -> None:
        if result.status is StepStatus.PASSED:
            self._emit(f"[{configuration}] STATUS: passed ({result.duration:.1f}s)")
            return

        lines = [f"[{configuration}] STEP FAILED: {result.step}"]
        if result.exit_code is not None:
            lines.append(f"[{configuration}] Exit code: {result.exit_code}")
        hint = getattr(result.error, "details", {}).get("hint") if result.error else None
        if hint:
            lines.append(f"[{configuration}] Hint: {hint}")
        output = result.log.rstrip("\n").splitlines()
        if not self.debug:
            output = output[-FAILURE_TAIL_LINES:]
        lines.extend(f"[{configuration}] | {line}" for line in output)
        self._emit(*lines)

    def print_configuration_result(self, result: "ConfigurationResult") -> None:
        if result.status is RunStatus.PASSED:
            self._emit(f"[{result.configuration}] CONFIGURATION PASSED")
            return
        failed = result.failed_step
        skipped = [s.step for s in result.steps if s.status is StepStatus.SKIPPED]
        lines = [f"[{result.configuration}] CONFIGURATION FAILED at step '{failed.step if failed else '?'}'"]
        if skipped:
            lines.append(f"[{result.configuration}] Skipped: {', '.join(skipped)}")
        self._emit(*lines)

    def print_plan(self, plan: Dict[str, List["PlannedStep"]]) -> None:
        """Print the commands each configuration would run."""
        for name, steps in plan.items():
            self._emit(f"{name}:")
            for i, p in enumerate(steps, start=1):
                self._emit(f"  {i}. {p.step.name}: {p.command}")

    def print_results(self, result: "PipelineResult") -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for name, c in result.configurations.items():
            lines.append(f"  {name}: {c.status.value.upper()} ({c.invoked}/{len(c.steps)} steps run)")
        lines.append(f"  overall: {result.status.value.upper()}")
        self._emit(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        lines.extend(f"  {d}" for d in details or [])
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, error=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__, file=self.err)
        else:
            self._emit(f"Error: {exc}", error=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
