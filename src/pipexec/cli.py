# cli.py
from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from pipexec.errors import ConfigurationError
from pipexec.git_facts.git import repo_name
from pipexec.loader import DEFAULT_WORKFLOW_FILES, find_workflow_files, load_pipeline
from pipexec.model import EventKind, RunStatus
from pipexec.plan import build_plan, validate
from pipexec.report import write_report
from pipexec.runner import execute, select_configurations
from pipexec.trigger import resolve_trigger
from pipexec.ui.console import Console, get_console, set_console

# Process exit codes
EXIT_PASSED = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Args:
        workflow_arg: Optional workflow argument from CLI

    Returns:
        Path to workflow file

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  pipexec run --workflow pipexec.yml",
            )
            sys.exit(EXIT_CONFIG)
        return workflow_path

    workflow_files = find_workflow_files(".")

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=["Looked for:", *(f"  {name}" for name in DEFAULT_WORKFLOW_FILES), "  *_workflow.py"],
            suggestion="Create pipexec.yml, or specify a workflow explicitly:\n  pipexec run --workflow my_workflow.py",
        )
        sys.exit(EXIT_CONFIG)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[str(f) for f in workflow_files],
            suggestion=f"Specify a workflow explicitly:\n  pipexec run --workflow {workflow_files[0]}",
        )
        sys.exit(EXIT_CONFIG)

    return workflow_files[0]


def _load_or_exit(workflow_path: Path):
    console = get_console()
    try:
        return load_pipeline(workflow_path)
    except ConfigurationError as e:
        console.print_error("Invalid pipeline definition", e.message, details=e.problems)
        sys.exit(EXIT_CONFIG)
    except Exception as e:
        console.print_exception(e)
        sys.exit(EXIT_CONFIG)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (full step output, stack traces, DEBUG logging)",
)
@click.option(
    "--log-level",
    default="WARNING",
    show_default=True,
    envvar="PIPEXEC_LOG_LEVEL",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Level for structured per-step log records (written to stderr)",
)
def cli(debug, log_level):
    """pipexec: run a declarative CI pipeline across build configurations."""
    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    set_console(Console(debug=debug))


workflow_option = click.option(
    "--workflow",
    default=None,
    envvar="PIPEXEC_WORKFLOW",
    help="Workflow file (.yml/.yaml/.py); discovered in the current directory if omitted",
)


@cli.command()
@workflow_option
@click.option(
    "--event",
    type=click.Choice([k.value for k in EventKind]),
    default=None,
    help="Trigger event kind (defaults to $GITHUB_EVENT_NAME, then push)",
)
@click.option("--branch", default=None, help="Trigger branch (defaults to CI env vars, then the current git branch)")
@click.option("--workers", default=None, type=click.IntRange(min=1), envvar="PIPEXEC_WORKERS",
              help="Max configurations run in parallel (default: all)")
@click.option("--root", default=".", show_default=True, type=click.Path(file_okay=False),
              help="Repository root the steps run in")
@click.option("--isolate/--no-isolate", default=False, show_default=True,
              help="Run each configuration in a fresh copy of --root")
@click.option("--only", multiple=True, help="Run only the named configuration (repeatable)")
@click.option("--report", default=None, type=click.Path(dir_okay=False), help="Write a JSON result report here")
def run(workflow, event, branch, workers, root, isolate, only, report):
    """Run a pipeline for one trigger."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    pipeline = _load_or_exit(workflow_path)

    try:
        trigger = resolve_trigger(event=event, branch=branch)
        validate(pipeline)
        selected = select_configurations(pipeline, only)

        console.print_run_started(
            repository=repo_name(root),
            pipeline=pipeline.name,
            trigger=trigger,
            configuration_count=len(selected),
        )

        result = execute(
            trigger,
            pipeline,
            root=root,
            max_workers=workers,
            isolate=isolate,
            only=only,
            console=console,
        )
    except ConfigurationError as e:
        console.print_error("Invalid pipeline definition", e.message, details=e.problems)
        sys.exit(EXIT_CONFIG)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        console.print_exception(e)
        sys.exit(EXIT_FAILED)

    if result.status is not RunStatus.NOT_TRIGGERED:
        console.print_results(result)
    if report:
        path = write_report(result, report)
        console.print_info(f"Report written to {path}")

    sys.exit(EXIT_FAILED if result.status is RunStatus.FAILED else EXIT_PASSED)


@cli.command(name="validate")
@workflow_option
def validate_cmd(workflow):
    """Check a pipeline definition without running anything."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    pipeline = _load_or_exit(workflow_path)
    try:
        validate(pipeline)
    except ConfigurationError as e:
        console.print_error("Invalid pipeline definition", e.message, details=e.problems)
        sys.exit(EXIT_CONFIG)
    except Exception as e:
        console.print_exception(e)
        sys.exit(EXIT_FAILED)
    console.print_info(
        f"{workflow_path}: OK ({len(pipeline.configurations)} configuration(s))"
    )


@cli.command(name="plan")
@workflow_option
def plan_cmd(workflow):
    """Print the exact commands each configuration would run."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    pipeline = _load_or_exit(workflow_path)
    try:
        plan = build_plan(pipeline)
    except ConfigurationError as e:
        console.print_error("Invalid pipeline definition", e.message, details=e.problems)
        sys.exit(EXIT_CONFIG)
    except Exception as e:
        console.print_exception(e)
        sys.exit(EXIT_FAILED)

    for event, branches in pipeline.triggers.items():
        console.print_info(f"on {event.value}: {', '.join(branches) if branches else '(never)'}")
    console.print_plan(plan)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
