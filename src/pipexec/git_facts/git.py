# git.py
# Small wrapper around the Git CLI.
# Every git call in pipexec goes through here so the rest of the codebase
# never shells out to git on its own.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Optional


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["rev-parse", "HEAD"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero (e.g. not a repo).
        FileNotFoundError: git is not installed.
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        stderr=subprocess.DEVNULL,
    )
    return out.strip()


def current_branch(cwd: Optional[str | Path] = None) -> str:
    """
    Return the short name of the checked-out branch.

    A detached HEAD has no branch; git reports it as "HEAD", and so do we.
    Such a trigger simply never matches a branch filter.
    """
    return _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)


def remote_url(remote: str = "origin", cwd: Optional[str | Path] = None) -> str:
    """Return the fetch URL of `remote`."""
    return _git(["remote", "get-url", remote], cwd=cwd)


def repo_name(cwd: Optional[str | Path] = None) -> str:
    """
    Best-effort repository name for display.

    Uses the origin URL when there is one, otherwise the directory name.
    """
    try:
        url = remote_url(cwd=cwd)
        return url.rstrip("/").split("/")[-1].removesuffix(".git")
    except (subprocess.CalledProcessError, FileNotFoundError):
        return Path(cwd or ".").resolve().name
