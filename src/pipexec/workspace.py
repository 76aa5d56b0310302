# workspace.py
from __future__ import annotations

import shutil
import tempfile
from contextlib import contextmanager
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterator, List, Sequence

# Build outputs and tool caches that a fresh checkout would not have.
DEFAULT_EXCLUDES = [
    ".git",
    ".pipexec",
    "target",
    ".venv",
    "node_modules",
    "__pycache__",
    "*.pyc",
    ".DS_Store",
]


def _ignore(patterns: Sequence[str]):
    def ignore(_dir: str, names: List[str]) -> List[str]:
        return [n for n in names if any(fnmatch(n, p) for p in patterns)]
    return ignore


@contextmanager
def isolated_workspace(
    root: str | Path,
    configuration: str,
    *,
    exclude: Sequence[str] = DEFAULT_EXCLUDES,
) -> Iterator[Path]:
    """
    Yield a throwaway copy of `root` for one configuration.

    The copy lives in a fresh temp dir and is removed on exit, whether or not
    the configuration passed. Nothing written by its steps leaks to siblings.
    """
    root_p = Path(root).resolve()
    if not root_p.is_dir():
        raise FileNotFoundError(f"Workspace root not found: {root_p}")

    safe = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in configuration)
    tmp = Path(tempfile.mkdtemp(prefix=f"pipexec-{safe}-"))
    work = tmp / root_p.name
    try:
        shutil.copytree(root_p, work, symlinks=True, ignore=_ignore(exclude))
        yield work
    finally:
        shutil.rmtree(tmp, ignore_errors=True)


@contextmanager
def shared_workspace(root: str | Path, configuration: str) -> Iterator[Path]:
    """Run in `root` itself. Same shape as isolated_workspace."""
    root_p = Path(root).resolve()
    if not root_p.is_dir():
        raise FileNotFoundError(f"Workspace root not found: {root_p}")
    yield root_p
