"""Shell and git utilities.

Provides simple wrappers around subprocess calls for running shell commands
and git operations, plus output formatting helpers.
"""

from __future__ import annotations

import shlex
import subprocess
import sys
from collections.abc import Mapping
from pathlib import Path


def git(*args: str, cwd: Path, check: bool = True) -> str:
    """Run a git command inside a repository and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "status", "--short").
        cwd: Repository root. Always explicit so no step depends on the
             process working directory.
        check: If True (default), raise on non-zero exit. Set to False
               for commands that may legitimately fail (e.g., tag lookup).

    Returns:
        Stripped stdout from the git command.

    Raises:
        subprocess.CalledProcessError: If check is True and git fails.
    """
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=check
    )
    return result.stdout.strip()


def run(
    *args: str,
    cwd: Path | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
) -> subprocess.CompletedProcess[bytes]:
    """Run an arbitrary shell command.

    Unlike git(), this doesn't capture output - it streams directly to
    the terminal so users can see build and upload progress.

    Args:
        *args: Command and arguments (e.g., "uv", "build", "pkg/").
        cwd: Directory to run in.
        env: Complete environment for the child process. None inherits ours.
        check: If True (default), raise on non-zero exit.

    Returns:
        CompletedProcess with returncode for checking success.
    """
    return subprocess.run(
        args, cwd=cwd, env=dict(env) if env is not None else None, check=check
    )


def format_command(*args: str) -> str:
    """Render a command line for display, quoting where needed."""
    return shlex.join(args)


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of the publish run in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def warn(msg: str) -> None:
    """Report a non-fatal problem on stderr and keep going."""
    print(f"WARNING: {msg}", file=sys.stderr)
