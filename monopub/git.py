"""Source-control gateway.

The publish orchestrator only talks to git through the SourceControlGateway
protocol so the state machine can run against a fake in tests. GitRepository
is the real implementation: an explicit handle on one checkout, never
relying on the process working directory.
"""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Protocol

from .errors import SourceControlFailure
from .shell import format_command, git, warn


class SourceControlGateway(Protocol):
    """Branch, commit, push, merge and tag primitives for one repository.

    Every mutating primitive raises SourceControlFailure on error, except
    delete_branch() which only reports whether it succeeded.
    """

    def current_branch(self) -> str: ...

    def user_email(self) -> str | None: ...

    def commit_details(self, path: Path) -> tuple[str, str] | None: ...

    def checkout(self, branch: str, create: bool = False) -> None: ...

    def add_changes(self) -> None: ...

    def commit(self, message: str) -> None: ...

    def push(self, branch: str) -> None: ...

    def pull(self) -> None: ...

    def merge(self, branch: str) -> None: ...

    def add_tag(self, should_tag: bool, tag: str, message: str) -> bool: ...

    def push_tags(self) -> None: ...

    def delete_branch(self, branch: str) -> bool: ...


class GitRepository:
    """SourceControlGateway backed by the git CLI.

    Attributes:
        path: Repository root; every git call runs here.
        remote: Remote pushed to and pulled from.
        execute: When False, mutating commands are printed, not run.
            Read-only queries always run.
    """

    def __init__(
        self, path: Path, remote: str = "origin", execute: bool = True
    ) -> None:
        self.path = path
        self.remote = remote
        self.execute = execute

    def current_branch(self) -> str:
        return self._query("rev-parse", "--abbrev-ref", "HEAD")

    def user_email(self) -> str | None:
        """Configured committer e-mail, or None if unset."""
        email = git("config", "user.email", cwd=self.path, check=False)
        return email or None

    def commit_details(self, path: Path) -> tuple[str, str] | None:
        """Author e-mail and hash of the commit that added a file.

        Returns None for files that are not committed yet.
        """
        output = git(
            "log",
            "--diff-filter=A",
            "--format=%ae%x00%H",
            "-n",
            "1",
            "--",
            str(path),
            cwd=self.path,
            check=False,
        )
        if not output or "\x00" not in output:
            return None
        author, commit_hash = output.splitlines()[0].split("\x00", 1)
        return author, commit_hash

    def checkout(self, branch: str, create: bool = False) -> None:
        if create:
            self._mutate("checkout", "-b", branch)
        else:
            self._mutate("checkout", branch)

    def add_changes(self) -> None:
        self._mutate("add", "--all", ".")

    def commit(self, message: str) -> None:
        self._mutate("commit", "-m", message)

    def push(self, branch: str) -> None:
        """Push HEAD to a remote branch, carrying annotated tags along."""
        self._mutate("push", self.remote, f"HEAD:{branch}", "--follow-tags")

    def pull(self) -> None:
        self._mutate("pull")

    def merge(self, branch: str) -> None:
        self._mutate("merge", "--no-edit", branch)

    def add_tag(self, should_tag: bool, tag: str, message: str) -> bool:
        """Create an annotated tag when should_tag is set.

        Returns:
            True if the tag was created (or would be, in dry-run mode).
        """
        if not should_tag:
            print(f"  Skip tag {tag}")
            return False
        self._mutate("tag", "-a", tag, "-m", message)
        return True

    def push_tags(self) -> None:
        self._mutate("push", self.remote, "--tags")

    def delete_branch(self, branch: str) -> bool:
        """Delete a branch locally and on the remote.

        Failure is reported as a warning, never raised.
        """
        try:
            self._mutate("branch", "-D", branch)
            self._mutate("push", self.remote, "--delete", branch)
        except SourceControlFailure as exc:
            warn(f"Could not delete branch {branch}: {exc.message}")
            return False
        return True

    def _query(self, *args: str) -> str:
        try:
            return git(*args, cwd=self.path)
        except subprocess.CalledProcessError as exc:
            raise SourceControlFailure(
                format_command(*args), (exc.stderr or "").strip(), exc.returncode
            ) from exc

    def _mutate(self, *args: str) -> None:
        if not self.execute:
            print(f"  [dry-run] {format_command('git', *args)}")
            return
        print(f"  {format_command('git', *args)}")
        self._query(*args)
