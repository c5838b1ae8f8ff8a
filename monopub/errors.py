"""Error types raised by the publish pipeline.

Every error the pipeline reports derives from ReleaseError so the CLI can
turn it into a single, readable failure. Errors raised before the temp
branch exists leave the repository untouched; PublishAborted is the only
one raised after source-control mutation has started.
"""

from __future__ import annotations


class ReleaseError(Exception):
    """Base class for all publish pipeline errors."""


class PreconditionFailure(ReleaseError):
    """A policy check failed before anything was mutated."""


class ConfigConflict(ReleaseError):
    """Configuration is invalid or mutually exclusive options were combined."""


class ChangeFileError(ReleaseError):
    """A change-request file could not be read or validated."""

    def __init__(self, path: object, reason: str) -> None:
        super().__init__(f"Invalid change file {path}: {reason}")
        self.path = path
        self.reason = reason


class UnknownPackageReference(ReleaseError):
    """A change request names a package that is not in the workspace.

    Never raised out of ChangeManager.load(); the manager records one of
    these per skipped request so callers can report them.
    """

    def __init__(self, package_name: str, source: object | None = None) -> None:
        where = f" (from {source})" if source else ""
        super().__init__(f"Unknown package {package_name!r}{where}")
        self.package_name = package_name
        self.source = source


class DependencyCycleError(ReleaseError):
    """The workspace dependency graph contains a cycle."""


class RegistryPublishFailure(ReleaseError):
    """One or more packages failed to publish."""

    def __init__(self, packages: list[str]) -> None:
        super().__init__(
            "Failed to publish: "
            + ", ".join(packages)
            + ". Packages published before the failure were not rolled back."
        )
        self.packages = packages


class RegistryQueryFailure(ReleaseError):
    """The package index could not be queried for published versions."""


class SourceControlFailure(ReleaseError):
    """A git command failed."""

    def __init__(self, command: str, message: str, returncode: int = 1) -> None:
        super().__init__(f"git {command} failed: {message}")
        self.command = command
        self.message = message
        self.returncode = returncode


class PublishAborted(ReleaseError):
    """The publish state machine stopped at a source-control step.

    Attributes:
        step: Name of the step that failed.
        temp_branch: Temp branch left behind for inspection, if one was created.
        published: Packages (``name version``) already pushed to the registry.
    """

    def __init__(
        self,
        step: str,
        cause: SourceControlFailure,
        temp_branch: str | None,
        published: list[str],
    ) -> None:
        lines = [f"Publish aborted at step '{step}': {cause}"]
        if temp_branch:
            lines.append(f"Temp branch {temp_branch} was left for inspection.")
        if published:
            lines.append(
                "Code in repository is behind registry. Already published: "
                + ", ".join(published)
            )
        super().__init__("\n".join(lines))
        self.step = step
        self.cause = cause
        self.temp_branch = temp_branch
        self.published = published
