"""Workspace configuration and per-run publish options."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from .errors import ConfigConflict
from .toml import get_tool_table, load_pyproject

DEFAULT_INDEX_URL = "https://pypi.org/simple/"


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class WorkspaceConfig(BaseModel):
    """The [tool.monopub] table of the workspace root pyproject.toml.

    Attributes:
        changes_dir: Change-request directory, relative to the workspace root.
        target_branch: Default branch releases are merged into.
        index_url: PEP 691 simple index queried for published versions.
        allowed_email_patterns: Regexes the committer e-mail must match.
        tag_format: Template for release tags; receives name and version.
    """

    model_config = ConfigDict(
        alias_generator=_kebab, populate_by_name=True, extra="forbid"
    )

    changes_dir: str = "common/changes"
    target_branch: str | None = None
    index_url: str = DEFAULT_INDEX_URL
    allowed_email_patterns: list[str] = []
    tag_format: str = "{name}/v{version}"

    def tag_name(self, package_name: str, version: str) -> str:
        return self.tag_format.format(name=package_name, version=version)


def load_config(root: Path) -> WorkspaceConfig:
    """Read and validate [tool.monopub] from the root pyproject.toml.

    Raises:
        ConfigConflict: If the table contains unknown keys or bad values.
    """
    doc = load_pyproject(root / "pyproject.toml")
    try:
        return WorkspaceConfig.model_validate(get_tool_table(doc))
    except ValidationError as exc:
        raise ConfigConflict(f"Invalid [tool.monopub] configuration:\n{exc}") from exc


class PublishOptions(BaseModel):
    """Options for one publish run, mirroring the CLI flags.

    Attributes:
        apply: Write manifest/changelog edits and delete consumed change files.
        publish: Actually publish to the registry (otherwise print commands).
        target_branch: Branch the temp branch is merged into. Git commands
            only execute when this is set together with apply.
        registry_url: Alternate registry; suppresses tagging.
        auth_token: Registry auth token.
        dist_tag: Named publish channel.
        include_all: Bulk re-publish mode, ignoring change requests.
        version_policy: Restrict bulk mode to one version policy.
        prerelease_name: Prerelease identifier for every bumped version.
        suffix: Suffix appended to every bumped version.
        force: Publish even if the version already exists.
        add_commit_details: Attach author/commit to changelog entries.
        index_url: Simple index queried for published versions (overrides
            the workspace configuration).
    """

    apply: bool = False
    publish: bool = False
    target_branch: str | None = None
    registry_url: str | None = None
    auth_token: str | None = None
    dist_tag: str | None = None
    include_all: bool = False
    version_policy: str | None = None
    prerelease_name: str | None = None
    suffix: str | None = None
    force: bool = False
    add_commit_details: bool = False
    index_url: str | None = None

    @property
    def should_tag(self) -> bool:
        """Tags are created only for real publishes to the default registry.

        An alternate registry suppresses tagging whether or not --publish is set.
        """
        return self.publish and not self.registry_url

    @property
    def should_commit(self) -> bool:
        """Whether git mutations actually execute for this run."""
        return self.apply and bool(self.target_branch)
