"""Data models for monopub.

These Pydantic models represent the core data structures used throughout
the publish pipeline.
"""

from __future__ import annotations

from enum import IntEnum
from pathlib import Path

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


class ChangeType(IntEnum):
    """Magnitude of a change, ordered from smallest to largest.

    The ordering is load-bearing: anything above DEPENDENCY is a real
    version bump that gets published and tagged, while DEPENDENCY only
    refreshes the ranges a package declares on its bumped dependencies.
    """

    NONE = 0
    DEPENDENCY = 1
    PATCH = 2
    MINOR = 3
    MAJOR = 4

    @classmethod
    def parse(cls, value: object) -> ChangeType:
        """Accept a ChangeType, its integer value, or its name in any case."""
        if isinstance(value, ChangeType):
            return value
        if isinstance(value, int):
            return cls(value)
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            names = ", ".join(t.name.lower() for t in cls)
            raise ValueError(
                f"unknown change type {value!r} (expected one of: {names})"
            ) from None

    def __str__(self) -> str:
        return self.name.lower()


class Package(BaseModel):
    """Metadata for a single package in the monorepo workspace.

    Attributes:
        name: Canonical (PEP 503) package name.
        path: Relative path from workspace root to the package directory.
        version: Current version string from pyproject.toml.
        deps: Internal (workspace) dependency names. External deps are not
              tracked since only internal ranges are ever rewritten.
        should_publish: Whether the package is pushed to the registry.
        version_policy: Optional version policy name used to filter bulk
              publishing.
    """

    name: str
    path: str
    version: str
    deps: list[str] = Field(default_factory=list)
    should_publish: bool = True
    version_policy: str | None = None


class ChangeRequest(BaseModel):
    """One author-submitted change declaration.

    Field aliases match the JSON change-file format (camelCase).
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    package_name: str = Field(alias="packageName")
    change_type: ChangeType = Field(
        validation_alias=AliasChoices("type", "changeType", "change_type"),
        serialization_alias="type",
    )
    comment: str = ""
    author: str | None = None
    commit_hash: str | None = Field(default=None, alias="commitHash")
    source: Path | None = Field(default=None, exclude=True)

    @field_validator("change_type", mode="before")
    @classmethod
    def _parse_change_type(cls, value: object) -> ChangeType:
        return ChangeType.parse(value)

    @field_serializer("change_type")
    def _dump_change_type(self, value: ChangeType) -> str:
        return str(value)


class ChangeInfo(BaseModel):
    """The computed release decision for one package.

    Attributes:
        package_name: Package the decision applies to.
        change_type: Resolved type after merging requests and cascading.
        old_version: Version before the run.
        new_version: Version after the run (unchanged for DEPENDENCY).
        order: Position in the dependency-ordered change list.
        requests: Change requests that targeted this package directly.
    """

    package_name: str
    change_type: ChangeType
    old_version: str
    new_version: str
    order: int = 0
    requests: list[ChangeRequest] = Field(default_factory=list)

    @property
    def is_release(self) -> bool:
        """True when this change publishes and tags a new version."""
        return self.change_type > ChangeType.DEPENDENCY
