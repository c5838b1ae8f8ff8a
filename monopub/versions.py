"""Version parsing and bumping utilities.

Handles conversion between version strings and semver objects, with
special handling for incomplete version strings (e.g., "1.0" → "1.0.0"),
plus the prerelease token applied uniformly to every bumped version.
"""

from __future__ import annotations

import semver
from packaging.version import InvalidVersion, Version

from .errors import ConfigConflict
from .models import ChangeType


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3" → "1.2.3"
    - "1.2.3-rc1" → "1.2.3-rc1"
    """
    base, sep, rest = version_str.partition("-")
    parts = base.split(".")
    # Pad with zeros to ensure we have at least 3 parts
    while len(parts) < 3:
        parts.append("0")
    return semver.Version.parse(".".join(parts[:3]) + sep + rest)


def bump_patch(version_str: str) -> str:
    """Increment the patch version and return as a string.

    Examples:
        "1.2.3" → "1.2.4"
        "1.0" → "1.0.1"
        "2" → "2.0.1"
    """
    return str(parse_version(version_str).bump_patch())


def bump_version(version_str: str, change_type: ChangeType) -> str:
    """Bump the segment matching change_type.

    NONE and DEPENDENCY leave the version untouched.

    Examples:
        bump_version("1.4.2", ChangeType.MAJOR) → "2.0.0"
        bump_version("1.4.2", ChangeType.MINOR) → "1.5.0"
        bump_version("1.4.2", ChangeType.DEPENDENCY) → "1.4.2"
    """
    if change_type == ChangeType.MAJOR:
        return str(parse_version(version_str).bump_major())
    if change_type == ChangeType.MINOR:
        return str(parse_version(version_str).bump_minor())
    if change_type == ChangeType.PATCH:
        return bump_patch(version_str)
    return version_str


def next_major(version_str: str) -> str:
    """Exclusive upper bound for a caret-style range starting at version_str.

    Examples:
        "2.1.0" → "3.0.0"
        "0.4.1" → "0.5.0"
    """
    v = parse_version(version_str)
    if v.major == 0:
        return f"0.{v.minor + 1}.0"
    return f"{v.major + 1}.0.0"


class PrereleaseToken:
    """An optional prerelease name or suffix applied to every bumped version.

    A prerelease name replaces the prerelease part ("2.0.0" → "2.0.0-beta"),
    a suffix is appended after any existing prerelease
    ("2.0.0-rc1" + "dev3" → "2.0.0-rc1.dev3"). At most one may be set.

    Raises:
        ConfigConflict: If both are set, or the result is not a valid
            PEP 440 version.
    """

    def __init__(
        self, prerelease_name: str | None = None, suffix: str | None = None
    ) -> None:
        if prerelease_name and suffix:
            raise ConfigConflict(
                "--prerelease-name and --suffix cannot be used together"
            )
        self._prerelease_name = prerelease_name or None
        self._suffix = suffix or None
        if self.has_value:
            try:
                Version(self.apply("1.0.0"))
            except InvalidVersion:
                raise ConfigConflict(
                    f"Prerelease token {self.name!r} does not produce a valid "
                    "PEP 440 version"
                ) from None

    @property
    def has_value(self) -> bool:
        return self._prerelease_name is not None or self._suffix is not None

    @property
    def is_prerelease(self) -> bool:
        return self._prerelease_name is not None

    @property
    def is_suffix(self) -> bool:
        return self._suffix is not None

    @property
    def name(self) -> str | None:
        return self._prerelease_name or self._suffix

    def apply(self, version_str: str) -> str:
        """Decorate a computed version with this token."""
        if not self.has_value:
            return version_str
        v = parse_version(version_str)
        if self._prerelease_name:
            return str(v.replace(prerelease=self._prerelease_name))
        if v.prerelease:
            return str(v.replace(prerelease=f"{v.prerelease}.{self._suffix}"))
        return str(v.replace(prerelease=self._suffix))

    def __repr__(self) -> str:
        if self.is_prerelease:
            return f"PrereleaseToken(prerelease_name={self._prerelease_name!r})"
        if self.is_suffix:
            return f"PrereleaseToken(suffix={self._suffix!r})"
        return "PrereleaseToken()"
