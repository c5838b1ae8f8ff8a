"""Per-package changelogs.

Each package keeps a CHANGELOG.json next to its pyproject.toml holding
one entry per released version (newest first). CHANGELOG.md is rendered
from it.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from .models import ChangeInfo, ChangeType

CHANGELOG_JSON = "CHANGELOG.json"
CHANGELOG_MD = "CHANGELOG.md"


class ChangelogComment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    comment: str
    author: str | None = None
    commit_hash: str | None = Field(default=None, alias="commitHash")


class ChangelogEntry(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    version: str
    change_type: str = Field(alias="changeType")
    date: str | None = None
    comments: list[ChangelogComment] = Field(default_factory=list)


class Changelog(BaseModel):
    name: str
    entries: list[ChangelogEntry] = Field(default_factory=list)

    def entry_for(self, version: str) -> ChangelogEntry | None:
        return next((e for e in self.entries if e.version == version), None)


def load_changelog(package_dir: Path, name: str) -> Changelog:
    """Read CHANGELOG.json, or start an empty changelog if there is none."""
    path = package_dir / CHANGELOG_JSON
    if not path.exists():
        return Changelog(name=name)
    return Changelog.model_validate_json(path.read_text())


def save_changelog(package_dir: Path, changelog: Changelog) -> None:
    data = changelog.model_dump(by_alias=True, exclude_none=True)
    (package_dir / CHANGELOG_JSON).write_text(json.dumps(data, indent=2) + "\n")


def comments_for(
    change: ChangeInfo, bumped_deps: dict[str, str], with_details: bool = False
) -> list[ChangelogComment]:
    """Changelog comments for one computed change.

    Explicit requests contribute their own comments (with author and commit
    when with_details is set); a package that only moved because its
    dependencies did gets one line per bumped dependency.
    """
    comments = [
        ChangelogComment(
            comment=r.comment,
            author=r.author if with_details else None,
            commit_hash=r.commit_hash if with_details else None,
        )
        for r in change.requests
        if r.comment
    ]
    if change.change_type == ChangeType.DEPENDENCY:
        comments.extend(
            ChangelogComment(comment=f'Updating dependency "{dep}" to "{version}"')
            for dep, version in sorted(bumped_deps.items())
        )
    return comments


def add_entry(
    changelog: Changelog, change: ChangeInfo, comments: list[ChangelogComment]
) -> ChangelogEntry:
    """Record a change, keyed by its new version.

    A version that already has an entry gets the new comments appended,
    so entries are never rewritten or dropped.
    """
    entry = changelog.entry_for(change.new_version)
    if entry is None:
        entry = ChangelogEntry(
            version=change.new_version,
            change_type=str(change.change_type),
            date=datetime.now(timezone.utc).strftime("%a, %d %b %Y %H:%M:%S GMT"),
        )
        changelog.entries.insert(0, entry)
    entry.comments.extend(comments)
    return entry


def render_markdown(changelog: Changelog) -> str:
    """Render a changelog as markdown."""
    lines = [f"# Change Log - {changelog.name}", ""]
    for entry in changelog.entries:
        lines.append(f"## {entry.version}")
        if entry.date:
            lines.append(entry.date)
        lines.append("")
        if not entry.comments:
            lines.append("_Version update only_")
            lines.append("")
            continue
        lines.append(f"### {entry.change_type.capitalize()} changes")
        lines.append("")
        for c in entry.comments:
            suffix = ""
            if c.commit_hash:
                suffix += f" ({c.commit_hash[:7]})"
            if c.author:
                suffix += f" by {c.author}"
            lines.append(f"- {c.comment}{suffix}")
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"


def write_markdown(package_dir: Path, changelog: Changelog) -> None:
    (package_dir / CHANGELOG_MD).write_text(render_markdown(changelog))
