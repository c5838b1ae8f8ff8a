"""Change management: change requests in, ordered version decisions out.

The ChangeManager turns pending change requests into one consistent set of
version bumps across the workspace:
1. Merge requests per package (the largest change type wins)
2. Cascade: every transitive dependent of a changed package gets at least
   a DEPENDENCY change so its ranges are refreshed
3. Bump versions (plus any prerelease token) for real changes
4. Order everything so dependencies precede dependents

apply() and update_changelog() then write the decisions to disk, or only
report them when write is False.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path

from packaging.utils import canonicalize_name

from .changelog import (
    CHANGELOG_JSON,
    add_entry,
    comments_for,
    load_changelog,
    save_changelog,
    write_markdown,
)
from .changes import ChangeFiles
from .deps import rewrite_pyproject
from .errors import UnknownPackageReference
from .git import SourceControlGateway
from .graph import DependencyGraph
from .models import ChangeInfo, ChangeRequest, ChangeType, Package
from .shell import step, warn
from .versions import PrereleaseToken, bump_version


class ChangeManager:
    """Computes and applies the change cascade for one publish run.

    Attributes:
        root: Workspace root.
        packages: Project registry for the run.
        graph: Dependency graph over the workspace packages.
        skipped: Change requests ignored because they name unknown packages.
    """

    def __init__(
        self,
        root: Path,
        packages: Mapping[str, Package],
        git: SourceControlGateway | None = None,
    ) -> None:
        self.root = root
        self.packages = packages
        self.git = git
        self.graph = DependencyGraph(packages)
        self.skipped: list[UnknownPackageReference] = []
        self._changes: dict[str, ChangeInfo] = {}
        self._change_files: ChangeFiles | None = None
        self._include_commit_details = False

    @property
    def changes(self) -> list[ChangeInfo]:
        """Computed changes, dependencies before dependents."""
        return sorted(self._changes.values(), key=lambda c: c.order)

    def change_for(self, package_name: str) -> ChangeInfo | None:
        return self._changes.get(package_name)

    def has_changes(self) -> bool:
        return any(c.change_type > ChangeType.NONE for c in self._changes.values())

    def load(
        self,
        folder: Path,
        prerelease_token: PrereleaseToken | None = None,
        include_commit_details: bool = False,
    ) -> None:
        """Read pending change requests and compute the ordered cascade.

        Requests naming unknown packages are reported and skipped.

        Args:
            folder: Change-request directory.
            prerelease_token: Applied to every bumped version.
            include_commit_details: Attach author/commit metadata to
                changelog entries, looking it up in git when missing.
        """
        step("Loading change requests")
        token = prerelease_token or PrereleaseToken()
        self._include_commit_details = include_commit_details
        self._change_files = ChangeFiles(folder)
        self.skipped = []

        by_package: dict[str, list[ChangeRequest]] = {}
        for request in self._change_files.load():
            name = canonicalize_name(request.package_name)
            if name not in self.packages:
                ref = UnknownPackageReference(request.package_name, request.source)
                warn(f"{ref}; skipping")
                self.skipped.append(ref)
                continue
            if include_commit_details:
                request = self._with_commit_details(request)
            by_package.setdefault(name, []).append(request)

        if not by_package:
            print("  No change requests found")

        # Duplicate requests for one package collapse to the largest type
        seeds = {
            name: max(r.change_type for r in requests)
            for name, requests in by_package.items()
        }
        resolved = self.graph.resolve(seeds)

        self._changes = {}
        for name in self.graph.order:
            change_type = resolved[name]
            if change_type == ChangeType.NONE:
                continue
            info = self.packages[name]
            new_version = info.version
            if change_type > ChangeType.DEPENDENCY:
                new_version = token.apply(bump_version(info.version, change_type))
            self._changes[name] = ChangeInfo(
                package_name=name,
                change_type=change_type,
                old_version=info.version,
                new_version=new_version,
                order=len(self._changes),
                requests=by_package.get(name, []),
            )

        for change in self.changes:
            if change.is_release:
                print(
                    f"  {change.package_name}: {change.change_type} "
                    f"{change.old_version} → {change.new_version}"
                )
            else:
                print(f"  {change.package_name}: {change.change_type} (range update)")

    def bumped_dependencies(self, package_name: str) -> dict[str, str]:
        """New versions of this package's dependencies that moved in this run."""
        bumped: dict[str, str] = {}
        for dep in self.graph.deps.get(package_name, []):
            change = self._changes.get(dep)
            if change and change.new_version != change.old_version:
                bumped[dep] = change.new_version
        return bumped

    def apply(self, write: bool) -> None:
        """Write new versions and dependency ranges to each pyproject.toml.

        With write False this is a dry run: intended edits are printed and
        nothing on disk changes. Change files are deleted only after their
        edits were actually written.
        """
        step("Applying changes" if write else "Applying changes (dry run)")
        prefix = "" if write else "[dry-run] "

        for change in self.changes:
            info = self.packages[change.package_name]
            edits = rewrite_pyproject(
                self.root / info.path / "pyproject.toml",
                change.new_version,
                self.bumped_dependencies(change.package_name),
                write=write,
            )
            for edit in edits:
                print(f"  {prefix}{change.package_name}: {edit}")
            if write:
                info.version = change.new_version

        if self._change_files is not None:
            consumed = [
                r.source for c in self.changes for r in c.requests if r.source
            ]
            self._change_files.delete(consumed, write)

    def update_changelog(self, write: bool) -> None:
        """Append one changelog entry per changed package.

        A DEPENDENCY change with nothing to say (its dependencies moved
        only by range) gets no entry.
        """
        step("Updating changelogs" if write else "Updating changelogs (dry run)")

        for change in self.changes:
            info = self.packages[change.package_name]
            comments = comments_for(
                change,
                self.bumped_dependencies(change.package_name),
                with_details=self._include_commit_details,
            )
            if not comments and not change.is_release:
                continue

            package_dir = self.root / info.path
            changelog = load_changelog(package_dir, change.package_name)
            add_entry(changelog, change, comments)
            if write:
                save_changelog(package_dir, changelog)
                write_markdown(package_dir, changelog)
                print(f"  {change.package_name}: {change.new_version}")
            else:
                print(
                    f"  [dry-run] {change.package_name}: {change.new_version} "
                    f"({len(comments)} comments)"
                )

    def regenerate_changelogs(self) -> None:
        """Re-render CHANGELOG.md for every package from its CHANGELOG.json."""
        step("Regenerating changelogs")
        for name, info in self.packages.items():
            package_dir = self.root / info.path
            if not (package_dir / CHANGELOG_JSON).exists():
                continue
            write_markdown(package_dir, load_changelog(package_dir, name))
            print(f"  {name}")

    def _with_commit_details(self, request: ChangeRequest) -> ChangeRequest:
        if request.author and request.commit_hash:
            return request
        if self.git is None or request.source is None:
            return request
        details = self.git.commit_details(request.source)
        if details is None:
            return request
        author, commit_hash = details
        return request.model_copy(
            update={
                "author": request.author or author,
                "commit_hash": request.commit_hash or commit_hash,
            }
        )
