"""Publish orchestration: change requests to temp branch, registry and target.

A change-driven run walks a fixed sequence of steps:
1. Load change requests and compute the ordered cascade
2. Create a temp branch off the current branch
3. Apply manifest/changelog edits and commit them once
4. Push the temp branch
5. Publish every real change, dependencies first
6. Tag what was published, push the temp branch again
7. Check out the target branch, pull, merge the temp branch, push
8. Delete the temp branch (best effort)

Nothing touches the target branch before step 7, so a failure earlier leaves
it as it was and the temp branch can be inspected. Registry publishes are
never rolled back; a source-control failure after step 5 is reported as the
repository being behind the registry.

The bulk mode (include_all) skips change requests and re-publishes every
publishable package whose current version is not on the index yet.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterator, Mapping
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from .change_manager import ChangeManager
from .config import PublishOptions, WorkspaceConfig
from .errors import ConfigConflict, PublishAborted, SourceControlFailure
from .git import SourceControlGateway
from .graph import topo_sort
from .models import ChangeInfo, Package
from .policy import check_git_policy
from .registry import RegistryPublisher
from .shell import step
from .versions import PrereleaseToken


class PublishStep(str, Enum):
    """States of a change-driven publish run, in order."""

    LOAD_CHANGES = "load-changes"
    CREATE_TEMP_BRANCH = "create-temp-branch"
    APPLY_AND_COMMIT = "apply-and-commit"
    PUSH_TEMP = "push-temp"
    PUBLISH_EACH = "publish-each"
    TAG_PUBLISHED = "tag-published"
    PUSH_TEMP_TAGS = "push-temp-tags"
    CHECKOUT_TARGET = "checkout-target"
    PULL_TARGET = "pull-target"
    MERGE = "merge"
    PUSH_TARGET = "push-target"
    DELETE_TEMP_BRANCH = "delete-temp-branch"
    DONE = "done"


class PublishResult(BaseModel):
    """Outcome of one publish run.

    Attributes:
        step: Last step entered (DONE when the run completed).
        published: Package name → version for every successful publish.
        tagged: Tags created.
        skipped: Packages deliberately not published.
        failed: Packages whose publish failed.
        temp_branch: Temp branch created by the run, if any.
    """

    step: PublishStep = PublishStep.LOAD_CHANGES
    published: dict[str, str] = Field(default_factory=dict)
    tagged: list[str] = Field(default_factory=list)
    skipped: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)
    temp_branch: str | None = None

    @property
    def ok(self) -> bool:
        return not self.failed

    def published_labels(self) -> list[str]:
        return [f"{name} {version}" for name, version in self.published.items()]


class PublishOrchestrator:
    """Drives one publish run over a SourceControlGateway and RegistryPublisher.

    Attributes:
        root: Workspace root.
        packages: Project registry for the run.
        git: Source-control gateway for the workspace repository.
        registry: Registry publisher.
        options: Per-run options.
        config: Workspace configuration.
    """

    def __init__(
        self,
        root: Path,
        packages: Mapping[str, Package],
        git: SourceControlGateway,
        registry: RegistryPublisher,
        options: PublishOptions,
        config: WorkspaceConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.root = root
        self.packages = packages
        self.git = git
        self.registry = registry
        self.options = options
        self.config = config or WorkspaceConfig()
        self._clock = clock

    @property
    def index_url(self) -> str:
        return self.options.index_url or self.config.index_url

    def run(self) -> PublishResult:
        """Check preconditions, then run the change-driven or bulk mode."""
        check_git_policy(self.git, self.config.allowed_email_patterns)
        if self.options.include_all:
            return self.publish_all()
        return self.publish_changes()

    def publish_changes(self) -> PublishResult:
        """Publish everything the pending change requests call for.

        Raises:
            ConfigConflict: If both a prerelease name and a suffix are set.
            PublishAborted: If a source-control step fails.
        """
        token = PrereleaseToken(self.options.prerelease_name, self.options.suffix)
        result = PublishResult()

        with self._transition(result, PublishStep.LOAD_CHANGES):
            manager = ChangeManager(self.root, self.packages, self.git)
            manager.load(
                self.root / self.config.changes_dir,
                token,
                self.options.add_commit_details,
            )

        if not manager.has_changes():
            print("\nNo changes to publish.")
            result.step = PublishStep.DONE
            return result

        changes = manager.changes

        with self._transition(result, PublishStep.CREATE_TEMP_BRANCH):
            target = self._target_branch()
            temp_branch = f"publish-{int(self._clock() * 1000)}"
            step(f"Creating temp branch {temp_branch}")
            self.git.checkout(temp_branch, create=True)
            result.temp_branch = temp_branch

        with self._transition(result, PublishStep.APPLY_AND_COMMIT):
            manager.apply(self.options.apply)
            manager.update_changelog(self.options.apply)
            step("Committing package updates")
            self.git.add_changes()
            self.git.commit(self._commit_message(changes))

        with self._transition(result, PublishStep.PUSH_TEMP):
            self.git.push(temp_branch)

        with self._transition(result, PublishStep.PUBLISH_EACH):
            releases = [c for c in changes if c.is_release]
            step(f"Publishing {len(releases)} packages")
            for change in releases:
                self._publish_package(change.package_name, change.new_version, result)

        with self._transition(result, PublishStep.TAG_PUBLISHED):
            step("Tagging published packages")
            for change in changes:
                if change.package_name in result.published:
                    self._tag(change.package_name, change.new_version, result)

        with self._transition(result, PublishStep.PUSH_TEMP_TAGS):
            self.git.push(temp_branch)

        step(f"Merging {temp_branch} into {target}")
        with self._transition(result, PublishStep.CHECKOUT_TARGET):
            self.git.checkout(target)
        with self._transition(result, PublishStep.PULL_TARGET):
            self.git.pull()
        with self._transition(result, PublishStep.MERGE):
            self.git.merge(temp_branch)
        with self._transition(result, PublishStep.PUSH_TARGET):
            self.git.push(target)

        result.step = PublishStep.DELETE_TEMP_BRANCH
        self.git.delete_branch(temp_branch)

        result.step = PublishStep.DONE
        self._report(result)
        return result

    def publish_all(self) -> PublishResult:
        """Publish every publishable package whose version is not on the index.

        Packages are visited in dependency order. New tags are pushed to the
        target branch once, after all packages were processed.

        Raises:
            ConfigConflict: If an alternate registry is set without the index
                to check it against (and force is off).
        """
        policy = self.options.version_policy
        index_url = None if self.options.force else self._query_index()
        step(f"Publishing all packages (version policy: {policy or 'any'})")
        result = PublishResult()

        with self._transition(result, PublishStep.PUBLISH_EACH):
            for name in topo_sort(self.packages):
                info = self.packages[name]
                if not info.should_publish:
                    continue
                if policy and info.version_policy != policy:
                    continue
                if not self.options.force and self.registry.version_exists(
                    name, info.version, index_url=index_url
                ):
                    print(f"  Skip {name}. Not updated.")
                    result.skipped.append(name)
                    continue
                if self._publish_package(name, info.version, result):
                    self._tag(name, info.version, result)

        if result.published:
            with self._transition(result, PublishStep.PUSH_TARGET):
                self.git.push(self._target_branch())

        result.step = PublishStep.DONE
        self._report(result)
        return result

    def _publish_package(self, name: str, version: str, result: PublishResult) -> bool:
        info = self.packages[name]
        if not info.should_publish:
            print(f"  Skip {name}: not publishable")
            result.skipped.append(name)
            return False

        print(f"\n  {name} {version} ({info.path})")
        ok = self.registry.publish(
            name,
            info.path,
            auth_token=self.options.auth_token,
            registry_url=self.options.registry_url,
            dist_tag=self.options.dist_tag,
            force=self.options.force,
            dry_run=not self.options.publish,
        )
        if ok:
            result.published[name] = version
        else:
            result.failed.append(name)
        return ok

    def _query_index(self) -> str:
        """Index holding the versions of the registry being published to."""
        if self.options.registry_url and not self.options.index_url:
            raise ConfigConflict(
                f"--registry {self.options.registry_url} needs --index-url: the "
                "simple index of that registry, to check for published versions"
            )
        return self.index_url

    def _tag(self, name: str, version: str, result: PublishResult) -> None:
        tag = self.config.tag_name(name, version)
        if self.git.add_tag(self.options.should_tag, tag, f"{name} v{version}"):
            result.tagged.append(tag)

    def _target_branch(self) -> str:
        return (
            self.options.target_branch
            or self.config.target_branch
            or self.git.current_branch()
        )

    @staticmethod
    def _commit_message(changes: list[ChangeInfo]) -> str:
        summary = "\n".join(
            f"  {c.package_name}: {c.old_version} → {c.new_version}"
            if c.is_release
            else f"  {c.package_name}: dependency update"
            for c in changes
        )
        return f"chore: apply package updates\n\n{summary}"

    @staticmethod
    def _report(result: PublishResult) -> None:
        print(f"\n{'=' * 60}")
        if result.published:
            print("Published: " + ", ".join(result.published_labels()))
        if result.tagged:
            print("Tagged: " + ", ".join(result.tagged))
        if result.failed:
            print("Failed: " + ", ".join(result.failed))
        print("Done!" if result.ok else "Finished with failures.")
        print("=" * 60)

    @contextmanager
    def _transition(self, result: PublishResult, to: PublishStep) -> Iterator[None]:
        """Enter a step; a git failure inside it aborts the run at that step."""
        result.step = to
        try:
            yield
        except SourceControlFailure as exc:
            raise PublishAborted(
                to.value, exc, result.temp_branch, result.published_labels()
            ) from exc
