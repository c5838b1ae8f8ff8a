"""Tests for monopub.publish."""

from __future__ import annotations

from pathlib import Path

import pytest

from conftest import FakeGit, FakeRegistry, write_change
from monopub.config import PublishOptions, WorkspaceConfig
from monopub.errors import ConfigConflict, PreconditionFailure, PublishAborted
from monopub.models import Package
from monopub.publish import PublishOrchestrator, PublishStep
from monopub.workspace import discover_packages

RELEASE = PublishOptions(apply=True, publish=True, target_branch="main")


def _orchestrator(
    root: Path,
    git: FakeGit,
    registry: FakeRegistry,
    options: PublishOptions = RELEASE,
    packages: dict[str, Package] | None = None,
) -> PublishOrchestrator:
    return PublishOrchestrator(
        root,
        packages if packages is not None else discover_packages(root),
        git,
        registry,
        options,
        WorkspaceConfig(),
        clock=lambda: 1.0,
    )


class TestPublishChanges:
    def test_step_sequence(
        self, workspace: Path, fake_git: FakeGit, fake_registry: FakeRegistry
    ) -> None:
        write_change(workspace, "core", "major", "Drop Python 3.9")
        result = _orchestrator(workspace, fake_git, fake_registry).run()

        assert result.step == PublishStep.DONE
        assert result.temp_branch == "publish-1000"
        assert fake_git.methods() == [
            "checkout",
            "add_changes",
            "commit",
            "push",
            "add_tag",
            "push",
            "checkout",
            "pull",
            "merge",
            "push",
            "delete_branch",
        ]
        assert fake_git.calls[0] == ("checkout", "publish-1000", True)
        assert fake_git.calls[6] == ("checkout", "main", False)
        assert fake_git.calls[8] == ("merge", "publish-1000")
        assert fake_git.calls[9] == ("push", "main")

    def test_only_releases_are_published_and_tagged(
        self, workspace: Path, fake_git: FakeGit, fake_registry: FakeRegistry
    ) -> None:
        write_change(workspace, "core", "major", "Drop Python 3.9")
        result = _orchestrator(workspace, fake_git, fake_registry).run()

        assert fake_registry.names() == ["core"]
        assert fake_registry.published[0][1]["dry_run"] is False
        assert result.published == {"core": "2.0.0"}
        assert result.tagged == ["core/v2.0.0"]
        assert fake_git.tags == ["core/v2.0.0"]
        assert result.ok

    def test_applies_edits_before_commit(
        self, workspace: Path, fake_git: FakeGit, fake_registry: FakeRegistry
    ) -> None:
        change_file = write_change(workspace, "core", "major")
        _orchestrator(workspace, fake_git, fake_registry).run()

        plugin = workspace / "packages" / "plugin-a" / "pyproject.toml"
        assert "core>=2.0.0,<3.0.0" in plugin.read_text()
        assert not change_file.exists()
        assert "core: 1.0.0 → 2.0.0" in fake_git.calls[2][1]

    def test_commit_order_is_dependency_first(
        self, workspace: Path, fake_git: FakeGit, fake_registry: FakeRegistry
    ) -> None:
        write_change(workspace, "plugin-a", "patch")
        write_change(workspace, "core", "minor")
        result = _orchestrator(workspace, fake_git, fake_registry).run()

        assert fake_registry.names() == ["core", "plugin-a"]
        assert list(result.published) == ["core", "plugin-a"]

    def test_registry_override_suppresses_tags(
        self, workspace: Path, fake_git: FakeGit, fake_registry: FakeRegistry
    ) -> None:
        write_change(workspace, "core", "patch")
        options = RELEASE.model_copy(
            update={"registry_url": "https://test.pypi.org/legacy/"}
        )
        result = _orchestrator(workspace, fake_git, fake_registry, options).run()

        assert result.published == {"core": "1.0.1"}
        assert result.tagged == []
        assert ("add_tag", False, "core/v1.0.1") in fake_git.calls
        kwargs = fake_registry.published[0][1]
        assert kwargs["registry_url"] == "https://test.pypi.org/legacy/"

    def test_dry_run(
        self, workspace: Path, fake_git: FakeGit, fake_registry: FakeRegistry
    ) -> None:
        change_file = write_change(workspace, "core", "patch")
        before = (workspace / "packages" / "core" / "pyproject.toml").read_text()
        result = _orchestrator(
            workspace, fake_git, fake_registry, PublishOptions()
        ).run()

        assert (workspace / "packages" / "core" / "pyproject.toml").read_text() == (
            before
        )
        assert change_file.exists()
        assert fake_registry.published[0][1]["dry_run"] is True
        assert result.tagged == []

    def test_publish_failure_continues(
        self, workspace: Path, fake_git: FakeGit
    ) -> None:
        write_change(workspace, "core", "patch")
        write_change(workspace, "plugin-a", "patch")
        registry = FakeRegistry(fail={"core"})
        result = _orchestrator(workspace, fake_git, registry).run()

        assert result.failed == ["core"]
        assert result.published == {"plugin-a": "2.3.1"}
        assert result.tagged == ["plugin-a/v2.3.1"]
        assert not result.ok
        assert result.step == PublishStep.DONE

    def test_private_package_not_published(
        self, workspace: Path, fake_git: FakeGit, fake_registry: FakeRegistry
    ) -> None:
        write_change(workspace, "core", "patch")
        packages = discover_packages(workspace)
        packages["core"].should_publish = False
        result = _orchestrator(
            workspace, fake_git, fake_registry, packages=packages
        ).run()

        assert fake_registry.published == []
        assert result.skipped == ["core"]
        assert "add_tag" not in fake_git.methods()

    def test_merge_failure_aborts(
        self, workspace: Path, fake_registry: FakeRegistry
    ) -> None:
        write_change(workspace, "core", "major")
        git = FakeGit(fail_on="merge")

        with pytest.raises(PublishAborted) as exc_info:
            _orchestrator(workspace, git, fake_registry).run()

        err = exc_info.value
        assert err.step == "merge"
        assert err.temp_branch == "publish-1000"
        assert err.published == ["core 2.0.0"]
        assert "Code in repository is behind registry" in str(err)
        assert "delete_branch" not in git.methods()

    def test_commit_failure_publishes_nothing(
        self, workspace: Path, fake_registry: FakeRegistry
    ) -> None:
        write_change(workspace, "core", "major")
        git = FakeGit(fail_on="commit")

        with pytest.raises(PublishAborted) as exc_info:
            _orchestrator(workspace, git, fake_registry).run()

        assert exc_info.value.step == "apply-and-commit"
        assert exc_info.value.published == []
        assert fake_registry.published == []

    def test_delete_branch_failure_is_not_fatal(
        self, workspace: Path, fake_registry: FakeRegistry
    ) -> None:
        write_change(workspace, "core", "patch")
        result = _orchestrator(workspace, FakeGit(delete_ok=False), fake_registry).run()
        assert result.step == PublishStep.DONE

    def test_no_changes(
        self, workspace: Path, fake_git: FakeGit, fake_registry: FakeRegistry
    ) -> None:
        result = _orchestrator(workspace, fake_git, fake_registry).run()

        assert result.step == PublishStep.DONE
        assert fake_git.calls == []
        assert fake_registry.published == []

    def test_prerelease_conflict_before_any_mutation(
        self, workspace: Path, fake_git: FakeGit, fake_registry: FakeRegistry
    ) -> None:
        change_file = write_change(workspace, "core", "patch")
        options = RELEASE.model_copy(
            update={"prerelease_name": "beta", "suffix": "dev1"}
        )

        with pytest.raises(ConfigConflict):
            _orchestrator(workspace, fake_git, fake_registry, options).run()
        assert fake_git.calls == []
        assert change_file.exists()

    def test_prerelease_version(
        self, workspace: Path, fake_git: FakeGit, fake_registry: FakeRegistry
    ) -> None:
        write_change(workspace, "core", "major")
        options = RELEASE.model_copy(update={"prerelease_name": "rc1"})
        result = _orchestrator(workspace, fake_git, fake_registry, options).run()

        assert result.published == {"core": "2.0.0-rc1"}
        assert result.tagged == ["core/v2.0.0-rc1"]

    def test_git_policy_checked_first(
        self, workspace: Path, fake_registry: FakeRegistry
    ) -> None:
        write_change(workspace, "core", "patch")
        git = FakeGit(email=None)

        with pytest.raises(PreconditionFailure):
            _orchestrator(workspace, git, fake_registry).run()
        assert git.calls == []


class TestPublishAll:
    BULK = RELEASE.model_copy(update={"include_all": True})

    def test_skips_published_versions(
        self, workspace: Path, fake_git: FakeGit
    ) -> None:
        registry = FakeRegistry(existing={"core": {"1.0.0"}})
        result = _orchestrator(workspace, fake_git, registry, self.BULK).run()

        assert result.skipped == ["core"]
        assert result.published == {"plugin-a": "2.3.0"}
        assert result.tagged == ["plugin-a/v2.3.0"]
        assert fake_git.calls[-1] == ("push", "main")

    def test_second_run_is_a_no_op(self, workspace: Path) -> None:
        registry = FakeRegistry()
        first = _orchestrator(workspace, FakeGit(), registry, self.BULK).run()
        assert list(first.published) == ["core", "plugin-a"]

        git = FakeGit()
        second = _orchestrator(workspace, git, registry, self.BULK).run()
        assert second.published == {}
        assert second.skipped == ["core", "plugin-a"]
        assert git.calls == []

    def test_force_republishes(self, workspace: Path, fake_git: FakeGit) -> None:
        registry = FakeRegistry(existing={"core": {"1.0.0"}, "plugin-a": {"2.3.0"}})
        options = self.BULK.model_copy(update={"force": True})
        result = _orchestrator(workspace, fake_git, registry, options).run()

        assert list(result.published) == ["core", "plugin-a"]

    def test_version_policy_filter(self, workspace: Path, fake_git: FakeGit) -> None:
        packages = discover_packages(workspace)
        packages["plugin-a"].version_policy = "plugins"
        registry = FakeRegistry()
        options = self.BULK.model_copy(update={"version_policy": "plugins"})
        result = _orchestrator(
            workspace, fake_git, registry, options, packages=packages
        ).run()

        assert registry.names() == ["plugin-a"]
        assert result.published == {"plugin-a": "2.3.0"}

    def test_private_packages_ignored(self, workspace: Path, fake_git: FakeGit) -> None:
        packages = discover_packages(workspace)
        packages["core"].should_publish = False
        registry = FakeRegistry()
        _orchestrator(workspace, fake_git, registry, self.BULK, packages).run()

        assert registry.names() == ["plugin-a"]

    def test_queries_default_index(self, workspace: Path, fake_git: FakeGit) -> None:
        registry = FakeRegistry()
        _orchestrator(workspace, fake_git, registry, self.BULK).run()

        assert registry.queried == ["https://pypi.org/simple/"] * 2

    def test_alternate_registry_needs_its_index(
        self, workspace: Path, fake_git: FakeGit
    ) -> None:
        registry = FakeRegistry(existing={"core": {"1.0.0"}})
        options = self.BULK.model_copy(
            update={"registry_url": "https://private.example/legacy/"}
        )

        with pytest.raises(ConfigConflict, match="--index-url"):
            _orchestrator(workspace, fake_git, registry, options).run()
        assert registry.queried == []
        assert registry.published == []
        assert fake_git.calls == []

    def test_alternate_registry_queries_its_index(
        self, workspace: Path, fake_git: FakeGit
    ) -> None:
        registry = FakeRegistry(existing={"core": {"1.0.0"}})
        options = self.BULK.model_copy(
            update={
                "registry_url": "https://private.example/legacy/",
                "index_url": "https://private.example/simple/",
            }
        )
        result = _orchestrator(workspace, fake_git, registry, options).run()

        assert registry.queried == ["https://private.example/simple/"] * 2
        assert result.skipped == ["core"]

    def test_force_with_alternate_registry_skips_query(
        self, workspace: Path, fake_git: FakeGit
    ) -> None:
        registry = FakeRegistry()
        options = self.BULK.model_copy(
            update={"registry_url": "https://private.example/legacy/", "force": True}
        )
        result = _orchestrator(workspace, fake_git, registry, options).run()

        assert registry.queried == []
        assert list(result.published) == ["core", "plugin-a"]

    def test_target_defaults_to_current_branch(self, workspace: Path) -> None:
        git = FakeGit(branch="release/1.x")
        options = PublishOptions(apply=True, publish=True, include_all=True)
        _orchestrator(workspace, git, FakeRegistry(), options).run()

        assert git.calls[-1] == ("push", "release/1.x")
