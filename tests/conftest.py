"""Shared test fixtures."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from monopub.errors import SourceControlFailure
from monopub.models import Package


def write_package(
    root: Path,
    name: str,
    version: str,
    deps: list[str] | None = None,
    extra: str = "",
) -> Path:
    """Write packages/<name>/pyproject.toml and return the package dir."""
    package_dir = root / "packages" / name
    package_dir.mkdir(parents=True, exist_ok=True)
    dep_lines = "".join(f'    "{d}",\n' for d in deps or [])
    (package_dir / "pyproject.toml").write_text(
        f'[project]\nname = "{name}"\nversion = "{version}"\n'
        f"dependencies = [\n{dep_lines}]\n{extra}"
    )
    return package_dir


def write_change(
    root: Path, package: str, change_type: str, comment: str = "", name: str = ""
) -> Path:
    """Write one change file below common/changes/<package>/."""
    folder = root / "common" / "changes" / package
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / f"{name or change_type}.json"
    path.write_text(
        json.dumps({"packageName": package, "type": change_type, "comment": comment})
    )
    return path


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """A uv workspace: core 1.0.0 and plugin-a 2.3.0, which depends on core."""
    (tmp_path / "pyproject.toml").write_text(
        '[tool.uv.workspace]\nmembers = ["packages/*"]\n'
    )
    write_package(tmp_path, "core", "1.0.0", ["requests>=2.0"])
    write_package(tmp_path, "plugin-a", "2.3.0", ["core>=1.0.0,<2.0.0"])
    return tmp_path


@pytest.fixture
def chain_packages() -> dict[str, Package]:
    """a depends on b, b depends on c."""
    return {
        "a": Package(name="a", path="a", version="1.0.0", deps=["b"]),
        "b": Package(name="b", path="b", version="1.0.0", deps=["c"]),
        "c": Package(name="c", path="c", version="1.0.0"),
    }


@pytest.fixture
def tmp_pyproject(tmp_path: Path) -> Path:
    """Create a temporary pyproject.toml file."""
    content = """\
[project]
name = "test-package"
version = "1.0.0"
dependencies = [
    "requests>=2.0",
    "internal-dep>=1.0,<2",
]

[project.optional-dependencies]
dev = ["pytest>=8.0", "another-internal~=0.5"]

[dependency-groups]
test = ["pytest>=8.0", "group-internal==0.1.0", {include-group = "dev"}]
"""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(content)
    return pyproject


class FakeGit:
    """In-memory SourceControlGateway that records every call.

    Attributes:
        calls: Every call as (method, *args).
        fail_on: Method name that raises SourceControlFailure.
    """

    def __init__(
        self,
        branch: str = "main",
        email: str | None = "dev@example.com",
        fail_on: str | None = None,
        delete_ok: bool = True,
    ) -> None:
        self.branch = branch
        self.email = email
        self.fail_on = fail_on
        self.delete_ok = delete_ok
        self.calls: list[tuple] = []
        self.tags: list[str] = []
        self.details: dict[Path, tuple[str, str]] = {}

    def _record(self, method: str, *args: object) -> None:
        self.calls.append((method, *args))
        if method == self.fail_on:
            raise SourceControlFailure(method, "boom")

    def methods(self) -> list[str]:
        return [c[0] for c in self.calls]

    def current_branch(self) -> str:
        return self.branch

    def user_email(self) -> str | None:
        return self.email

    def commit_details(self, path: Path) -> tuple[str, str] | None:
        return self.details.get(path)

    def checkout(self, branch: str, create: bool = False) -> None:
        self._record("checkout", branch, create)
        self.branch = branch

    def add_changes(self) -> None:
        self._record("add_changes")

    def commit(self, message: str) -> None:
        self._record("commit", message)

    def push(self, branch: str) -> None:
        self._record("push", branch)

    def pull(self) -> None:
        self._record("pull")

    def merge(self, branch: str) -> None:
        self._record("merge", branch)

    def add_tag(self, should_tag: bool, tag: str, message: str) -> bool:
        self._record("add_tag", should_tag, tag)
        if should_tag:
            self.tags.append(tag)
        return should_tag

    def push_tags(self) -> None:
        self._record("push_tags")

    def delete_branch(self, branch: str) -> bool:
        self.calls.append(("delete_branch", branch))
        return self.delete_ok


class FakeRegistry:
    """In-memory RegistryPublisher.

    Publishing a package records its version as existing (unless dry-run),
    so a second bulk run sees it as already published.
    """

    def __init__(
        self,
        existing: dict[str, set[str]] | None = None,
        fail: set[str] | None = None,
    ) -> None:
        self.existing = existing or {}
        self.fail = fail or set()
        self.published: list[tuple[str, dict]] = []
        self.versions: dict[str, str] = {}
        self.queried: list[str | None] = []
        self.closed = False

    def publish(self, package_name: str, package_path: str, **kwargs: object) -> bool:
        if package_name in self.fail:
            return False
        self.published.append((package_name, dict(kwargs)))
        if not kwargs.get("dry_run", True) and package_name in self.versions:
            self.existing.setdefault(package_name, set()).add(
                self.versions[package_name]
            )
        return True

    def version_exists(
        self, package_name: str, version: str, *, index_url: str | None = None
    ) -> bool:
        self.versions[package_name] = version
        self.queried.append(index_url)
        return version in self.existing.get(package_name, set())

    def names(self) -> list[str]:
        return [name for name, _ in self.published]

    def close(self) -> None:
        self.closed = True

    def __enter__(self) -> FakeRegistry:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture
def fake_registry() -> FakeRegistry:
    return FakeRegistry()
