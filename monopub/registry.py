"""Registry publishing.

The orchestrator publishes through the RegistryPublisher protocol. UvPublisher
is the real implementation: it builds each package with `uv build` and uploads
it with `uv publish`, and answers "is this version already on the index?"
through the PEP 691 JSON simple API.

Publishing is not transactional across packages: a failed upload leaves
every package published before it in place.
"""

from __future__ import annotations

import os
import shutil
from pathlib import Path
from typing import Protocol

import httpx
from packaging.utils import (
    InvalidSdistFilename,
    InvalidWheelFilename,
    canonicalize_name,
    parse_sdist_filename,
    parse_wheel_filename,
)
from packaging.version import InvalidVersion, Version

from .config import DEFAULT_INDEX_URL
from .errors import RegistryQueryFailure
from .shell import format_command, run, warn

SIMPLE_JSON = "application/vnd.pypi.simple.v1+json"


class RegistryPublisher(Protocol):
    """Publishes one package and reports which versions an index holds."""

    def publish(
        self,
        package_name: str,
        package_path: str,
        *,
        auth_token: str | None = None,
        registry_url: str | None = None,
        dist_tag: str | None = None,
        force: bool = False,
        dry_run: bool = True,
    ) -> bool: ...

    def version_exists(
        self, package_name: str, version: str, *, index_url: str | None = None
    ) -> bool: ...


def publish_env(
    registry_url: str | None = None,
    auth_token: str | None = None,
    base: dict[str, str] | None = None,
) -> dict[str, str]:
    """Environment for one `uv publish` invocation.

    The registry override and the token are set together in a copy of the
    environment, so the token is only ever sent to that registry and the
    override never leaks into other commands.
    """
    env = dict(os.environ if base is None else base)
    if registry_url:
        env["UV_PUBLISH_URL"] = registry_url
    if auth_token:
        env["UV_PUBLISH_TOKEN"] = auth_token
    return env


def publish_args(
    files: list[str],
    *,
    dist_tag: str | None = None,
    check_url: str | None = None,
    uv: str = "uv",
) -> list[str]:
    """Arguments for `uv publish`.

    Examples:
        publish_args(["dist/a.whl"]) → ["uv", "publish", "dist/a.whl"]
        publish_args(["dist/a.whl"], dist_tag="next")
            → ["uv", "publish", "--index", "next", "dist/a.whl"]
    """
    args = [uv, "publish"]
    if dist_tag:
        args.extend(["--index", dist_tag])
    if check_url:
        args.extend(["--check-url", check_url])
    args.extend(files)
    return args


class UvPublisher:
    """RegistryPublisher driving the uv CLI.

    Attributes:
        root: Workspace root; builds land in dist/<package> below it.
        index_url: Default simple index for version queries and upload checks.
    """

    def __init__(
        self,
        root: Path,
        index_url: str = DEFAULT_INDEX_URL,
        client: httpx.Client | None = None,
        uv: str = "uv",
    ) -> None:
        self.root = root
        self.index_url = index_url
        self._owns_client = client is None
        self.client = client or httpx.Client(timeout=30.0, follow_redirects=True)
        self.uv = uv

    def close(self) -> None:
        """Close the HTTP client, unless it was passed in by the caller."""
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> UvPublisher:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def publish(
        self,
        package_name: str,
        package_path: str,
        *,
        auth_token: str | None = None,
        registry_url: str | None = None,
        dist_tag: str | None = None,
        force: bool = False,
        dry_run: bool = True,
    ) -> bool:
        """Build and upload one package.

        Without force, uploads to the default registry pass --check-url so
        files already present on the index are skipped rather than rejected.

        Returns:
            True on success (always, in dry-run mode).
        """
        out_dir = Path("dist") / package_name
        build_cmd = [self.uv, "build", package_path, "--out-dir", out_dir.as_posix()]
        check_url = None if force or registry_url else self.index_url

        if dry_run:
            files = [(out_dir / "*").as_posix()]
            cmd = publish_args(
                files, dist_tag=dist_tag, check_url=check_url, uv=self.uv
            )
            print(f"  [dry-run] {format_command(*build_cmd)}")
            print(f"  [dry-run] {format_command(*cmd)}")
            return True

        shutil.rmtree(self.root / out_dir, ignore_errors=True)
        result = run(*build_cmd, cwd=self.root, check=False)
        if result.returncode != 0:
            warn(f"Failed to build {package_name}")
            return False

        files = sorted(
            p.relative_to(self.root).as_posix()
            for p in (self.root / out_dir).iterdir()
        )
        cmd = publish_args(files, dist_tag=dist_tag, check_url=check_url, uv=self.uv)
        print(f"  {format_command(*cmd)}")
        result = run(
            *cmd,
            cwd=self.root,
            env=publish_env(registry_url, auth_token),
            check=False,
        )
        if result.returncode != 0:
            warn(f"Failed to publish {package_name}")
            return False
        return True

    def version_exists(
        self, package_name: str, version: str, *, index_url: str | None = None
    ) -> bool:
        """Check whether an index already holds a version of a package.

        Versions are compared after PEP 440 normalisation, so "2.0.0-beta"
        matches a published "2.0.0b0".

        Raises:
            RegistryQueryFailure: If the index cannot be reached or answers
                with an error other than 404, or the version is not PEP 440.
        """
        try:
            wanted = Version(version)
        except InvalidVersion as exc:
            raise RegistryQueryFailure(
                f"Cannot look up {package_name} {version!r}: not a PEP 440 version"
            ) from exc
        return wanted in self.published_versions(package_name, index_url=index_url)

    def published_versions(
        self, package_name: str, *, index_url: str | None = None
    ) -> set[Version]:
        """All versions of a package on the index (empty if never published)."""
        base = (index_url or self.index_url).rstrip("/")
        url = f"{base}/{canonicalize_name(package_name)}/"
        try:
            response = self.client.get(url, headers={"Accept": SIMPLE_JSON})
        except httpx.HTTPError as exc:
            raise RegistryQueryFailure(f"Could not query {url}: {exc}") from exc

        if response.status_code == 404:
            return set()
        if response.is_error:
            raise RegistryQueryFailure(
                f"Could not query {url}: HTTP {response.status_code}"
            )

        data = response.json()
        raw = data.get("versions")
        if raw is None:
            # Indexes predating PEP 700 only list files
            raw = [
                _version_from_filename(f.get("filename", ""))
                for f in data.get("files", [])
            ]

        versions: set[Version] = set()
        for v in raw:
            if not v:
                continue
            try:
                versions.add(Version(str(v)))
            except InvalidVersion:
                continue
        return versions


def _version_from_filename(filename: str) -> str | None:
    try:
        if filename.endswith(".whl"):
            return str(parse_wheel_filename(filename)[1])
        if filename.endswith((".tar.gz", ".zip")):
            return str(parse_sdist_filename(filename)[1])
    except (InvalidWheelFilename, InvalidSdistFilename):
        return None
    return None
