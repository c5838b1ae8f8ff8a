"""Workspace discovery.

Builds the project registry for a run: every uv workspace member with a
pyproject.toml becomes a Package with its internal dependencies resolved.
"""

from __future__ import annotations

import glob
from pathlib import Path

from .deps import dep_canonical_name
from .errors import ConfigConflict
from .models import Package
from .shell import step
from .toml import (
    get_all_dependency_strings,
    get_project_name,
    get_project_version,
    get_should_publish,
    get_version_policy,
    get_workspace_member_globs,
    load_pyproject,
)


def discover_packages(root: Path) -> dict[str, Package]:
    """Scan the workspace and discover all packages.

    Reads [tool.uv.workspace].members from root pyproject.toml to find
    package directories, then extracts name, version, publish settings and
    internal deps from each package's pyproject.toml.

    Returns:
        Map of package name to Package, in discovery order.
    """
    step("Discovering workspace packages")

    root_doc = load_pyproject(root / "pyproject.toml")
    member_globs = get_workspace_member_globs(root_doc)

    # Expand globs to find all package directories
    member_dirs: list[Path] = []
    for pattern in member_globs:
        for match in sorted(glob.glob(str(root / pattern))):
            p = Path(match)
            if (p / "pyproject.toml").exists() and p not in member_dirs:
                member_dirs.append(p)

    if not member_dirs:
        raise ConfigConflict("No packages found matching workspace members")

    # First pass: collect basic info from each package
    packages: dict[str, Package] = {}
    raw_deps: dict[str, list[str]] = {}

    for d in member_dirs:
        doc = load_pyproject(d / "pyproject.toml")
        name = get_project_name(doc, d.name)
        packages[name] = Package(
            name=name,
            path=d.relative_to(root).as_posix(),
            version=get_project_version(doc),
            should_publish=get_should_publish(doc),
            version_policy=get_version_policy(doc),
        )
        raw_deps[name] = get_all_dependency_strings(doc)

    # Second pass: identify which deps are internal (within workspace)
    workspace_names = set(packages.keys())
    for name, deps in raw_deps.items():
        seen: set[str] = set()
        for dep_str in deps:
            dep_name = dep_canonical_name(dep_str)
            if dep_name == name:
                continue
            if dep_name in workspace_names and dep_name not in seen:
                packages[name].deps.append(dep_name)
                seen.add(dep_name)

    for name, info in packages.items():
        deps = f" → [{', '.join(info.deps)}]" if info.deps else ""
        private = "" if info.should_publish else " [private]"
        print(f"  {name} {info.version} ({info.path}){deps}{private}")

    return packages
