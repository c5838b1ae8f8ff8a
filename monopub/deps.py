"""Dependency handling utilities.

Provides functions for parsing PEP 508 dependency strings and rewriting
pyproject.toml files so internal workspace dependencies point at newly
bumped versions.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, cast

from packaging.requirements import Requirement
from packaging.utils import canonicalize_name

from .toml import load_pyproject, save_pyproject
from .versions import next_major


def dep_canonical_name(dep_str: str) -> str:
    """Extract the canonical package name from a PEP 508 dependency string.

    Handles version specifiers, extras, and normalizes the name per PEP 503
    (lowercase, hyphens instead of underscores).

    Examples:
        "requests>=2.0" → "requests"
        "My_Package[extra]~=1.0" → "my-package"
    """
    return canonicalize_name(Requirement(dep_str).name)


def update_range(dep_str: str, version: str) -> str:
    """Point a PEP 508 dependency's version range at a new version.

    Keeps the shape of the existing specifier, extras and markers:

        update_range("core==1.0.0", "2.0.0") → "core==2.0.0"
        update_range("core~=1.0", "2.0.0") → "core~=2.0.0"
        update_range("core>=1.0,<2", "2.0.0") → "core>=2.0.0,<3.0.0"
        update_range("core[cli]>=1.0; python_version>'3.9'", "2.0.0")
            → 'core[cli]>=2.0.0; python_version > "3.9"'

    Unconstrained requirements ("core") are returned unchanged.
    """
    req = Requirement(dep_str)
    specs = list(req.specifier)
    if not specs:
        return dep_str

    operators = {s.operator for s in specs}
    if len(specs) == 1 and specs[0].operator in ("==", "~=", ">=", "==="):
        new_spec = f"{specs[0].operator}{version}"
    elif ">=" in operators and operators & {"<", "<="}:
        new_spec = f">={version},<{next_major(version)}"
    else:
        new_spec = f">={version}"

    # Sort extras alphabetically for consistent output
    extras = f"[{','.join(sorted(req.extras))}]" if req.extras else ""
    marker = f"; {req.marker}" if req.marker else ""
    return f"{req.name}{extras}{new_spec}{marker}"


def rewrite_pyproject(
    pyproject_path: Path,
    new_version: str,
    internal_dep_versions: dict[str, str],
    *,
    write: bool = True,
) -> list[str]:
    """Update a package's version and the ranges on its internal dependencies.

    Internal deps are rewritten in all locations:
    - [project].dependencies
    - [project].optional-dependencies.*
    - [dependency-groups].*

    Uses tomlkit to preserve formatting and comments.

    Args:
        pyproject_path: Path to the pyproject.toml file.
        new_version: New version string to set.
        internal_dep_versions: Map of package name → version for bumped
            internal deps.
        write: When False, compute the edits but leave the file untouched.

    Returns:
        Human-readable description of every edit, e.g.
        ["version 1.0.0 → 2.0.0", "core>=1.0 → core>=2.0.0"].
    """
    doc = load_pyproject(pyproject_path)
    # Cast needed because tomlkit types are complex unions
    project = cast(dict[str, Any], doc["project"])
    edits: list[str] = []

    old_version = str(project.get("version", "0.0.0"))
    if old_version != new_version:
        project["version"] = new_version
        edits.append(f"version {old_version} → {new_version}")

    if internal_dep_versions:
        deps = project.get("dependencies")
        if isinstance(deps, list):
            edits.extend(_update_dep_list(deps, internal_dep_versions))

        opt_deps = project.get("optional-dependencies")
        if isinstance(opt_deps, dict):
            for group in opt_deps.values():
                if isinstance(group, list):
                    edits.extend(_update_dep_list(group, internal_dep_versions))

        dep_groups = doc.get("dependency-groups")
        if isinstance(dep_groups, dict):
            for group in dep_groups.values():
                if isinstance(group, list):
                    edits.extend(_update_dep_list(group, internal_dep_versions))

    if write and edits:
        save_pyproject(pyproject_path, doc)
    return edits


def _update_dep_list(deps: list, versions: dict[str, str]) -> list[str]:
    """Rewrite internal dependency ranges in a list, modifying in place.

    Non-string entries (e.g. include-group tables) are left alone.
    """
    edits: list[str] = []
    for i, dep_str in enumerate(deps):
        if not isinstance(dep_str, str):
            continue
        name = dep_canonical_name(str(dep_str))
        if name not in versions:
            continue
        updated = update_range(str(dep_str), versions[name])
        if updated != str(dep_str):
            deps[i] = updated
            edits.append(f"{dep_str} → {updated}")
    return edits
