"""Dependency graph utilities.

Provides topological sorting for determining publish order in a monorepo,
and the change cascade that elevates dependents of changed packages.
Packages must be published in dependency order so that when package A
depends on package B, B exists at its new version before A references it.
"""

from __future__ import annotations

from collections.abc import Mapping

from .errors import DependencyCycleError
from .models import ChangeType, Package


def topo_sort(packages: Mapping[str, Package]) -> list[str]:
    """Topologically sort packages by their internal dependencies.

    Uses Kahn's algorithm to produce an order where dependencies come
    before dependents. Ties are broken alphabetically for deterministic
    output.

    Args:
        packages: Map of package name → Package with deps list.

    Returns:
        List of package names (dependencies first).

    Raises:
        DependencyCycleError: If a dependency cycle is detected.

    Example:
        If A depends on B, and B depends on C:
        topo_sort({A, B, C}) → [C, B, A]
    """
    # Count incoming edges (dependencies) for each package
    in_degree = {n: 0 for n in packages}
    # Track reverse dependencies (who depends on each package)
    reverse_deps: dict[str, list[str]] = {n: [] for n in packages}

    for name, info in packages.items():
        for dep in set(info.deps):
            # Only count dependencies that are within the packages we're sorting;
            # a package naming itself (e.g. "core[cli]" in an extra) is no edge
            if dep in packages and dep != name:
                in_degree[name] += 1
                reverse_deps[dep].append(name)

    # Start with packages that have no dependencies (in_degree == 0)
    queue = sorted(n for n, d in in_degree.items() if d == 0)
    order: list[str] = []

    while queue:
        node = queue.pop(0)
        order.append(node)
        # Decrement in_degree for all packages that depend on this one
        for dependent in sorted(reverse_deps[node]):
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    # If we didn't process all packages, there must be a cycle
    if len(order) != len(packages):
        remaining = sorted(set(packages) - set(order))
        raise DependencyCycleError(
            f"Dependency cycle detected involving: {', '.join(remaining)}"
        )

    return order


class DependencyGraph:
    """Workspace dependency graph (edges run dependent → dependency).

    Only edges between workspace packages are kept. The topological order
    is computed once on construction, so a cyclic workspace fails here
    before any change is computed.
    """

    def __init__(self, packages: Mapping[str, Package]) -> None:
        self.deps: dict[str, list[str]] = {
            name: sorted({d for d in info.deps if d in packages and d != name})
            for name, info in packages.items()
        }
        self.dependents: dict[str, list[str]] = {name: [] for name in packages}
        for name, deps in self.deps.items():
            for dep in deps:
                self.dependents[dep].append(name)
        self.order = topo_sort(packages)

    def dependents_of(self, name: str) -> list[str]:
        """Direct dependents of a package, alphabetically."""
        return sorted(self.dependents.get(name, []))

    def resolve(self, seeds: Mapping[str, ChangeType]) -> dict[str, ChangeType]:
        """Cascade explicit change types to every transitive dependent.

        A package keeps its own (seeded) type when it has one. Otherwise it
        resolves to DEPENDENCY if any of its dependencies resolved above
        NONE, else NONE. Visiting nodes in topological order means every
        dependency is final before its dependents are looked at, so each
        node is resolved exactly once and the result is the fixed point.

        Args:
            seeds: Explicit change type per package; missing means NONE.

        Returns:
            Resolved change type for every package in the graph.
        """
        resolved: dict[str, ChangeType] = {}
        for name in self.order:
            change_type = seeds.get(name, ChangeType.NONE)
            if change_type == ChangeType.NONE and any(
                resolved[dep] > ChangeType.NONE for dep in self.deps[name]
            ):
                change_type = ChangeType.DEPENDENCY
            resolved[name] = change_type
        return resolved
