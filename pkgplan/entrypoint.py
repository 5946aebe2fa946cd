"""
Resolution: turn a candidate pool plus the project's installed packages into one consistent package set.

The combinatorial search is delegated to a Solver. ResolvelibSolver drives resolvelib's Resolver
with PackageProvider and returns identities ordered dependencies-first.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from resolvelib import BaseReporter, InconsistentCandidate, ResolutionError, Resolver

from pkgplan.exceptions import UnsatisfiableError
from pkgplan.provider import PackageProvider, Requirement
from pkgplan.structures import DependencyBehavior, DependencyInfo, PackageIdentity

logger = logging.getLogger(__name__)


class Solver(Protocol):
    def resolve(
        self,
        targets: Sequence[PackageIdentity],
        pool: Iterable[DependencyInfo],
        installed: Sequence[PackageIdentity],
        dependency_behavior: DependencyBehavior,
    ) -> Optional[List[PackageIdentity]]:
        """Return the resolved package set, or None when no consistent set exists."""
        ...


def _install_order(mapping: Dict[str, DependencyInfo], graph: Any) -> List[PackageIdentity]:
    """
    Post-order walk of the resolution graph from the root (None) vertex: children
    (dependencies) before parents, siblings by identifier. Vertices unreachable from
    the root are appended in identifier order.
    """
    ordered: List[PackageIdentity] = []
    seen = set()

    def visit(key: str) -> None:
        # Iterative post-order; dependency graphs may contain cycles.
        stack = [(key, iter(sorted(c for c in graph.iter_children(key) if c is not None)))]
        seen.add(key)
        while stack:
            node, children = stack[-1]
            for child in children:
                if child not in seen and child in mapping:
                    seen.add(child)
                    stack.append((child, iter(sorted(graph.iter_children(child)))))
                    break
            else:
                stack.pop()
                ordered.append(mapping[node].identity)

    roots = sorted(c for c in graph.iter_children(None) if c is not None)
    for key in roots + sorted(mapping):
        if key not in seen and key in mapping:
            visit(key)
    return ordered


class ResolvelibSolver:
    """Solver backed by resolvelib. Installed packages are kept unless a target forces a change."""

    def __init__(self, include_prerelease: bool = False, max_rounds: int = 200):
        self._include_prerelease = include_prerelease
        self._max_rounds = max_rounds

    def resolve(
        self,
        targets: Sequence[PackageIdentity],
        pool: Iterable[DependencyInfo],
        installed: Sequence[PackageIdentity],
        dependency_behavior: DependencyBehavior,
    ) -> Optional[List[PackageIdentity]]:
        candidates = list(pool)
        known = {info.identity for info in candidates}
        # Installed packages the sources no longer offer stay expressible as-is.
        candidates.extend(DependencyInfo(i) for i in installed if i not in known)

        target_ids = {t.id.lower() for t in targets}
        requirements = [Requirement.exact(t) for t in targets]
        requirements.extend(
            Requirement(name=i.id.lower()) for i in installed if i.id.lower() not in target_ids
        )

        provider = PackageProvider(
            candidates,
            installed={i.id.lower(): i.version for i in installed},
            behavior=dependency_behavior,
            include_prerelease=self._include_prerelease,
        )
        resolver = Resolver(provider, BaseReporter())
        try:
            result = resolver.resolve(requirements, max_rounds=self._max_rounds)
        except (ResolutionError, InconsistentCandidate) as exc:
            logger.debug("resolution failed for %s: %s", [str(t) for t in targets], exc)
            return None
        return _install_order(result.mapping, result.graph)


class ResolutionEngine:
    """Runs a Solver and turns an unsatisfiable outcome into UnsatisfiableError."""

    def __init__(self, solver: Solver):
        self._solver = solver

    def resolve(
        self,
        targets: Sequence[PackageIdentity],
        pool: Iterable[DependencyInfo],
        installed: Sequence[PackageIdentity],
        dependency_behavior: DependencyBehavior,
    ) -> List[PackageIdentity]:
        resolved = self._solver.resolve(targets, pool, installed, dependency_behavior)
        if resolved is None:
            raise UnsatisfiableError(targets, dependency_behavior)
        return list(resolved)
