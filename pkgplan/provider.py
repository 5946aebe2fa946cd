"""
Candidate-pool provider implementing resolvelib's AbstractProvider.
Identifier (KT) = lower-cased package id. Candidates are DependencyInfo entries from the gathered pool.
Candidate ordering encodes the dependency-behavior policy; installed versions are always tried first.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence

from packaging.specifiers import SpecifierSet
from packaging.version import Version
from resolvelib import AbstractProvider
from resolvelib.structs import RequirementInformation

from pkgplan.structures import DependencyBehavior, DependencyInfo, PackageIdentity


@dataclass(frozen=True)
class Requirement:
    """
    A requirement on a package id. pinned = exact version (targets);
    specifier = version range (dependencies); neither = any version (keep an installed package).
    """

    name: str
    specifier: Optional[SpecifierSet] = None
    pinned: Optional[Version] = None
    parent: Optional[PackageIdentity] = None  # None = root requirement

    @classmethod
    def exact(cls, identity: PackageIdentity) -> "Requirement":
        return cls(name=identity.id.lower(), pinned=identity.version)


def order_versions(versions: Iterable[Version], behavior: DependencyBehavior) -> List[Version]:
    """Order versions from most to least preferred under behavior."""
    if behavior is DependencyBehavior.HIGHEST:
        return sorted(versions, reverse=True)
    if behavior is DependencyBehavior.HIGHEST_MINOR:
        # Lowest major, then the highest release within it.
        return sorted(sorted(versions, reverse=True), key=lambda v: v.major)
    if behavior is DependencyBehavior.HIGHEST_PATCH:
        return sorted(sorted(versions, reverse=True), key=lambda v: (v.major, v.minor))
    return sorted(versions)


class PackageProvider(AbstractProvider[Requirement, DependencyInfo, str]):
    """
    Provider over an in-memory candidate pool. installed maps id -> installed version
    for the project's current packages.
    """

    def __init__(
        self,
        pool: Iterable[DependencyInfo],
        installed: Mapping[str, Version],
        behavior: DependencyBehavior,
        include_prerelease: bool = False,
    ):
        self._by_id: Dict[str, Dict[Version, DependencyInfo]] = {}
        for info in pool:
            self._by_id.setdefault(info.identity.id.lower(), {}).setdefault(info.identity.version, info)
        self._installed = dict(installed)
        self._behavior = behavior
        self._include_prerelease = include_prerelease

    def identify(self, requirement_or_candidate: Requirement | DependencyInfo) -> str:
        if isinstance(requirement_or_candidate, Requirement):
            return requirement_or_candidate.name
        return requirement_or_candidate.identity.id.lower()

    def get_preference(
        self,
        identifier: str,
        resolutions: Mapping[str, DependencyInfo],
        candidates: Mapping[str, Iterator[DependencyInfo]],
        information: Mapping[str, Iterator[RequirementInformation[Requirement, DependencyInfo]]],
        backtrack_causes: Sequence[RequirementInformation[Requirement, DependencyInfo]],
    ):
        """Pinned requirements first, then by identifier (deterministic)."""
        pinned = any(info.requirement.pinned is not None for info in information[identifier])
        return (0 if pinned else 1, identifier)

    def _ordered(self, identifier: str) -> List[DependencyInfo]:
        by_version = self._by_id.get(identifier, {})
        ordered = order_versions(by_version, self._behavior)
        installed = self._installed.get(identifier)
        if installed is not None and installed in by_version:
            ordered.remove(installed)
            ordered.insert(0, installed)
        return [by_version[v] for v in ordered]

    def find_matches(
        self,
        identifier: str,
        requirements: Mapping[str, Iterator[Requirement]],
        incompatibilities: Mapping[str, Iterator[DependencyInfo]],
    ):
        reqs = list(requirements.get(identifier, ()))
        bad = {c.identity for c in incompatibilities.get(identifier, ())}
        return [
            cand
            for cand in self._ordered(identifier)
            if cand.identity not in bad and all(self.is_satisfied_by(r, cand) for r in reqs)
        ]

    def is_satisfied_by(self, requirement: Requirement, candidate: DependencyInfo) -> bool:
        if candidate.identity.id.lower() != requirement.name:
            return False
        version = candidate.identity.version
        if requirement.pinned is not None:
            return version == requirement.pinned
        if requirement.specifier is None:
            return True
        # Explicit bool: newer packaging admits prereleases when prereleases=None.
        prereleases = self._include_prerelease or bool(requirement.specifier.prereleases)
        return requirement.specifier.contains(version, prereleases=prereleases)

    def get_dependencies(self, candidate: DependencyInfo) -> List[Requirement]:
        if self._behavior is DependencyBehavior.IGNORE:
            return []
        return [
            Requirement(name=dep.id.lower(), specifier=dep.version_range, parent=candidate.identity)
            for dep in candidate.dependencies
        ]
