"""
Multi-source queries: latest-version lookup and dependency-closure gathering.

Sources are queried concurrently (one task per source) and results are merged in
configuration order, so the outcome never depends on which source answered first.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence, Tuple, Type, TypeVar

from packaging.version import Version

from pkgplan.sources import DependencyInfoResource, MetadataResource, Resource, SourceRepository
from pkgplan.structures import (
    CancellationToken,
    DependencyInfoSet,
    PackageIdentity,
    ResolutionContext,
)

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=Resource)
T = TypeVar("T")


def query_sources(
    sources: Sequence[SourceRepository],
    resource_type: Type[R],
    query: Callable[[R], T],
    token: Optional[CancellationToken] = None,
    max_workers: int = 4,
) -> List[Tuple[SourceRepository, T]]:
    """
    Run query against every source exposing resource_type.
    Returns (source, result) pairs in source order. Sources without the resource are skipped.
    """
    targets = [(s, s.get_resource(resource_type)) for s in sources]
    targets = [(s, r) for s, r in targets if r is not None]

    def run(resource: R) -> T:
        if token is not None:
            token.raise_if_cancelled()
        return query(resource)

    if max_workers <= 1 or len(targets) <= 1:
        return [(s, run(r)) for s, r in targets]

    with ThreadPoolExecutor(max_workers=min(max_workers, len(targets))) as pool:
        futures = [(s, pool.submit(run, r)) for s, r in targets]
        # Joined in configuration order, not completion order.
        return [(s, f.result()) for s, f in futures]


class VersionResolver:
    """Finds the highest version of a package id across all sources."""

    def __init__(self, sources: Sequence[SourceRepository], max_workers: int = 4):
        self._sources = tuple(sources)
        self._max_workers = max_workers

    def get_latest_version(
        self,
        package_id: str,
        context: ResolutionContext,
        token: Optional[CancellationToken] = None,
    ) -> Optional[Version]:
        results = query_sources(
            self._sources,
            MetadataResource,
            lambda r: r.get_latest_versions(
                [package_id], context.include_prerelease, context.include_unlisted
            ),
            token=token,
            max_workers=self._max_workers,
        )
        versions: List[Version] = []
        for source, latest in results:
            if not latest:
                continue
            version = next(iter(latest.values()))
            logger.debug("%s: latest %s is %s", source.name, package_id, version)
            versions.append(version)
        return max(versions) if versions else None


class DependencyGatherer:
    """Collects the dependency closure of an identity from all sources into one pool."""

    def __init__(self, sources: Sequence[SourceRepository], max_workers: int = 4):
        self._sources = tuple(sources)
        self._max_workers = max_workers

    def gather(
        self,
        identity: PackageIdentity,
        target_framework: Optional[str],
        token: Optional[CancellationToken] = None,
    ) -> DependencyInfoSet:
        results = query_sources(
            self._sources,
            DependencyInfoResource,
            lambda r: r.resolve_packages([identity], target_framework, True),
            token=token,
            max_workers=self._max_workers,
        )
        pool = DependencyInfoSet()
        for source, infos in results:
            added = 0
            for info in infos or ():
                if pool.add(info, source):
                    added += 1
            logger.debug("%s: contributed %d new candidates for %s", source.name, added, identity)
        return pool
