"""
Package sources and the optional capabilities ("resources") they expose.
A source exposes each capability at most once; absence is reported as None, never raised.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import BinaryIO, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Type, TypeVar

from packaging.version import Version

from pkgplan.structures import DependencyInfo, PackageIdentity

R = TypeVar("R", bound="Resource")


class Resource(ABC):
    """Marker base class for source capabilities."""


class MetadataResource(Resource):
    @abstractmethod
    def get_latest_versions(
        self,
        package_ids: Sequence[str],
        include_prerelease: bool,
        include_unlisted: bool,
    ) -> Mapping[str, Version]:
        """Return package id -> latest version for the ids this source knows."""


class DependencyInfoResource(Resource):
    @abstractmethod
    def resolve_packages(
        self,
        identities: Sequence[PackageIdentity],
        target_framework: Optional[str],
        include_prerelease: bool,
    ) -> List[DependencyInfo]:
        """Return the dependency closure of the given identities known to this source."""


class DownloadResource(Resource):
    @abstractmethod
    def copy_package(self, identity: PackageIdentity, target: BinaryIO) -> None:
        """Write the package content for identity into target."""


class SourceRepository:
    """A named source. Capabilities are registered by resource base type."""

    def __init__(self, name: str, resources: Iterable[Resource] = ()) -> None:
        self.name = name
        self._resources: Dict[Type[Resource], Resource] = {}
        for resource in resources:
            for base in (MetadataResource, DependencyInfoResource, DownloadResource):
                if isinstance(resource, base):
                    self._resources[base] = resource

    def get_resource(self, resource_type: Type[R]) -> Optional[R]:
        return self._resources.get(resource_type)  # type: ignore[return-value]

    def __repr__(self) -> str:
        return f"SourceRepository({self.name!r})"


class SourceRepositoryProvider:
    """Immutable, ordered list of configured sources. Order is merge priority."""

    def __init__(self, repositories: Iterable[SourceRepository]) -> None:
        self._repositories: Tuple[SourceRepository, ...] = tuple(repositories)

    def get_repositories(self) -> Tuple[SourceRepository, ...]:
        return self._repositories

    def __iter__(self) -> Iterator[SourceRepository]:
        return iter(self._repositories)

    def __len__(self) -> int:
        return len(self._repositories)
