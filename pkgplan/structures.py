"""
Value types shared by gathering, resolution, planning and execution.
Identity equality is (id.lower(), version); DependencyInfo equality ignores the dependency list.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from packaging.specifiers import SpecifierSet
from packaging.version import Version

from pkgplan.exceptions import OperationCancelledError

if TYPE_CHECKING:
    from pkgplan.sources import SourceRepository


@dataclass(frozen=True, eq=False)
class PackageIdentity:
    """A package id together with one exact version."""

    id: str
    version: Version

    def __post_init__(self) -> None:
        if not isinstance(self.version, Version):
            object.__setattr__(self, "version", Version(str(self.version)))

    @property
    def key(self) -> Tuple[str, Version]:
        return (self.id.lower(), self.version)

    def __hash__(self) -> int:
        return hash(self.key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PackageIdentity):
            return NotImplemented
        return self.key == other.key

    def __lt__(self, other: "PackageIdentity") -> bool:
        return self.key < other.key

    def __str__(self) -> str:
        return f"{self.id} {self.version}"


@dataclass(frozen=True)
class PackageDependency:
    """A dependency on a package id, constrained by a version range (empty = any)."""

    id: str
    version_range: SpecifierSet = field(default_factory=SpecifierSet)

    def __post_init__(self) -> None:
        if not isinstance(self.version_range, SpecifierSet):
            object.__setattr__(self, "version_range", SpecifierSet(str(self.version_range or "")))


@dataclass(frozen=True, eq=False)
class DependencyInfo:
    """A (package, version) plus its declared dependencies. Keyed by identity only."""

    identity: PackageIdentity
    dependencies: Tuple[PackageDependency, ...] = ()

    def __hash__(self) -> int:
        return hash(self.identity)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DependencyInfo):
            return NotImplemented
        return self.identity == other.identity


class DependencyInfoSet(Mapping[DependencyInfo, "SourceRepository"]):
    """
    Candidate pool: DependencyInfo -> SourceRepository that first supplied it.
    Duplicate (id, version) keys keep the existing mapping.
    """

    def __init__(self) -> None:
        self._entries: Dict[PackageIdentity, Tuple[DependencyInfo, "SourceRepository"]] = {}

    def add(self, info: DependencyInfo, source: "SourceRepository") -> bool:
        if info.identity in self._entries:
            return False
        self._entries[info.identity] = (info, source)
        return True

    def source_for(self, key: Union[PackageIdentity, DependencyInfo]) -> Optional["SourceRepository"]:
        identity = key.identity if isinstance(key, DependencyInfo) else key
        entry = self._entries.get(identity)
        return entry[1] if entry is not None else None

    def identities(self) -> List[PackageIdentity]:
        return list(self._entries)

    def __getitem__(self, key: Union[PackageIdentity, DependencyInfo]) -> "SourceRepository":
        source = self.source_for(key)
        if source is None:
            raise KeyError(key)
        return source

    def __contains__(self, key: object) -> bool:
        if isinstance(key, DependencyInfo):
            key = key.identity
        return key in self._entries

    def __iter__(self) -> Iterator[DependencyInfo]:
        for info, _ in self._entries.values():
            yield info

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class InstalledReference:
    """A package identity recorded as installed in a project."""

    identity: PackageIdentity


class DependencyBehavior(Enum):
    """How the solver breaks ties between versions satisfying a dependency."""

    IGNORE = "ignore"
    LOWEST = "lowest"
    HIGHEST_PATCH = "highest-patch"
    HIGHEST_MINOR = "highest-minor"
    HIGHEST = "highest"


@dataclass(frozen=True)
class ResolutionContext:
    """Per-operation resolution options."""

    dependency_behavior: DependencyBehavior = DependencyBehavior.LOWEST
    include_prerelease: bool = False
    include_unlisted: bool = False


class ProjectActionType(Enum):
    INSTALL = "install"
    UNINSTALL = "uninstall"


@dataclass(frozen=True)
class ProjectAction:
    """One step of a plan. Install actions always carry the source to download from."""

    action_type: ProjectActionType
    identity: PackageIdentity
    source: Optional["SourceRepository"] = None

    def __post_init__(self) -> None:
        if self.action_type is ProjectActionType.INSTALL and self.source is None:
            raise ValueError(f"install action for {self.identity} requires a source")

    @classmethod
    def install(cls, identity: PackageIdentity, source: "SourceRepository") -> "ProjectAction":
        return cls(ProjectActionType.INSTALL, identity, source)

    @classmethod
    def uninstall(cls, identity: PackageIdentity) -> "ProjectAction":
        return cls(ProjectActionType.UNINSTALL, identity)

    def __str__(self) -> str:
        if self.source is None:
            return f"{self.action_type.value} {self.identity}"
        return f"{self.action_type.value} {self.identity} from {self.source.name}"


class CancellationToken:
    """Cooperative cancellation flag, checked at discrete checkpoints only."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError("operation was cancelled")
