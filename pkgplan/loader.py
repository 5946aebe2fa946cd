"""
Concrete package feeds: in-memory / JSON file feeds and MongoDB-backed feeds.

Every feed document has the shape
    {"id": "Pkg", "version": "1.2.0", "listed": true,
     "dependency_groups": {"": [{"id": "Dep", "range": ">=1.0"}], "net45": [...]},
     "content": <bytes or text>}
A flat "dependencies" list is accepted as shorthand for the default ("") group.
MongoDB documents are looked up by an "id_lower" field; per-id document lists are cached with an LRU.
"""

from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, BinaryIO, Deque, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from packaging.version import Version
from pymongo import MongoClient
from pymongo.collection import Collection

from pkgplan.exceptions import PackageDownloadError
from pkgplan.sources import (
    DependencyInfoResource,
    DownloadResource,
    MetadataResource,
    SourceRepository,
    SourceRepositoryProvider,
)
from pkgplan.structures import DependencyInfo, PackageDependency, PackageIdentity

logger = logging.getLogger(__name__)

DEFAULT_GROUP = ""


class LRUCache:
    """Simple LRU cache for id_lower -> list of feed entries."""

    def __init__(self, cap: int):
        self.cap = max(0, int(cap))
        self._od: OrderedDict = OrderedDict()
        self._lock = threading.Lock()

    def get(self, k: str) -> Optional[List["FeedEntry"]]:
        if self.cap <= 0:
            return None
        with self._lock:
            if k in self._od:
                self._od.move_to_end(k)
                return self._od[k]
        return None

    def put(self, k: str, v: List["FeedEntry"]) -> None:
        if self.cap <= 0:
            return
        with self._lock:
            if k in self._od:
                self._od.move_to_end(k)
                self._od[k] = v
                return
            self._od[k] = v
            while len(self._od) > self.cap:
                self._od.popitem(last=False)

    def __len__(self) -> int:
        return len(self._od)


@dataclass
class FeedEntry:
    identity: PackageIdentity
    listed: bool = True
    dependency_groups: Dict[str, Tuple[PackageDependency, ...]] = field(default_factory=dict)
    content: Optional[bytes] = None
    ref: Any = None  # backing-store key for lazy content lookup

    def dependencies_for(self, target_framework: Optional[str]) -> Tuple[PackageDependency, ...]:
        if target_framework and target_framework in self.dependency_groups:
            return self.dependency_groups[target_framework]
        return self.dependency_groups.get(DEFAULT_GROUP, ())


def _parse_dependencies(items: Optional[Iterable[Mapping[str, Any]]]) -> Tuple[PackageDependency, ...]:
    return tuple(
        PackageDependency(id=str(d["id"]), version_range=str(d.get("range") or ""))
        for d in (items or [])
    )


def entry_from_document(doc: Mapping[str, Any]) -> FeedEntry:
    """Build a FeedEntry from a feed document (JSON object or MongoDB document)."""
    groups: Dict[str, Tuple[PackageDependency, ...]] = {}
    for framework, deps in (doc.get("dependency_groups") or {}).items():
        groups[str(framework)] = _parse_dependencies(deps)
    if "dependencies" in doc:
        groups[DEFAULT_GROUP] = _parse_dependencies(doc.get("dependencies"))

    content = doc.get("content")
    if isinstance(content, str):
        content = content.encode("utf-8")
    elif content is not None:
        content = bytes(content)

    return FeedEntry(
        identity=PackageIdentity(str(doc["id"]), Version(str(doc["version"]))),
        listed=bool(doc.get("listed", True)),
        dependency_groups=groups,
        content=content,
        ref=doc.get("_id"),
    )


class PackageFeed(MetadataResource, DependencyInfoResource, DownloadResource):
    """
    Shared metadata, closure and download logic. Subclasses supply
    _find_entries(id_lower) and, for lazy content, _load_content(entry).
    """

    name = "feed"

    def _find_entries(self, id_lower: str) -> List[FeedEntry]:
        raise NotImplementedError

    def _load_content(self, entry: FeedEntry) -> Optional[bytes]:
        return entry.content

    def _find_entry(self, identity: PackageIdentity) -> Optional[FeedEntry]:
        for entry in self._find_entries(identity.id.lower()):
            if entry.identity == identity:
                return entry
        return None

    def get_latest_versions(
        self,
        package_ids: Sequence[str],
        include_prerelease: bool,
        include_unlisted: bool,
    ) -> Dict[str, Version]:
        latest: Dict[str, Version] = {}
        for package_id in package_ids:
            versions = [
                e.identity.version
                for e in self._find_entries(package_id.lower())
                if (include_unlisted or e.listed)
                and (include_prerelease or not e.identity.version.is_prerelease)
            ]
            if versions:
                latest[package_id] = max(versions)
        return latest

    def resolve_packages(
        self,
        identities: Sequence[PackageIdentity],
        target_framework: Optional[str],
        include_prerelease: bool,
    ) -> List[DependencyInfo]:
        found: Dict[PackageIdentity, DependencyInfo] = {}
        queue: Deque[DependencyInfo] = deque()
        seen_ids = set()

        def add(entry: FeedEntry) -> None:
            if entry.identity in found:
                return
            info = DependencyInfo(entry.identity, entry.dependencies_for(target_framework))
            found[entry.identity] = info
            queue.append(info)

        for identity in identities:
            entry = self._find_entry(identity)
            if entry is not None:
                add(entry)

        while queue:
            info = queue.popleft()
            for dep in info.dependencies:
                id_lower = dep.id.lower()
                if id_lower in seen_ids:
                    continue
                seen_ids.add(id_lower)
                for entry in self._find_entries(id_lower):
                    if entry.identity.version.is_prerelease and not include_prerelease:
                        continue
                    add(entry)

        logger.debug("%s: closure of %s has %d packages", self.name, list(map(str, identities)), len(found))
        return list(found.values())

    def copy_package(self, identity: PackageIdentity, target: BinaryIO) -> None:
        entry = self._find_entry(identity)
        if entry is None:
            raise PackageDownloadError(identity, self.name, "package not found")
        content = self._load_content(entry)
        if content is None:
            raise PackageDownloadError(identity, self.name, "package has no content")
        target.write(content)


class StaticPackageFeed(PackageFeed):
    """In-memory feed, optionally loaded from a JSON feed file."""

    def __init__(self, name: str, entries: Iterable[FeedEntry]):
        self.name = name
        self._by_id: Dict[str, List[FeedEntry]] = {}
        for entry in entries:
            self._by_id.setdefault(entry.identity.id.lower(), []).append(entry)

    @classmethod
    def from_documents(cls, name: str, documents: Iterable[Mapping[str, Any]]) -> "StaticPackageFeed":
        return cls(name, (entry_from_document(d) for d in documents))

    @classmethod
    def from_file(cls, path: str) -> "StaticPackageFeed":
        p = Path(path)
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
        docs = data.get("packages", []) if isinstance(data, dict) else data
        name = data.get("name", p.stem) if isinstance(data, dict) else p.stem
        return cls.from_documents(str(name), docs)

    def _find_entries(self, id_lower: str) -> List[FeedEntry]:
        return self._by_id.get(id_lower, [])


class MongoPackageFeed(PackageFeed):
    """Feed backed by one MongoDB collection. Content is fetched only on download."""

    def __init__(self, name: str, collection: Collection, cache_size: int = 10_000):
        self.name = name
        self._coll = collection
        self._cache = LRUCache(cache_size)

    def _find_entries(self, id_lower: str) -> List[FeedEntry]:
        cached = self._cache.get(id_lower)
        if cached is not None:
            return cached
        entries = [
            entry_from_document(d)
            for d in self._coll.find({"id_lower": id_lower}, {"content": 0})
        ]
        self._cache.put(id_lower, entries)
        return entries

    def _load_content(self, entry: FeedEntry) -> Optional[bytes]:
        doc = self._coll.find_one({"_id": entry.ref}, {"content": 1})
        if not doc or doc.get("content") is None:
            return None
        content = doc["content"]
        return content.encode("utf-8") if isinstance(content, str) else bytes(content)


def feed_source(feed: PackageFeed) -> SourceRepository:
    return SourceRepository(feed.name, [feed])


def load_sources(
    mongo_uri: Optional[str] = None,
    database: str = "packages",
    collections: Sequence[str] = (),
    feed_files: Sequence[str] = (),
    cache_size: int = 10_000,
) -> SourceRepositoryProvider:
    """
    Build the configured source list. MongoDB collections come first, in the given order,
    followed by JSON feed files; that order is the merge priority.
    """
    repositories: List[SourceRepository] = []
    if collections:
        if not mongo_uri:
            raise ValueError("a MongoDB URI is required when MongoDB sources are configured")
        client = MongoClient(mongo_uri)
        db = client[database]
        for coll_name in collections:
            repositories.append(feed_source(MongoPackageFeed(coll_name, db[coll_name], cache_size)))
    for path in feed_files:
        repositories.append(feed_source(StaticPackageFeed.from_file(path)))
    logger.info("Configured %d package sources: %s", len(repositories), [r.name for r in repositories])
    return SourceRepositoryProvider(repositories)
