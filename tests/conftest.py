"""Shared fixtures: feeds built from documents, a recording fake project and context."""

from __future__ import annotations

from typing import Any, BinaryIO, Dict, List, Optional

import pytest

from pkgplan.loader import StaticPackageFeed, feed_source
from pkgplan.project import MessageLevel, Project, ProjectContext, ProjectMetadataKeys
from pkgplan.sources import SourceRepository
from pkgplan.structures import InstalledReference, PackageIdentity


def pkg(package_id: str, version: str, deps: Optional[Dict[str, str]] = None, **extra: Any) -> Dict[str, Any]:
    """Feed document helper: deps maps dependency id -> version range."""
    doc: Dict[str, Any] = {
        "id": package_id,
        "version": version,
        "dependencies": [{"id": d, "range": r} for d, r in (deps or {}).items()],
        "content": f"{package_id} {version}",
    }
    doc.update(extra)
    return doc


def make_source(name: str, *docs: Dict[str, Any]) -> SourceRepository:
    return feed_source(StaticPackageFeed.from_documents(name, docs))


def ident(package_id: str, version: str) -> PackageIdentity:
    return PackageIdentity(package_id, version)


class RecordingContext(ProjectContext):
    def __init__(self) -> None:
        self.messages: List[str] = []

    def log(self, level: MessageLevel, message: str, *args: Any) -> None:
        self.messages.append(message % args)


class FakeProject(Project):
    """In-memory project. fail_on lists identities whose install/uninstall raises."""

    def __init__(self, installed=(), target_framework: Optional[str] = None, fail_on=()):
        self.installed: List[PackageIdentity] = list(installed)
        self.contents: Dict[PackageIdentity, bytes] = {}
        self.calls: List[str] = []
        self.streams: List[BinaryIO] = []
        self.fail_on = set(fail_on)
        self.target_framework = target_framework

    def get_installed_packages(self) -> List[InstalledReference]:
        return [InstalledReference(i) for i in self.installed]

    def get_metadata(self, key: str) -> Any:
        if key == ProjectMetadataKeys.TARGET_FRAMEWORK:
            return self.target_framework
        return None

    def install_package(self, identity, stream, context) -> None:
        self.calls.append(f"install {identity}")
        self.streams.append(stream)
        if identity in self.fail_on:
            raise RuntimeError(f"install of {identity} failed")
        self.contents[identity] = stream.read()
        self.installed.append(identity)

    def uninstall_package(self, identity, context) -> None:
        self.calls.append(f"uninstall {identity}")
        if identity in self.fail_on:
            raise RuntimeError(f"uninstall of {identity} failed")
        self.installed.remove(identity)


@pytest.fixture
def project_context():
    return RecordingContext()
