"""
Project-side collaborators: the Project being mutated and the ProjectContext used for progress messages.
FolderProject keeps its installed list in <root>/packages.json and package content under <root>/packages/.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional

from pkgplan.exceptions import ProjectMutationError
from pkgplan.structures import InstalledReference, PackageIdentity

logger = logging.getLogger(__name__)


class ProjectMetadataKeys:
    TARGET_FRAMEWORK = "target_framework"
    NAME = "name"


class MessageLevel(Enum):
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR


class ProjectContext(ABC):
    @abstractmethod
    def log(self, level: MessageLevel, message: str, *args: Any) -> None:
        """Report progress; message is a %-style format string."""


class LoggingProjectContext(ProjectContext):
    """Forwards project-context messages to a standard logger."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self._logger = log or logging.getLogger("pkgplan.project")

    def log(self, level: MessageLevel, message: str, *args: Any) -> None:
        self._logger.log(level.value, message, *args)


class Project(ABC):
    @abstractmethod
    def get_installed_packages(self) -> List[InstalledReference]: ...

    @abstractmethod
    def get_metadata(self, key: str) -> Any: ...

    @abstractmethod
    def install_package(self, identity: PackageIdentity, stream: BinaryIO, context: ProjectContext) -> None: ...

    @abstractmethod
    def uninstall_package(self, identity: PackageIdentity, context: ProjectContext) -> None: ...


class FolderProject(Project):
    MANIFEST = "packages.json"

    def __init__(self, root: str, target_framework: Optional[str] = None):
        self.root = Path(root)
        self.packages_dir = self.root / "packages"
        self._metadata: Dict[str, Any] = {
            ProjectMetadataKeys.NAME: self.root.name,
            ProjectMetadataKeys.TARGET_FRAMEWORK: target_framework,
        }

    @property
    def manifest_path(self) -> Path:
        return self.root / self.MANIFEST

    def _read_manifest(self) -> List[Dict[str, str]]:
        if not self.manifest_path.exists():
            return []
        with self.manifest_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        return list(data.get("packages", []))

    def _write_manifest(self, entries: List[Dict[str, str]]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        with self.manifest_path.open("w", encoding="utf-8") as f:
            json.dump({"packages": entries}, f, indent=2)

    def _content_path(self, package_id: str, version: str) -> Path:
        return self.packages_dir / f"{package_id}.{version}.pkg"

    def get_installed_packages(self) -> List[InstalledReference]:
        return [
            InstalledReference(PackageIdentity(e["id"], e["version"]))
            for e in self._read_manifest()
        ]

    def get_metadata(self, key: str) -> Any:
        return self._metadata.get(key)

    def install_package(self, identity: PackageIdentity, stream: BinaryIO, context: ProjectContext) -> None:
        entries = self._read_manifest()
        if any(PackageIdentity(e["id"], e["version"]) == identity for e in entries):
            raise ProjectMutationError(f"Package '{identity}' is already installed in {self.root}")
        entry = {"id": identity.id, "version": str(identity.version)}
        path = self._content_path(entry["id"], entry["version"])
        try:
            self.packages_dir.mkdir(parents=True, exist_ok=True)
            with path.open("wb") as f:
                f.write(stream.read())
            try:
                self._write_manifest(entries + [entry])
            except OSError:
                path.unlink(missing_ok=True)
                raise
        except OSError as e:
            raise ProjectMutationError(f"Unable to install package '{identity}': {e}") from e
        context.log(MessageLevel.INFO, "Added package '%s' to project '%s'", identity, self.root.name)

    def uninstall_package(self, identity: PackageIdentity, context: ProjectContext) -> None:
        entries = self._read_manifest()
        matched = [e for e in entries if PackageIdentity(e["id"], e["version"]) == identity]
        if not matched:
            raise ProjectMutationError(f"Package '{identity}' is not installed in {self.root}")
        remaining = [e for e in entries if e not in matched]
        try:
            # Stored id casing names the content file, not the caller's.
            for e in matched:
                self._content_path(e["id"], e["version"]).unlink(missing_ok=True)
            self._write_manifest(remaining)
        except OSError as e:
            raise ProjectMutationError(f"Unable to uninstall package '{identity}': {e}") from e
        context.log(MessageLevel.INFO, "Removed package '%s' from project '%s'", identity, self.root.name)
