"""
Plan execution: apply actions to a project one at a time, in order.

Execution is not transactional. The first failure stops the run; actions that already
completed stay applied, and the failing and remaining actions are neither retried nor
rolled back.
"""

from __future__ import annotations

import io
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, List, Optional, Sequence

from pkgplan.exceptions import PackageDownloadError
from pkgplan.project import Project, ProjectContext
from pkgplan.sources import DownloadResource, SourceRepository
from pkgplan.structures import CancellationToken, PackageIdentity, ProjectAction, ProjectActionType

logger = logging.getLogger(__name__)


class PackageEventKind(Enum):
    INSTALLING = "installing"
    INSTALLED = "installed"
    UNINSTALLING = "uninstalling"
    UNINSTALLED = "uninstalled"


@dataclass(frozen=True)
class PackageOperationEvent:
    kind: PackageEventKind
    identity: PackageIdentity


PackageEventListener = Callable[[PackageOperationEvent], None]


@contextmanager
def open_package_stream(source: SourceRepository, identity: PackageIdentity) -> Iterator[io.BytesIO]:
    """Download identity from source into a buffer that is closed on every exit path."""
    resource = source.get_resource(DownloadResource)
    if resource is None:
        raise PackageDownloadError(identity, source.name, "source does not provide package content")
    stream = io.BytesIO()
    try:
        resource.copy_package(identity, stream)
        stream.seek(0)
        yield stream
    finally:
        stream.close()


class ActionExecutor:
    """
    Applies project actions sequentially and notifies listeners synchronously.
    Listeners observe actions but cannot cancel one in flight; an exception raised
    by a listener fails the current action like any other error.
    """

    def __init__(self) -> None:
        self._listeners: List[PackageEventListener] = []

    def subscribe(self, listener: PackageEventListener) -> Callable[[], None]:
        """Register listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: PackageEventKind, identity: PackageIdentity) -> None:
        event = PackageOperationEvent(kind, identity)
        for listener in list(self._listeners):
            listener(event)

    def execute(
        self,
        project: Project,
        actions: Sequence[ProjectAction],
        project_context: ProjectContext,
        token: Optional[CancellationToken] = None,
    ) -> None:
        for action in actions:
            if token is not None:
                token.raise_if_cancelled()
            logger.debug("executing %s", action)
            if action.action_type is ProjectActionType.UNINSTALL:
                self._execute_uninstall(project, action.identity, project_context)
            else:
                with open_package_stream(action.source, action.identity) as stream:
                    self._execute_install(project, action.identity, stream, project_context)

    def _execute_install(
        self,
        project: Project,
        identity: PackageIdentity,
        stream: io.BytesIO,
        project_context: ProjectContext,
    ) -> None:
        self._emit(PackageEventKind.INSTALLING, identity)
        project.install_package(identity, stream, project_context)
        self._emit(PackageEventKind.INSTALLED, identity)

    def _execute_uninstall(self, project: Project, identity: PackageIdentity, project_context: ProjectContext) -> None:
        self._emit(PackageEventKind.UNINSTALLING, identity)
        project.uninstall_package(identity, project_context)
        self._emit(PackageEventKind.UNINSTALLED, identity)
