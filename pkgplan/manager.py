"""
PackageManager: install/preview/execute operations composed from gathering, resolution,
planning and execution. The only state kept between calls is the configured source list
and the registered event listeners.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional, Sequence

from packaging.version import Version

from pkgplan.entrypoint import ResolutionEngine, ResolvelibSolver, Solver
from pkgplan.exceptions import InvalidStateTransitionError, NoDependencyInfoError, NoVersionFoundError
from pkgplan.executor import ActionExecutor, PackageEventListener
from pkgplan.gatherer import DependencyGatherer, VersionResolver
from pkgplan.planner import plan_actions
from pkgplan.project import MessageLevel, Project, ProjectContext, ProjectMetadataKeys
from pkgplan.sources import SourceRepositoryProvider
from pkgplan.structures import CancellationToken, PackageIdentity, ProjectAction, ResolutionContext

logger = logging.getLogger(__name__)

ATTEMPTING_TO_GATHER = "Attempting to gather dependency information for package '%s' with respect to project targeting '%s'"
ATTEMPTING_TO_RESOLVE = "Attempting to resolve dependencies for package '%s' with DependencyBehavior '%s'"
RESOLVING_ACTIONS = "Resolving actions to install package '%s'"
RESOLVED_ACTIONS = "Resolved actions to install package '%s'"


class OperationState(Enum):
    IDLE = "idle"
    GATHERING_INFO = "gathering-info"
    RESOLVING = "resolving"
    PLANNING = "planning"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS = {
    OperationState.IDLE: {OperationState.GATHERING_INFO, OperationState.EXECUTING},
    OperationState.GATHERING_INFO: {OperationState.RESOLVING},
    OperationState.RESOLVING: {OperationState.PLANNING},
    OperationState.PLANNING: {OperationState.EXECUTING, OperationState.COMPLETED},
    OperationState.EXECUTING: {OperationState.COMPLETED},
    OperationState.COMPLETED: set(),
    OperationState.FAILED: set(),
}


class Operation:
    """State of one manager call. Created per call and discarded afterwards."""

    def __init__(self, name: str):
        self.name = name
        self.state = OperationState.IDLE
        self.history: List[OperationState] = [OperationState.IDLE]

    def advance(self, state: OperationState) -> None:
        if state is not OperationState.FAILED and state not in _TRANSITIONS[self.state]:
            raise InvalidStateTransitionError(
                f"{self.name}: cannot move from {self.state.value} to {state.value}"
            )
        logger.debug("%s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state
        self.history.append(state)


class PackageManager:
    """Orchestrates package operations against a project for a fixed set of sources."""

    def __init__(
        self,
        source_provider: SourceRepositoryProvider,
        solver: Optional[Solver] = None,
        max_workers: int = 4,
    ):
        if source_provider is None:
            raise ValueError("source_provider is required")
        self._sources = source_provider.get_repositories()
        self._solver = solver
        self._max_workers = max_workers
        self._executor = ActionExecutor()

    @property
    def sources(self):
        return self._sources

    def subscribe(self, listener: PackageEventListener) -> Callable[[], None]:
        """Register a lifecycle listener (installing/installed/uninstalling/uninstalled)."""
        return self._executor.subscribe(listener)

    def get_latest_version(
        self,
        package_id: str,
        resolution_context: ResolutionContext,
        token: Optional[CancellationToken] = None,
    ) -> Optional[Version]:
        return VersionResolver(self._sources, self._max_workers).get_latest_version(
            package_id, resolution_context, token
        )

    def _latest_identity(
        self,
        package_id: str,
        resolution_context: ResolutionContext,
        token: Optional[CancellationToken],
    ) -> PackageIdentity:
        version = self.get_latest_version(package_id, resolution_context, token)
        if version is None:
            raise NoVersionFoundError(package_id)
        return PackageIdentity(package_id, version)

    def install_latest(
        self,
        project: Project,
        package_id: str,
        resolution_context: ResolutionContext,
        project_context: ProjectContext,
        token: Optional[CancellationToken] = None,
    ) -> List[ProjectAction]:
        identity = self._latest_identity(package_id, resolution_context, token)
        return self.install_package(project, identity, resolution_context, project_context, token)

    def install_package(
        self,
        project: Project,
        identity: PackageIdentity,
        resolution_context: ResolutionContext,
        project_context: ProjectContext,
        token: Optional[CancellationToken] = None,
    ) -> List[ProjectAction]:
        """Preview then execute; returns the executed plan."""
        operation = Operation(f"install {identity}")
        try:
            actions = self._preview(operation, project, identity, resolution_context, project_context, token)
            operation.advance(OperationState.EXECUTING)
            self._executor.execute(project, actions, project_context, token)
            operation.advance(OperationState.COMPLETED)
        except Exception:
            operation.advance(OperationState.FAILED)
            raise
        return actions

    def preview_install_latest(
        self,
        project: Project,
        package_id: str,
        resolution_context: ResolutionContext,
        project_context: ProjectContext,
        token: Optional[CancellationToken] = None,
    ) -> List[ProjectAction]:
        identity = self._latest_identity(package_id, resolution_context, token)
        return self.preview_install(project, identity, resolution_context, project_context, token)

    def preview_install(
        self,
        project: Project,
        identity: PackageIdentity,
        resolution_context: ResolutionContext,
        project_context: ProjectContext,
        token: Optional[CancellationToken] = None,
    ) -> List[ProjectAction]:
        """Compute the actions that would install identity, without touching the project."""
        operation = Operation(f"preview {identity}")
        try:
            actions = self._preview(operation, project, identity, resolution_context, project_context, token)
            operation.advance(OperationState.COMPLETED)
        except Exception:
            operation.advance(OperationState.FAILED)
            raise
        return actions

    def execute_actions(
        self,
        project: Project,
        actions: Sequence[ProjectAction],
        project_context: ProjectContext,
        token: Optional[CancellationToken] = None,
    ) -> None:
        """Apply a previously computed, possibly edited, plan."""
        operation = Operation("execute")
        try:
            operation.advance(OperationState.EXECUTING)
            self._executor.execute(project, actions, project_context, token)
            operation.advance(OperationState.COMPLETED)
        except Exception:
            operation.advance(OperationState.FAILED)
            raise

    def _preview(
        self,
        operation: Operation,
        project: Project,
        identity: PackageIdentity,
        resolution_context: ResolutionContext,
        project_context: ProjectContext,
        token: Optional[CancellationToken],
    ) -> List[ProjectAction]:
        # Step-1: gather dependency info from every source
        operation.advance(OperationState.GATHERING_INFO)
        target_framework = project.get_metadata(ProjectMetadataKeys.TARGET_FRAMEWORK)
        project_context.log(MessageLevel.INFO, ATTEMPTING_TO_GATHER, identity, target_framework)
        pool = DependencyGatherer(self._sources, self._max_workers).gather(identity, target_framework, token)
        if len(pool) == 0:
            raise NoDependencyInfoError(identity, target_framework)

        # Step-2: resolve the new set of installed packages
        operation.advance(OperationState.RESOLVING)
        installed_refs = project.get_installed_packages()
        behavior = resolution_context.dependency_behavior
        project_context.log(MessageLevel.INFO, ATTEMPTING_TO_RESOLVE, identity, behavior.value)
        solver = self._solver or ResolvelibSolver(include_prerelease=resolution_context.include_prerelease)
        resolved = ResolutionEngine(solver).resolve(
            [identity], pool, [ref.identity for ref in installed_refs], behavior
        )

        # Step-3: diff against the project's current packages
        operation.advance(OperationState.PLANNING)
        project_context.log(MessageLevel.INFO, RESOLVING_ACTIONS, identity)
        actions = plan_actions(installed_refs, resolved, pool)
        project_context.log(MessageLevel.INFO, RESOLVED_ACTIONS, identity)
        return actions
