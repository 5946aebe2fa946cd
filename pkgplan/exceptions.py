"""Exception hierarchy.

Ordinary operation failures derive from PackageManagementError so callers
(the CLI in particular) can report them uniformly. Internal consistency
failures deliberately sit outside that hierarchy and are never downgraded.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional


class PackageManagementError(Exception):
    """Base class for expected package-operation failures."""

    code: str = "UNKNOWN"

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NoVersionFoundError(PackageManagementError):
    """No configured source returned a version for the package id."""

    code = "NO_VERSION_FOUND"

    def __init__(self, package_id: str) -> None:
        super().__init__(f"Unable to find latest version of package '{package_id}'")
        self.package_id = package_id


class NoDependencyInfoError(PackageManagementError):
    """No configured source returned dependency info for the identity."""

    code = "NO_DEPENDENCY_INFO"

    def __init__(self, identity: Any, framework: Optional[str]) -> None:
        super().__init__(
            f"Unable to gather dependency information for package '{identity}'"
            f" (target framework: {framework or 'any'})"
        )
        self.identity = identity
        self.framework = framework


class UnsatisfiableError(PackageManagementError):
    """The solver could not find a consistent package set."""

    code = "UNSATISFIABLE"

    def __init__(self, targets: Iterable[Any], dependency_behavior: Any) -> None:
        self.targets = list(targets)
        self.dependency_behavior = dependency_behavior
        names = ", ".join(str(t) for t in self.targets)
        behavior = getattr(dependency_behavior, "value", dependency_behavior)
        super().__init__(
            f"Unable to resolve dependencies for '{names}' with dependency behavior '{behavior}'"
        )


class PackageDownloadError(PackageManagementError):
    """Package content could not be obtained from its source."""

    code = "DOWNLOAD_FAILED"

    def __init__(self, identity: Any, source_name: str, reason: str) -> None:
        super().__init__(f"Unable to download '{identity}' from '{source_name}': {reason}")
        self.identity = identity
        self.source_name = source_name


class ProjectMutationError(PackageManagementError):
    """A bundled project adapter failed to install or uninstall a package."""

    code = "PROJECT_MUTATION_FAILED"


class OperationCancelledError(PackageManagementError):
    code = "CANCELLED"


class InvalidStateTransitionError(PackageManagementError):
    code = "INVALID_STATE"


class InternalConsistencyError(RuntimeError):
    """A bug in gathering or planning. Never expected in correct operation."""


class MissingSourceMappingError(InternalConsistencyError):
    """An install action's identity has no source recorded during gathering."""

    def __init__(self, identity: Any, known: Iterable[Any] = ()) -> None:
        self.identity = identity
        self.known = sorted(str(k) for k in known)
        super().__init__(
            f"No source recorded for '{identity}'; "
            f"gathered identities: {', '.join(self.known) or '(none)'}"
        )
