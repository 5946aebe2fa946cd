"""
pkgplan: plan and apply package installs across multiple package sources.

Gathers dependency closures from every configured source, resolves them with resolvelib,
diffs the result against the project's installed packages and applies the resulting actions in order.
"""

from pkgplan.manager import PackageManager
from pkgplan.sources import SourceRepository, SourceRepositoryProvider
from pkgplan.structures import (
    CancellationToken,
    DependencyBehavior,
    PackageIdentity,
    ProjectAction,
    ResolutionContext,
)

__all__ = [
    "PackageManager",
    "SourceRepository",
    "SourceRepositoryProvider",
    "CancellationToken",
    "DependencyBehavior",
    "PackageIdentity",
    "ProjectAction",
    "ResolutionContext",
]
