"""
Plan computation: diff the project's installed packages against a resolved package set.
"""

from __future__ import annotations

from typing import List, Sequence

from pkgplan.exceptions import MissingSourceMappingError
from pkgplan.structures import DependencyInfoSet, InstalledReference, PackageIdentity, ProjectAction


def plan_actions(
    old_installed: Sequence[InstalledReference],
    resolved: Sequence[PackageIdentity],
    pool: DependencyInfoSet,
) -> List[ProjectAction]:
    """
    Uninstalls (in installed order) followed by installs (in resolved order).

    NOTE: uninstalls match by package id only while installs match by exact identity.
    A package that is installed and also resolved at the same version is therefore
    uninstalled and never reinstalled. This is the established behavior and is kept
    as-is; see test_unchanged_package_is_uninstalled_and_not_reinstalled.
    """
    old = [ref.identity for ref in old_installed]
    resolved_ids = {identity.id.lower() for identity in resolved}
    old_set = set(old)

    actions = [ProjectAction.uninstall(identity) for identity in old if identity.id.lower() in resolved_ids]

    for identity in resolved:
        if identity in old_set:
            continue
        source = pool.source_for(identity)
        if source is None:
            raise MissingSourceMappingError(identity, pool.identities())
        actions.append(ProjectAction.install(identity, source))
    return actions
