"""Tests for plan computation."""

import pytest

from pkgplan.exceptions import InternalConsistencyError, MissingSourceMappingError, PackageManagementError
from pkgplan.planner import plan_actions
from pkgplan.structures import DependencyInfo, DependencyInfoSet, InstalledReference, ProjectAction
from tests.conftest import ident, make_source


@pytest.fixture
def source():
    return make_source("S1")


def pool_of(source, *identities):
    pool = DependencyInfoSet()
    for identity in identities:
        pool.add(DependencyInfo(identity), source)
    return pool


def refs(*identities):
    return [InstalledReference(i) for i in identities]


def test_installed_package_kept_in_resolved_set(source):
    a, b = ident("A", "1.0"), ident("B", "2.0")
    actions = plan_actions(refs(a), [a, b], pool_of(source, a, b))
    assert actions == [ProjectAction.uninstall(a), ProjectAction.install(b, source)]


def test_unchanged_package_is_uninstalled_and_not_reinstalled(source):
    # Uninstalls match by id while installs match by exact identity, so an
    # unchanged package scheduled for removal is never put back.
    a, b = ident("A", "1.0"), ident("B", "2.0")
    actions = plan_actions(refs(a, b), [a, b], pool_of(source, a, b))
    assert actions == [ProjectAction.uninstall(a), ProjectAction.uninstall(b)]
    assert not [x for x in actions if x.source is not None]


def test_upgrade_replaces_old_version(source):
    old, new = ident("Lib", "1.0"), ident("lib", "2.0")
    actions = plan_actions(refs(old), [new], pool_of(source, new))
    assert actions == [ProjectAction.uninstall(old), ProjectAction.install(new, source)]


def test_unrelated_installed_packages_untouched(source):
    keep, target = ident("Keep", "1.0"), ident("A", "1.0")
    actions = plan_actions(refs(keep), [target], pool_of(source, target))
    assert actions == [ProjectAction.install(target, source)]


def test_order_is_uninstalls_in_installed_order_then_installs_in_resolved_order(source):
    c1, a1 = ident("C", "1.0"), ident("A", "1.0")
    a2, b2, c2 = ident("A", "2.0"), ident("B", "2.0"), ident("C", "2.0")
    actions = plan_actions(refs(c1, a1), [b2, c2, a2], pool_of(source, a2, b2, c2))
    assert [str(x) for x in actions] == [
        "uninstall C 1.0",
        "uninstall A 1.0",
        "install B 2.0 from S1",
        "install C 2.0 from S1",
        "install A 2.0 from S1",
    ]


def test_planning_is_deterministic(source):
    installed = refs(ident("A", "1.0"), ident("B", "1.0"))
    resolved = [ident("A", "1.0"), ident("B", "2.0"), ident("C", "1.0")]
    pool = pool_of(source, *resolved)
    first = plan_actions(installed, resolved, pool)
    for _ in range(5):
        assert plan_actions(installed, resolved, pool) == first


def test_missing_source_mapping_is_fatal(source):
    a, b = ident("A", "1.0"), ident("B", "2.0")
    with pytest.raises(MissingSourceMappingError) as exc_info:
        plan_actions([], [a, b], pool_of(source, a))
    err = exc_info.value
    assert err.identity == b
    assert err.known == ["A 1.0"]
    assert isinstance(err, InternalConsistencyError)
    assert not isinstance(err, PackageManagementError)
