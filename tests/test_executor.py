"""Tests for sequential plan execution and lifecycle events."""

import pytest

from pkgplan.exceptions import OperationCancelledError, PackageDownloadError
from pkgplan.executor import ActionExecutor, PackageEventKind, open_package_stream
from pkgplan.sources import SourceRepository
from pkgplan.structures import CancellationToken, ProjectAction
from tests.conftest import FakeProject, ident, make_source, pkg


@pytest.fixture
def source():
    return make_source("S1", pkg("A", "1.0"), pkg("B", "1.0"), pkg("C", "1.0"))


@pytest.fixture
def executor():
    ex = ActionExecutor()
    ex.events = []
    ex.subscribe(lambda e: ex.events.append(f"{e.kind.value} {e.identity}"))
    return ex


def test_installs_and_uninstalls_in_order(executor, source, project_context):
    old = ident("Old", "1.0")
    project = FakeProject(installed=[old])
    actions = [ProjectAction.uninstall(old), ProjectAction.install(ident("A", "1.0"), source)]

    executor.execute(project, actions, project_context)

    assert project.calls == ["uninstall Old 1.0", "install A 1.0"]
    assert project.installed == [ident("A", "1.0")]
    assert project.contents[ident("A", "1.0")] == b"A 1.0"
    assert executor.events == [
        "uninstalling Old 1.0",
        "uninstalled Old 1.0",
        "installing A 1.0",
        "installed A 1.0",
    ]


def test_failure_halts_execution(executor, source, project_context):
    a, b, c = ident("A", "1.0"), ident("B", "1.0"), ident("C", "1.0")
    project = FakeProject(fail_on=[b])
    actions = [ProjectAction.install(i, source) for i in (a, b, c)]

    with pytest.raises(RuntimeError, match="install of B 1.0 failed"):
        executor.execute(project, actions, project_context)

    assert executor.events == ["installing A 1.0", "installed A 1.0", "installing B 1.0"]
    assert project.calls == ["install A 1.0", "install B 1.0"]
    assert project.installed == [a]


def test_streams_released_on_success_and_failure(executor, source, project_context):
    a, b = ident("A", "1.0"), ident("B", "1.0")
    project = FakeProject(fail_on=[b])
    with pytest.raises(RuntimeError):
        executor.execute(project, [ProjectAction.install(a, source), ProjectAction.install(b, source)], project_context)
    assert len(project.streams) == 2
    assert all(s.closed for s in project.streams)


def test_listener_failure_stops_execution(source, project_context):
    executor = ActionExecutor()

    def veto(event):
        if event.kind is PackageEventKind.INSTALLING and event.identity == ident("B", "1.0"):
            raise RuntimeError("listener failed")

    executor.subscribe(veto)
    project = FakeProject()
    actions = [ProjectAction.install(ident(i, "1.0"), source) for i in ("A", "B", "C")]
    with pytest.raises(RuntimeError, match="listener failed"):
        executor.execute(project, actions, project_context)
    assert project.installed == [ident("A", "1.0")]


def test_unsubscribe(source, project_context):
    executor = ActionExecutor()
    seen = []
    unsubscribe = executor.subscribe(seen.append)
    unsubscribe()
    unsubscribe()
    executor.execute(FakeProject(), [ProjectAction.install(ident("A", "1.0"), source)], project_context)
    assert seen == []


def test_cancellation_checked_before_each_action(executor, source, project_context):
    token = CancellationToken()
    project = FakeProject()
    executor.subscribe(lambda e: token.cancel() if e.kind is PackageEventKind.INSTALLED else None)
    actions = [ProjectAction.install(ident(i, "1.0"), source) for i in ("A", "B")]
    with pytest.raises(OperationCancelledError):
        executor.execute(project, actions, project_context, token)
    assert project.installed == [ident("A", "1.0")]


def test_source_without_download_resource(project_context):
    project = FakeProject()
    action = ProjectAction.install(ident("A", "1.0"), SourceRepository("bare"))
    with pytest.raises(PackageDownloadError):
        ActionExecutor().execute(project, [action], project_context)
    assert project.calls == []


def test_open_package_stream_missing_package(source):
    with pytest.raises(PackageDownloadError, match="package not found"):
        with open_package_stream(source, ident("Nope", "1.0")):
            pass
