"""Tests for the folder-backed project and the logging project context."""

import io
import logging

import pytest

from pkgplan.exceptions import ProjectMutationError
from pkgplan.project import FolderProject, LoggingProjectContext, MessageLevel, ProjectMetadataKeys
from tests.conftest import ident


@pytest.fixture
def project(tmp_path):
    return FolderProject(str(tmp_path / "app"), target_framework="net45")


def test_empty_project(project):
    assert project.get_installed_packages() == []
    assert project.get_metadata(ProjectMetadataKeys.TARGET_FRAMEWORK) == "net45"
    assert project.get_metadata(ProjectMetadataKeys.NAME) == "app"


def test_install_and_uninstall(project, project_context):
    a = ident("A", "1.0")
    project.install_package(a, io.BytesIO(b"content"), project_context)

    assert [r.identity for r in project.get_installed_packages()] == [a]
    assert (project.packages_dir / "A.1.0.pkg").read_bytes() == b"content"
    assert project_context.messages == ["Added package 'A 1.0' to project 'app'"]

    project.uninstall_package(ident("a", "1.0"), project_context)
    assert project.get_installed_packages() == []
    assert not (project.packages_dir / "A.1.0.pkg").exists()


def test_double_install_and_missing_uninstall_fail(project, project_context):
    a = ident("A", "1.0")
    project.install_package(a, io.BytesIO(b""), project_context)
    with pytest.raises(ProjectMutationError):
        project.install_package(a, io.BytesIO(b""), project_context)
    with pytest.raises(ProjectMutationError):
        project.uninstall_package(ident("B", "1.0"), project_context)


def test_logging_project_context(caplog):
    context = LoggingProjectContext(logging.getLogger("pkgplan.test"))
    with caplog.at_level(logging.INFO, logger="pkgplan.test"):
        context.log(MessageLevel.INFO, "Resolving actions to install package '%s'", ident("A", "1.0"))
        context.log(MessageLevel.DEBUG, "hidden")
    assert caplog.messages == ["Resolving actions to install package 'A 1.0'"]


def test_uninstall_with_different_id_casing_removes_content(project, project_context):
    project.install_package(ident("Newtonsoft.Json", "6.0"), io.BytesIO(b"json"), project_context)
    project.uninstall_package(ident("newtonsoft.json", "6.0"), project_context)
    assert project.get_installed_packages() == []
    assert list(project.packages_dir.iterdir()) == []


def test_failed_manifest_write_leaves_no_content(project, project_context, monkeypatch):
    def fail(entries):
        raise OSError("disk full")

    monkeypatch.setattr(project, "_write_manifest", fail)
    with pytest.raises(ProjectMutationError, match="disk full"):
        project.install_package(ident("A", "1.0"), io.BytesIO(b"content"), project_context)
    assert list(project.packages_dir.iterdir()) == []
    assert project_context.messages == []
