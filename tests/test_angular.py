from __future__ import annotations

import subprocess

import orjson
import pytest

from spine.core import angular
from spine.core.angular import (
    BuildResult,
    affected_libraries,
    changed_files,
    detect_affected_libraries,
    find_publish_directory,
    find_workspace_root,
    linked_libraries,
    load_workspace,
    publish_library,
    require_library,
    resolve_library,
)
from spine.core.errors import BuildFailedError, PackageNotFoundError, WorkspaceError
from spine.core.models import PackageLink


@pytest.fixture
def workspace_root(tmp_path):
    root = tmp_path / "ws"
    root.mkdir()
    (root / "angular.json").write_bytes(orjson.dumps({
        "version": 1,
        "projects": {
            "shell": {
                "projectType": "application",
                "root": "",
                "architect": {
                    "serve": {"configurations": {"development": {"port": 4300}}},
                },
            },
            "admin": {
                "projectType": "application",
                "root": "projects/admin",
                "architect": {"serve": {"options": {"port": 4400}}},
            },
            "ui-lib": {"projectType": "library", "root": "projects/ui-lib"},
            "forms": {
                "projectType": "library",
                "root": "projects/forms",
                "architect": {"build": {"options": {"outputPath": "build/forms"}}},
            },
        },
    }))
    return root


def test_load_workspace(workspace_root):
    ws = load_workspace(workspace_root)
    assert ws.library_projects() == ["forms", "ui-lib"]
    assert ws.application_project() == "admin"
    assert ws.has_library("ui-lib")
    assert not ws.has_library("shell")


def test_configured_port(workspace_root):
    ws = load_workspace(workspace_root)
    assert ws.configured_port("admin") == 4400
    assert ws.configured_port("shell") == 4300
    assert ws.configured_port("ui-lib") is None
    assert ws.configured_port("missing") is None


def test_no_workspace(tmp_path):
    assert load_workspace(tmp_path) is None


def test_invalid_workspace(tmp_path):
    (tmp_path / "angular.json").write_text("{", encoding="utf-8")
    with pytest.raises(WorkspaceError):
        load_workspace(tmp_path)


def test_resolve_library(workspace_root):
    ws = load_workspace(workspace_root)
    dist = workspace_root / "dist" / "ui-lib"
    dist.mkdir(parents=True)
    source = workspace_root / "projects" / "ui-lib" / "src"
    source.mkdir(parents=True)

    assert resolve_library(ws, PackageLink("ui-lib", workspace_root)) == "ui-lib"
    assert resolve_library(ws, PackageLink("@acme/ui", dist)) == "ui-lib"
    assert resolve_library(ws, PackageLink("@acme/ui", source)) == "ui-lib"
    assert resolve_library(ws, PackageLink("@acme/other", workspace_root / "elsewhere")) is None


def test_require_library(workspace_root):
    ws = load_workspace(workspace_root)
    assert require_library(ws, "ui-lib") == "ui-lib"
    with pytest.raises(PackageNotFoundError) as excinfo:
        require_library(ws, "ui-lbi")
    assert excinfo.value.similar == ["ui-lib"]


def test_find_workspace_root(workspace_root):
    nested = workspace_root / "dist" / "ui-lib"
    nested.mkdir(parents=True)
    assert find_workspace_root(nested) == workspace_root
    assert find_workspace_root(workspace_root.parent) is None


def test_linked_libraries(workspace_root):
    ws = load_workspace(workspace_root)
    links = [
        PackageLink("forms", workspace_root / "projects" / "forms"),
        PackageLink("ui-lib", workspace_root),
        PackageLink("lodash", workspace_root / "node_modules" / "lodash"),
    ]
    assert linked_libraries(ws, links) == ["forms", "ui-lib"]


@pytest.mark.parametrize(
    "files,expected",
    [
        (["projects/ui-lib/src/button.ts"], ["ui-lib"]),
        (["projects/ui-lib-extra/x.ts", "README.md"], []),
        (["projects/forms/src/a.ts", "projects/ui-lib/b.ts"], ["forms", "ui-lib"]),
        (["package-lock.json"], ["forms", "ui-lib"]),
        (["projects/forms/package.json"], ["forms", "ui-lib"]),
        ([], []),
    ],
)
def test_affected_libraries(workspace_root, files, expected):
    ws = load_workspace(workspace_root)
    assert affected_libraries(ws, ["forms", "ui-lib"], files) == expected


class FakeGit:
    """Answers git commands from a table keyed on the argument tuple."""

    def __init__(self, answers):
        self.answers = answers
        self.calls = []

    def __call__(self, root, *args):
        self.calls.append(args)
        return self.answers.get(args, [])


def test_changed_files_falls_back_to_staged(workspace_root, monkeypatch):
    git = FakeGit({
        ("rev-parse", "--git-dir"): [".git"],
        ("diff", "--name-only", "--relative", "--cached"): ["projects/forms/a.ts"],
    })
    monkeypatch.setattr(angular, "_git", git)

    assert changed_files(workspace_root) == ["projects/forms/a.ts"]
    assert git.calls[1] == ("diff", "--name-only", "--relative", "HEAD~1..HEAD")
    assert len(git.calls) == 3


def test_changed_files_outside_git(workspace_root, monkeypatch):
    monkeypatch.setattr(angular, "_git", FakeGit({("rev-parse", "--git-dir"): None}))
    assert changed_files(workspace_root) is None


def test_detect_affected_without_git_builds_every_candidate(workspace_root, monkeypatch):
    monkeypatch.setattr(angular, "changed_files", lambda root: None)
    ws = load_workspace(workspace_root)
    assert detect_affected_libraries(ws, ["ui-lib", "forms"]) == ["forms", "ui-lib"]


def test_git_missing_binary(tmp_path, monkeypatch):
    def missing(*args, **kwargs):
        raise FileNotFoundError("git")

    monkeypatch.setattr(angular.subprocess, "run", missing)
    assert angular._git(tmp_path, "status") is None


def test_find_publish_directory_prefers_build_output(workspace_root):
    ws = load_workspace(workspace_root)
    source = workspace_root / "projects" / "forms"
    source.mkdir(parents=True)
    (source / "package.json").write_text("{}", encoding="utf-8")

    assert find_publish_directory(ws, "forms", source) == source

    output = workspace_root / "build" / "forms"
    output.mkdir(parents=True)
    (output / "package.json").write_text("{}", encoding="utf-8")
    assert find_publish_directory(ws, "forms", source) == output


def test_find_publish_directory_unbuilt(workspace_root):
    ws = load_workspace(workspace_root)
    with pytest.raises(WorkspaceError) as excinfo:
        find_publish_directory(ws, "ui-lib", workspace_root / "projects" / "ui-lib")
    assert "spine build ui-lib" in excinfo.value.suggestion


def _fake_build(success):
    def build(workspace, library, production=True):
        dist = workspace.root / "dist" / library
        dist.mkdir(parents=True, exist_ok=True)
        (dist / "package.json").write_text("{}", encoding="utf-8")
        return BuildResult(library, success, 0.1, error=None if success else "NG0001")

    return build


def test_publish_library_dry_run(workspace_root, monkeypatch):
    calls = []

    def run_tool(args, cwd, error):
        calls.append((args, cwd))
        return subprocess.CompletedProcess(args, 0, stdout="+ @acme/ui@1.0.0\n", stderr="")

    monkeypatch.setattr(angular, "build_library", _fake_build(True))
    monkeypatch.setattr(angular, "run_tool", run_tool)
    ws = load_workspace(workspace_root)

    result = publish_library(ws, "ui-lib", workspace_root / "dist" / "ui-lib", dry_run=True)

    assert calls == [(["npm", "publish", "--dry-run"], workspace_root / "dist" / "ui-lib")]
    assert result.directory == workspace_root / "dist" / "ui-lib"
    assert "@acme/ui@1.0.0" in result.output


def test_publish_library_stops_on_failed_build(workspace_root, monkeypatch):
    def run_tool(args, cwd, error):
        raise AssertionError("npm publish must not run after a failed build")

    monkeypatch.setattr(angular, "build_library", _fake_build(False))
    monkeypatch.setattr(angular, "run_tool", run_tool)
    ws = load_workspace(workspace_root)

    with pytest.raises(BuildFailedError) as excinfo:
        publish_library(ws, "ui-lib", workspace_root / "dist" / "ui-lib")
    assert "NG0001" in excinfo.value.message
