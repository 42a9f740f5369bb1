"""Shared fixtures: throwaway registries, packages, projects and a fake npm."""

from __future__ import annotations

from pathlib import Path

import orjson
import pytest

from spine.core.errors import LinkCommandFailedError
from spine.core.manifest import get_package_name, manifest_path
from spine.core.prober import MODULE_CACHE, module_path
from spine.core.registry import Registry


class FakeLinker:
    """Stands in for npm: creates and removes symlinks in node_modules.

    Names in ``fail`` raise LinkCommandFailedError; names in ``silent``
    report success without touching the filesystem.
    """

    def __init__(self, fail=(), silent=()):
        self.fail = set(fail)
        self.silent = set(silent)
        self.calls: list[tuple[str, str]] = []

    def link(self, package_path: Path, cwd: Path) -> None:
        name = get_package_name(manifest_path(package_path))
        self.calls.append(("link", name))
        if name in self.fail:
            raise LinkCommandFailedError(f"npm link {package_path}", "npm ERR! code E404")
        if name in self.silent:
            return
        target = module_path(name, cwd)
        target.parent.mkdir(parents=True, exist_ok=True)
        if target.is_symlink():
            target.unlink()
        target.symlink_to(package_path, target_is_directory=True)

    def unlink(self, package_name: str, cwd: Path) -> None:
        self.calls.append(("unlink", package_name))
        if package_name in self.fail:
            raise LinkCommandFailedError(f"npm unlink {package_name}", "npm ERR! code EPERM")
        if package_name in self.silent:
            return
        target = module_path(package_name, cwd)
        if target.is_symlink():
            target.unlink()


@pytest.fixture(autouse=True)
def _no_config_override(monkeypatch):
    monkeypatch.delenv("SPINE_CONFIG", raising=False)


@pytest.fixture
def registry(tmp_path) -> Registry:
    return Registry(tmp_path / "config" / "config.yaml")


@pytest.fixture
def make_package(tmp_path):
    """Create ``tmp_path/packages/<dirname>`` with a package.json."""

    def _make(name: str, version: str = "1.0.0", dirname: str | None = None, **extra) -> Path:
        pkg = tmp_path / "packages" / (dirname or name.replace("/", "__"))
        pkg.mkdir(parents=True, exist_ok=True)
        manifest = {"name": name, "version": version, **extra}
        (pkg / "package.json").write_bytes(orjson.dumps(manifest))
        return pkg

    return _make


@pytest.fixture
def project(tmp_path) -> Path:
    """A consumer project with a package.json and an empty node_modules."""
    app = tmp_path / "app"
    (app / MODULE_CACHE).mkdir(parents=True)
    (app / "package.json").write_bytes(orjson.dumps({"name": "app", "version": "0.0.1"}))
    return app


@pytest.fixture
def linker() -> FakeLinker:
    return FakeLinker()


def symlink_into(project_dir: Path, name: str, target: Path) -> Path:
    """Create node_modules/<name> -> target the way npm link would."""
    link = module_path(name, project_dir)
    link.parent.mkdir(parents=True, exist_ok=True)
    link.symlink_to(target, target_is_directory=True)
    return link


@pytest.fixture
def symlink():
    return symlink_into


@pytest.fixture
def make_linker():
    return FakeLinker
