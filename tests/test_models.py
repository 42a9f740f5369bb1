from __future__ import annotations

from pathlib import Path

import pytest

from spine.core.models import PackageLink, PathKey


def test_existing_paths_compare_canonically(tmp_path):
    real = tmp_path / "real"
    real.mkdir()
    alias = tmp_path / "alias"
    alias.symlink_to(real, target_is_directory=True)

    assert PathKey.of(alias) == PathKey.of(real)
    assert PathKey.of(alias).stored == real.resolve()


def test_missing_paths_compare_raw(tmp_path):
    gone = tmp_path / "gone"
    key = PathKey.of(gone)
    assert key.canonical is None
    assert key == PathKey.of(tmp_path / "x" / ".." / "gone")
    assert key != PathKey.of(tmp_path / "other")


def test_mixed_tiers_fall_back_to_raw(tmp_path):
    real = tmp_path / "real"
    real.mkdir()
    alias = tmp_path / "alias"
    alias.symlink_to(real, target_is_directory=True)

    unresolved_alias = PathKey(raw=alias)
    assert PathKey.of(alias) == unresolved_alias
    assert PathKey.of(real) != unresolved_alias


def test_has_project_after_move_back(tmp_path):
    project = tmp_path / "app"
    link = PackageLink("ui", tmp_path)
    link.add_project(project)  # recorded while missing: raw form
    project.mkdir()
    assert link.has_project(project)


def test_to_dict_omits_unset_version():
    link = PackageLink("ui", Path("/src/ui"))
    assert link.to_dict() == {"name": "ui", "path": "/src/ui", "linked_projects": []}


@pytest.mark.parametrize(
    "data",
    [
        "not a table",
        {"name": "ui"},
        {"name": "ui", "path": "/src/ui", "linked_projects": "/app"},
    ],
)
def test_from_dict_rejects_malformed(data):
    with pytest.raises(ValueError):
        PackageLink.from_dict("ui", data)


def test_from_dict_defaults_name_to_key():
    link = PackageLink.from_dict("@acme/ui", {"path": "/src/ui", "version": "1.0.0"})
    assert link.name == "@acme/ui"
    assert link.version == "1.0.0"
    assert link.linked_projects == []
