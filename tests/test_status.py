"""Health and status views, including version drift detection."""

from __future__ import annotations

import orjson

from spine.core.status import collect_status, package_status, status_to_json


def test_version_drift_is_reported_not_fixed(registry, tmp_path):
    foo = tmp_path / "foo"
    foo.mkdir()
    registry.add("foo", foo)
    assert registry.get("foo").version is None

    before = package_status(registry.get("foo"), tmp_path)
    assert before.errors == ["Missing package.json"]
    assert not before.version_mismatch

    (foo / "package.json").write_bytes(orjson.dumps({"version": "2.0.0"}))

    after = package_status(registry.get("foo"), tmp_path)
    assert after.actual_version == "2.0.0"
    assert after.version_mismatch
    assert any("Version mismatch" in w for w in after.warnings)
    assert not after.healthy
    assert registry.get("foo").version is None


def test_missing_path_is_an_error(registry, make_package):
    pkg = make_package("ui")
    registry.add("ui", pkg)
    (pkg / "package.json").unlink()
    pkg.rmdir()

    status = package_status(registry.get("ui"), pkg.parent)
    assert status.errors == ["Path does not exist"]
    assert not status.path_exists


def test_linked_flag_comes_from_filesystem(registry, make_package, project, symlink):
    pkg = make_package("ui")
    registry.add("ui", pkg)
    registry.add("other", make_package("other"))
    symlink(project, "ui", pkg)

    statuses = {s.name: s for s in collect_status(registry, project)}
    assert statuses["ui"].linked
    assert not statuses["other"].linked
    assert statuses["ui"].healthy


def test_json_shape(registry, make_package, project):
    pkg = make_package("ui", "1.0.0")
    registry.add("ui", pkg)
    (pkg / "package.json").write_bytes(orjson.dumps({"name": "ui", "version": "1.1.0"}))

    plain = status_to_json(collect_status(registry, project), project)
    assert plain["total_packages"] == 1
    assert plain["current_directory"] == str(project)
    assert plain["packages"]["ui"] == {
        "path": str(pkg),
        "version": "1.0.0",
        "linked_to_current": False,
    }

    health = status_to_json(collect_status(registry, project), project, health=True)
    info = health["packages"]["ui"]
    assert info["version_matches"] is False
    assert info["actual_version"] == "1.1.0"
    assert info["healthy"] is False
    assert info["package_json_exists"] is True
