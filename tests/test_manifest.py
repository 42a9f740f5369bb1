from __future__ import annotations

import orjson
import pytest

from spine.core.errors import ManifestError
from spine.core.manifest import (
    get_package_name,
    manifest_path,
    parse_package_json,
    try_package_version,
    validate_package_path,
)


def test_parse_dependencies(make_package):
    pkg = make_package(
        "app",
        "0.1.0",
        dependencies={"@acme/ui": "^1.0.0"},
        devDependencies={"typescript": "~5.4.0"},
    )
    info = parse_package_json(manifest_path(pkg))
    assert info.name == "app"
    assert info.dependencies == ["@acme/ui"]
    assert info.dev_dependencies == ["typescript"]


def test_invalid_json(tmp_path):
    (tmp_path / "package.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(ManifestError):
        get_package_name(manifest_path(tmp_path))
    assert try_package_version(tmp_path) is None
    assert validate_package_path(tmp_path) is False


def test_missing_name(tmp_path):
    (tmp_path / "package.json").write_bytes(orjson.dumps({"version": "1.0.0"}))
    with pytest.raises(ManifestError, match="No name field"):
        get_package_name(manifest_path(tmp_path))
    assert try_package_version(tmp_path) == "1.0.0"


def test_missing_manifest(tmp_path):
    assert try_package_version(tmp_path) is None
    assert validate_package_path(tmp_path) is False
    with pytest.raises(ManifestError):
        parse_package_json(manifest_path(tmp_path))


def test_non_object_manifest(tmp_path):
    (tmp_path / "package.json").write_bytes(orjson.dumps(["a", "b"]))
    with pytest.raises(ManifestError):
        parse_package_json(manifest_path(tmp_path))
