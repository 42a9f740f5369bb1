"""Reading package.json manifests."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import orjson

from spine.core.errors import ManifestError

MANIFEST_NAME = "package.json"


@dataclass
class PackageInfo:
    name: str
    version: str
    dependencies: list[str] = field(default_factory=list)
    dev_dependencies: list[str] = field(default_factory=list)


def manifest_path(package_dir: Path) -> Path:
    return package_dir / MANIFEST_NAME


def read_manifest(path: Path) -> dict:
    """Load a package.json file. Raises ManifestError on any read or parse failure."""
    try:
        data = orjson.loads(path.read_bytes())
    except OSError as e:
        raise ManifestError(f"Cannot read {path}: {e.strerror or e}")
    except orjson.JSONDecodeError as e:
        raise ManifestError(f"Invalid JSON in {path}: {e}")
    if not isinstance(data, dict):
        raise ManifestError(f"{path} does not contain a JSON object")
    return data


def _string_field(data: dict, key: str, path: Path) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ManifestError(f"No {key} field found in {path}")
    return value


def get_package_name(path: Path) -> str:
    return _string_field(read_manifest(path), "name", path)


def get_package_version(path: Path) -> str:
    return _string_field(read_manifest(path), "version", path)


def try_package_version(package_dir: Path) -> str | None:
    """Version from ``package_dir/package.json``, or None if it can't be read."""
    try:
        return get_package_version(manifest_path(package_dir))
    except ManifestError:
        return None


def _dependency_names(data: dict, key: str) -> list[str]:
    deps = data.get(key)
    if isinstance(deps, dict):
        return list(deps.keys())
    return []


def parse_package_json(path: Path) -> PackageInfo:
    data = read_manifest(path)
    return PackageInfo(
        name=_string_field(data, "name", path),
        version=_string_field(data, "version", path),
        dependencies=_dependency_names(data, "dependencies"),
        dev_dependencies=_dependency_names(data, "devDependencies"),
    )


def validate_package_path(package_dir: Path) -> bool:
    """True if *package_dir* holds a package.json with a name and version."""
    if not manifest_path(package_dir).exists():
        return False
    try:
        parse_package_json(manifest_path(package_dir))
    except ManifestError:
        return False
    return True
