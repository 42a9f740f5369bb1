"""Discover local packages on disk and suggest ones a project could link."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from spine.core.angular import load_workspace
from spine.core.errors import ConfigCorruptError, ManifestError
from spine.core.manifest import manifest_path, parse_package_json

log = logging.getLogger(__name__)

WORKSPACE_CONFIG_NAME = ".spine.yaml"
SKIP_DIRS = {"node_modules", ".git", "target"}
MAX_SCAN_DEPTH = 6


@dataclass
class DiscoveredPackage:
    name: str
    path: Path
    version: str
    is_dist: bool = False


@dataclass
class AutoLinkConfig:
    """The ``auto_link`` section of a workspace's .spine.yaml."""

    enabled: bool = False
    patterns: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)


def _string_list(path: Path, table: dict, key: str) -> list[str]:
    value = table.get(key) or []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        raise ConfigCorruptError(path, f"auto_link.{key} must be a list of patterns")
    return [str(p) for p in value]


def load_workspace_config(directory: Path) -> AutoLinkConfig:
    path = directory / WORKSPACE_CONFIG_NAME
    if not path.exists():
        return AutoLinkConfig()
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigCorruptError(path, str(e))
    if not isinstance(raw, dict):
        raise ConfigCorruptError(path, "top level must be a mapping")
    table = raw.get("auto_link") or {}
    if not isinstance(table, dict):
        raise ConfigCorruptError(path, "auto_link must be a mapping")
    return AutoLinkConfig(
        enabled=bool(table.get("enabled", False)),
        patterns=_string_list(path, table, "patterns"),
        exclude=_string_list(path, table, "exclude"),
    )


def matches_pattern(name: str, pattern: str) -> bool:
    """``prefix*``, ``*suffix`` or an exact name."""
    if pattern.endswith("*"):
        return name.startswith(pattern[:-1])
    if pattern.startswith("*"):
        return name.endswith(pattern[1:])
    return name == pattern


def filter_packages(
    packages: list[DiscoveredPackage], config: AutoLinkConfig
) -> list[DiscoveredPackage]:
    """Apply auto-link include/exclude patterns; everything passes when disabled."""
    if not config.enabled:
        return list(packages)
    result = []
    for pkg in packages:
        if any(matches_pattern(pkg.name, p) for p in config.exclude):
            continue
        if config.patterns and not any(matches_pattern(pkg.name, p) for p in config.patterns):
            continue
        result.append(pkg)
    return result


def _read_package(directory: Path, is_dist: bool) -> DiscoveredPackage | None:
    try:
        info = parse_package_json(manifest_path(directory))
    except ManifestError as e:
        log.debug("Skipping %s: %s", directory, e.message)
        return None
    return DiscoveredPackage(info.name, directory, info.version, is_dist)


def _scan_angular_dist(root: Path, libraries: list[str]) -> list[DiscoveredPackage]:
    """Built libraries at ``dist/<lib>``; unbuilt ones are logged and skipped."""
    packages = []
    for lib in libraries:
        dist = root / "dist" / lib
        if not manifest_path(dist).exists():
            log.info("Library '%s' not built yet; run 'ng build %s'", lib, lib)
            continue
        pkg = _read_package(dist, is_dist=True)
        if pkg is not None:
            packages.append(pkg)
    return packages


def _scan_tree(root: Path) -> list[DiscoveredPackage]:
    packages = []
    base_depth = len(root.parts)
    for dirpath, dirnames, _files in os.walk(root):
        current = Path(dirpath)
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        if len(current.parts) - base_depth >= MAX_SCAN_DEPTH:
            dirnames[:] = []
        if manifest_path(current).exists():
            pkg = _read_package(current, is_dist="dist" in current.name)
            if pkg is not None:
                packages.append(pkg)
    return packages


def scan_for_packages(search_dir: Path) -> list[DiscoveredPackage]:
    """Find local packages under *search_dir*, sorted by name.

    In an Angular workspace only built libraries under ``dist/`` count;
    elsewhere the tree is walked for package.json files.
    """
    workspace = load_workspace(search_dir)
    if workspace is not None:
        log.info("Angular workspace detected at %s", search_dir)
        packages = _scan_angular_dist(search_dir, workspace.library_projects())
    else:
        packages = _scan_tree(search_dir)
    packages.sort(key=lambda p: p.name)
    return packages


def suggest_packages(project_dir: Path, search_dir: Path | None = None) -> list[DiscoveredPackage]:
    """Discovered packages that *project_dir* depends on."""
    if not manifest_path(project_dir).exists():
        return []
    info = parse_package_json(manifest_path(project_dir))
    wanted = set(info.dependencies) | set(info.dev_dependencies)
    return [
        pkg
        for pkg in scan_for_packages(search_dir or project_dir)
        if pkg.name in wanted and pkg.path != project_dir
    ]
