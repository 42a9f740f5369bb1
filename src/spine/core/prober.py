from __future__ import annotations

import os
from pathlib import Path

MODULE_CACHE = "node_modules"


def module_path(package_name: str, project_dir: Path) -> Path:
    """Where npm places *package_name* inside *project_dir*.

    ``@scope/name`` maps to ``node_modules/@scope/name``; anything else to
    ``node_modules/<name>``.
    """
    node_modules = Path(project_dir) / MODULE_CACHE
    if package_name.startswith("@"):
        scope, sep, name = package_name.partition("/")
        if sep and name:
            return node_modules / scope / name
    return node_modules / package_name


def is_valid_symlink(path: Path) -> bool:
    """True if *path* is a symlink whose target can be read and exists."""
    if not path.is_symlink():
        return False
    try:
        os.readlink(path)
    except OSError:
        return False
    return path.exists()  # follows the link; False when dangling


def is_linked(package_name: str, project_dir: Path) -> bool:
    """Whether *package_name* is currently symlinked into *project_dir*.

    Only reads the filesystem and never consults the registry. Everything
    that reports "linked" goes through here.
    """
    if not (Path(project_dir) / MODULE_CACHE).is_dir():
        return False
    return is_valid_symlink(module_path(package_name, project_dir))


def find_linked_packages(project_dir: Path) -> list[str]:
    """Names of all packages with a live symlink in the project's node_modules.

    Looks at top-level entries and one level inside ``@scope`` directories.
    """
    node_modules = Path(project_dir) / MODULE_CACHE
    if not node_modules.is_dir():
        return []

    found: set[str] = set()
    for entry in os.scandir(node_modules):
        path = Path(entry.path)
        if entry.is_symlink():
            if is_valid_symlink(path):
                found.add(entry.name)
            continue
        if entry.name.startswith("@") and entry.is_dir():
            try:
                scoped = list(os.scandir(path))
            except OSError:
                continue
            for sub in scoped:
                if sub.is_symlink() and is_valid_symlink(Path(sub.path)):
                    found.add(f"{entry.name}/{sub.name}")
    return sorted(found)
