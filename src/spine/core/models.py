from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from spine.core.errors import SpineError


@dataclass(frozen=True, eq=False)
class PathKey:
    """Two-tier comparison key for project paths.

    ``canonical`` is the symlink-resolved path when the path exists right now,
    otherwise None. ``raw`` is the absolute, normalized path as given.
    Two keys are equal when both have a canonical form and those match;
    otherwise the raw forms are compared.
    """

    raw: Path
    canonical: Path | None = None

    @classmethod
    def of(cls, path: Path | str) -> PathKey:
        raw = Path(os.path.normpath(os.path.abspath(os.path.expanduser(str(path)))))
        try:
            canonical = raw.resolve(strict=True)
        except (OSError, RuntimeError):
            canonical = None
        return cls(raw=raw, canonical=canonical)

    @property
    def stored(self) -> Path:
        """The form written to the registry: canonical if resolvable, else raw."""
        return self.canonical if self.canonical is not None else self.raw

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PathKey):
            return NotImplemented
        if self.canonical is not None and other.canonical is not None:
            return self.canonical == other.canonical
        return self.raw == other.raw

    __hash__ = None  # equality is not transitive across tiers


@dataclass
class PackageLink:
    """A registered local package and the projects it is linked into."""

    name: str
    path: Path
    version: str | None = None
    linked_projects: list[Path] = field(default_factory=list)

    def has_project(self, project: Path | str) -> bool:
        key = PathKey.of(project)
        return any(PathKey.of(p) == key for p in self.linked_projects)

    def add_project(self, project: Path | str) -> bool:
        """Record *project*; returns False if it was already present."""
        key = PathKey.of(project)
        if any(PathKey.of(p) == key for p in self.linked_projects):
            return False
        self.linked_projects.append(key.stored)
        return True

    def remove_project(self, project: Path | str) -> bool:
        key = PathKey.of(project)
        before = len(self.linked_projects)
        self.linked_projects = [
            p for p in self.linked_projects if PathKey.of(p) != key
        ]
        return len(self.linked_projects) != before

    @property
    def manifest_path(self) -> Path:
        return self.path / "package.json"

    def to_dict(self) -> dict:
        data: dict = {"name": self.name, "path": str(self.path)}
        if self.version is not None:
            data["version"] = self.version
        data["linked_projects"] = [str(p) for p in self.linked_projects]
        return data

    @classmethod
    def from_dict(cls, key: str, data: dict) -> PackageLink:
        """Build a link from its persisted table; raises ValueError if malformed."""
        if not isinstance(data, dict):
            raise ValueError(f"entry '{key}' is not a table")
        if "path" not in data:
            raise ValueError(f"entry '{key}' has no path")
        projects = data.get("linked_projects", [])
        if not isinstance(projects, list):
            raise ValueError(f"entry '{key}' linked_projects is not a list")
        version = data.get("version")
        return cls(
            name=str(data.get("name", key)),
            path=Path(str(data["path"])),
            version=str(version) if version is not None else None,
            linked_projects=[Path(str(p)) for p in projects],
        )


@dataclass
class SyncReport:
    """Three-way diff between registry intent and the filesystem."""

    removed_invalid_links: list[tuple[str, Path]] = field(default_factory=list)
    added_missing_links: list[tuple[str, Path]] = field(default_factory=list)
    untracked_links: list[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when the registry needed no changes (untracked links are advisory)."""
        return not self.removed_invalid_links and not self.added_missing_links


@dataclass
class LinkFailure:
    name: str
    error: SpineError

    @property
    def reason(self) -> str:
        return self.error.message


@dataclass
class RestoreReport:
    already_linked: list[str] = field(default_factory=list)
    restored: list[str] = field(default_factory=list)
    not_configured_here: list[str] = field(default_factory=list)
    failures: list[LinkFailure] = field(default_factory=list)


@dataclass
class BatchSummary:
    """Outcome of a bulk link/unlink; one failure never aborts the batch."""

    succeeded: list[str] = field(default_factory=list)
    failed: list[LinkFailure] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
