from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from spine.core import prober
from spine.core.manifest import try_package_version
from spine.core.models import PackageLink
from spine.core.registry import Registry


@dataclass
class PackageStatus:
    """Observed state of one registered package, relative to a project.

    ``actual_version`` is re-read from disk every time and never written
    back; a difference from ``stored_version`` is reported, not fixed.
    """

    name: str
    path: Path
    stored_version: str | None
    actual_version: str | None
    linked: bool
    path_exists: bool
    manifest_exists: bool
    linked_projects: list[Path] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def version_mismatch(self) -> bool:
        return self.actual_version is not None and self.actual_version != self.stored_version

    @property
    def healthy(self) -> bool:
        return not self.errors and not self.warnings


def package_status(link: PackageLink, current_dir: Path) -> PackageStatus:
    path_exists = link.path.exists()
    manifest_exists = link.manifest_path.exists()
    status = PackageStatus(
        name=link.name,
        path=link.path,
        stored_version=link.version,
        actual_version=try_package_version(link.path) if manifest_exists else None,
        linked=prober.is_linked(link.name, current_dir),
        path_exists=path_exists,
        manifest_exists=manifest_exists,
        linked_projects=list(link.linked_projects),
    )

    if not path_exists:
        status.errors.append("Path does not exist")
    elif not manifest_exists:
        status.errors.append("Missing package.json")

    if status.version_mismatch:
        stored = status.stored_version or "unset"
        status.warnings.append(
            f"Version mismatch: stored '{stored}', actual '{status.actual_version}'"
        )
    return status


def collect_status(registry: Registry, current_dir: Path) -> list[PackageStatus]:
    return [package_status(link, current_dir) for link in registry.list()]


def status_to_json(
    statuses: list[PackageStatus],
    current_dir: Path,
    detailed: bool = False,
    health: bool = False,
) -> dict:
    """Machine-readable status for scripts and CI."""
    packages: dict[str, dict] = {}
    for s in statuses:
        info: dict = {"path": str(s.path)}
        if s.stored_version is not None:
            info["version"] = s.stored_version
        info["linked_to_current"] = s.linked
        if detailed or health:
            info["path_exists"] = s.path_exists
            info["linked_projects"] = [str(p) for p in s.linked_projects]
        if health:
            info["package_json_exists"] = s.manifest_exists
            if s.actual_version is not None:
                info["version_matches"] = not s.version_mismatch
                if s.version_mismatch:
                    info["actual_version"] = s.actual_version
            info["healthy"] = s.healthy
            info["errors"] = list(s.errors)
            info["warnings"] = list(s.warnings)
        packages[s.name] = info

    return {
        "current_directory": str(current_dir),
        "total_packages": len(statuses),
        "packages": packages,
    }
