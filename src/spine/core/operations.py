"""Link and unlink registered packages in a project, keeping the registry in step."""

from __future__ import annotations

import logging
from pathlib import Path

from spine.core import prober
from spine.core.errors import LinkCommandFailedError, VerificationFailedError
from spine.core.models import BatchSummary, LinkFailure
from spine.core.registry import Registry

log = logging.getLogger(__name__)


def link_package(registry: Registry, name: str, project_dir: Path, linker) -> None:
    """Link *name* into *project_dir* and record it once the symlink is verified."""
    link = registry.get(name)
    linker.link(link.path, project_dir)
    if not prober.is_linked(name, project_dir):
        raise VerificationFailedError(name, project_dir)
    registry.add_linked_project(name, project_dir)


def link_all(registry: Registry, project_dir: Path, linker) -> BatchSummary:
    summary = BatchSummary()
    for link in registry.list():
        try:
            link_package(registry, link.name, project_dir, linker)
        except (LinkCommandFailedError, VerificationFailedError) as e:
            log.debug("Linking %s failed: %s", link.name, e.message)
            summary.failed.append(LinkFailure(link.name, e))
        else:
            summary.succeeded.append(link.name)
    return summary


def unlink_package(
    registry: Registry, name: str, project_dir: Path, linker
) -> bool:
    """Unlink *name* from *project_dir* and forget the project.

    Returns False if npm reported success but the symlink is still present;
    the project is dropped from the registry either way.
    """
    registry.get(name)
    linker.unlink(name, project_dir)
    still_linked = prober.is_linked(name, project_dir)
    if still_linked:
        log.warning("Unlink completed but symlink still exists for %s", name)
    registry.remove_linked_project(name, project_dir)
    return not still_linked


def unlink_all(registry: Registry, project_dir: Path, linker) -> BatchSummary:
    """Unlink every managed package currently linked into *project_dir*.

    Links not in the registry are reported as skipped and left alone.
    """
    summary = BatchSummary()
    for name in prober.find_linked_packages(project_dir):
        if name not in registry:
            summary.skipped.append(name)
            continue
        try:
            linker.unlink(name, project_dir)
        except LinkCommandFailedError as e:
            summary.failed.append(LinkFailure(name, e))
            continue
        registry.remove_linked_project(name, project_dir)
        summary.succeeded.append(name)
    return summary
