"""Reconcile registry intent with what is actually linked on disk.

``reconcile`` shrinks the registry to the truth, absorbs links found in the
current project, and flags unmanaged links without adopting them.
``restore`` goes the other way and recreates links the registry says
should exist in the current project.
"""

from __future__ import annotations

import logging
from pathlib import Path

from spine.core import prober
from spine.core.errors import (
    LinkCommandFailedError,
    VerificationFailedError,
)
from spine.core.models import LinkFailure, PathKey, RestoreReport, SyncReport
from spine.core.registry import Registry

log = logging.getLogger(__name__)


def verify(registry: Registry) -> list[tuple[str, Path]]:
    """Drop every recorded project where the package is no longer linked.

    Mutates *registry* in memory; the caller saves.
    """
    removed: list[tuple[str, Path]] = []
    for link in registry.list():
        valid = []
        for project in link.linked_projects:
            if prober.is_linked(link.name, project):
                valid.append(project)
            else:
                log.debug("Stale link: %s in %s", link.name, project)
                removed.append((link.name, project))
        link.linked_projects = valid
    return removed


def reconcile(
    registry: Registry,
    current_dir: Path,
    externally_discovered: list[str] | None = None,
    prune: bool = True,
) -> SyncReport:
    """Compute and apply the three-way diff for *current_dir*.

    Steps 1 and 2 mutate the registry in memory; untracked links (step 3)
    are only reported. With ``prune=False`` step 1 is skipped and no recorded
    project is dropped, so a failed restore keeps its entry for the next run.
    """
    report = SyncReport()
    if prune:
        report.removed_invalid_links = verify(registry)

    current = PathKey.of(current_dir)
    for link in registry.list():
        if prober.is_linked(link.name, current_dir) and link.add_project(current_dir):
            report.added_missing_links.append((link.name, current.stored))

    for name in externally_discovered or []:
        if name not in registry and name not in report.untracked_links:
            report.untracked_links.append(name)

    return report


def restore(registry: Registry, current_dir: Path, linker) -> RestoreReport:
    """Recreate links the registry expects in *current_dir* but that are missing.

    *linker* needs a ``link(package_path, cwd)`` method that raises
    LinkCommandFailedError on failure. Every restored link is re-probed;
    a link command that succeeds without producing a live symlink is
    reported as VerificationFailedError. Failures never stop the batch.
    """
    report = RestoreReport()
    to_restore = []
    for link in registry.list():
        if not link.has_project(current_dir):
            report.not_configured_here.append(link.name)
        elif prober.is_linked(link.name, current_dir):
            report.already_linked.append(link.name)
        else:
            to_restore.append(link)

    for link in to_restore:
        log.info("Restoring link for %s", link.name)
        try:
            linker.link(link.path, current_dir)
        except LinkCommandFailedError as e:
            report.failures.append(LinkFailure(link.name, e))
            continue
        if prober.is_linked(link.name, current_dir):
            report.restored.append(link.name)
        else:
            report.failures.append(
                LinkFailure(link.name, VerificationFailedError(link.name, current_dir))
            )
    return report
