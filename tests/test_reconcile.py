"""Verify, reconcile and restore against real symlinks in a temp project."""

from __future__ import annotations

from spine.core.errors import LinkCommandFailedError, VerificationFailedError
from spine.core.reconcile import reconcile, restore, verify


def test_verify_drops_stale_projects(registry, make_package, project, tmp_path):
    registry.add("ui", make_package("ui"))
    registry.add_linked_project("ui", project)
    registry.add_linked_project("ui", tmp_path / "deleted-app")

    removed = verify(registry)

    assert [name for name, _ in removed] == ["ui", "ui"]
    assert registry.get("ui").linked_projects == []


def test_verify_keeps_live_links(registry, make_package, project, symlink):
    pkg = make_package("ui")
    registry.add("ui", pkg)
    symlink(project, "ui", pkg)
    registry.add_linked_project("ui", project)

    assert verify(registry) == []
    assert registry.get("ui").has_project(project)


def test_reconcile_absorbs_current_project(registry, make_package, project, symlink):
    pkg = make_package("@acme/ui")
    registry.add("@acme/ui", pkg)
    symlink(project, "@acme/ui", pkg)

    report = reconcile(registry, project)

    assert [name for name, _ in report.added_missing_links] == ["@acme/ui"]
    assert registry.get("@acme/ui").has_project(project)


def test_reconcile_flags_untracked_without_adopting(registry, make_package, project):
    registry.add("ui", make_package("ui"))

    report = reconcile(registry, project, ["ui", "stray", "stray"])

    assert report.untracked_links == ["stray"]
    assert "stray" not in registry


def test_reconcile_is_idempotent(registry, make_package, project, symlink, tmp_path):
    pkg = make_package("ui")
    registry.add("ui", pkg)
    registry.add_linked_project("ui", tmp_path / "old-app")
    symlink(project, "ui", pkg)

    first = reconcile(registry, project)
    second = reconcile(registry, project)

    assert not first.is_empty
    assert second.is_empty


def test_restore_relinks_recorded_project(registry, make_package, project, linker):
    registry.add("ui", make_package("ui"))
    registry.add_linked_project("ui", project)

    report = restore(registry, project, linker)

    assert report.restored == ["ui"]
    assert report.failures == []
    assert linker.calls == [("link", "ui")]


def test_restore_skips_linked_and_unconfigured(registry, make_package, project, symlink, linker):
    linked = make_package("linked")
    registry.add("linked", linked)
    registry.add_linked_project("linked", project)
    symlink(project, "linked", linked)
    registry.add("elsewhere", make_package("elsewhere"))

    report = restore(registry, project, linker)

    assert report.already_linked == ["linked"]
    assert report.not_configured_here == ["elsewhere"]
    assert linker.calls == []


def test_restore_separates_command_and_verification_failures(
    registry, make_package, project, make_linker
):
    for name in ("broken", "silent", "fine"):
        registry.add(name, make_package(name))
        registry.add_linked_project(name, project)

    report = restore(registry, project, make_linker(fail={"broken"}, silent={"silent"}))

    errors = {f.name: f.error for f in report.failures}
    assert isinstance(errors["broken"], LinkCommandFailedError)
    assert isinstance(errors["silent"], VerificationFailedError)
    assert report.restored == ["fine"]


def test_reconcile_without_prune_keeps_registry_intent(
    registry, make_package, project, symlink, tmp_path
):
    stray = make_package("stray")
    registry.add("ui", make_package("ui"))
    registry.add_linked_project("ui", project)
    registry.add_linked_project("ui", tmp_path / "other-app")
    registry.add("stray", stray)
    symlink(project, "stray", stray)

    report = reconcile(registry, project, prune=False)

    assert report.removed_invalid_links == []
    assert len(registry.get("ui").linked_projects) == 2
    assert [name for name, _ in report.added_missing_links] == ["stray"]
