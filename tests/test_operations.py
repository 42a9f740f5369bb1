from __future__ import annotations

import pytest

from spine.core.errors import (
    LinkCommandFailedError,
    PackageNotFoundError,
    VerificationFailedError,
)
from spine.core.operations import link_all, link_package, unlink_all, unlink_package
from spine.core.prober import is_linked


def test_link_package_records_verified_project(registry, make_package, project, linker):
    registry.add("ui", make_package("ui"))

    link_package(registry, "ui", project, linker)

    assert is_linked("ui", project)
    assert registry.get("ui").has_project(project)


def test_link_package_unknown_name(registry, project, linker):
    with pytest.raises(PackageNotFoundError):
        link_package(registry, "ui", project, linker)
    assert linker.calls == []


def test_link_without_symlink_is_not_recorded(registry, make_package, project, make_linker):
    registry.add("ui", make_package("ui"))

    with pytest.raises(VerificationFailedError):
        link_package(registry, "ui", project, make_linker(silent={"ui"}))

    assert registry.get("ui").linked_projects == []


def test_link_all_continues_past_failures(registry, make_package, project, make_linker):
    for name in ("alpha", "beta", "gamma"):
        registry.add(name, make_package(name))

    summary = link_all(registry, project, make_linker(fail={"beta"}))

    assert summary.succeeded == ["alpha", "gamma"]
    assert [f.name for f in summary.failed] == ["beta"]
    assert isinstance(summary.failed[0].error, LinkCommandFailedError)
    assert not registry.get("beta").has_project(project)


def test_unlink_package_forgets_project(registry, make_package, project, linker):
    registry.add("ui", make_package("ui"))
    link_package(registry, "ui", project, linker)

    assert unlink_package(registry, "ui", project, linker) is True

    assert not is_linked("ui", project)
    assert registry.get("ui").linked_projects == []


def test_unlink_package_reports_leftover_symlink(registry, make_package, project, make_linker):
    linker = make_linker(silent={"ui"})
    registry.add("ui", make_package("ui"))
    make_linker().link(registry.get("ui").path, project)
    registry.add_linked_project("ui", project)

    assert unlink_package(registry, "ui", project, linker) is False
    assert registry.get("ui").linked_projects == []


def test_unlink_all_skips_unmanaged(registry, make_package, project, symlink, linker):
    managed = make_package("managed")
    registry.add("managed", managed)
    link_package(registry, "managed", project, linker)
    symlink(project, "stray", make_package("stray"))

    summary = unlink_all(registry, project, linker)

    assert summary.succeeded == ["managed"]
    assert summary.skipped == ["stray"]
    assert is_linked("stray", project)
    assert not registry.get("managed").has_project(project)


def test_unlink_all_continues_past_failures(registry, make_package, project, make_linker):
    for name in ("alpha", "beta", "gamma"):
        registry.add(name, make_package(name))
        link_package(registry, name, project, make_linker())

    summary = unlink_all(registry, project, make_linker(fail={"beta"}))

    assert summary.succeeded == ["alpha", "gamma"]
    assert [f.name for f in summary.failed] == ["beta"]
    assert isinstance(summary.failed[0].error, LinkCommandFailedError)
    assert registry.get("beta").has_project(project)
    assert is_linked("beta", project)
