from __future__ import annotations

from spine.core.errors import (
    CommandFailedError,
    PackageNotFoundError,
    edit_distance,
    find_similar_names,
)


def test_edit_distance():
    assert edit_distance("react", "react") == 0
    assert edit_distance("raect", "react") == 1
    assert edit_distance("kitten", "sitting") == 3
    assert edit_distance("", "abc") == 3


def test_similar_names_closest_first_and_capped():
    names = ["vue", "react", "react-dom", "preact", "reactx"]
    similar = find_similar_names("raect", names)
    assert similar[0] == "react"
    assert len(similar) <= 3
    assert "react-dom" not in similar


def test_not_found_suggests_closest():
    err = PackageNotFoundError("raect", ["lodash", "react"])
    assert err.similar == ["react"]
    assert "Did you mean 'react'?" in err.suggestion
    assert "lodash" in err.suggestion


def test_not_found_with_nothing_registered():
    err = PackageNotFoundError("react", [])
    assert "No packages are currently configured" in err.suggestion


def test_not_found_without_close_match_lists_all():
    err = PackageNotFoundError("zzzzzzzz", ["react", "lodash"])
    assert err.similar == []
    assert err.suggestion == "Available packages: react, lodash"


def test_command_failure_keeps_stderr():
    err = CommandFailedError("ng build ui", "Error: boom\n")
    assert err.stderr == "Error: boom\n"
    assert "Error: boom" in err.message
    assert "Angular CLI" in err.suggestion
    assert str(err).endswith(err.suggestion)
