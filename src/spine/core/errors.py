"""Error taxonomy for spine.

Every error carries a human-readable message and, where one exists, an
actionable suggestion. The CLI renders both; nothing here is retried.
"""

from __future__ import annotations

from pathlib import Path

SUGGESTION_MAX_DISTANCE = 3
SUGGESTION_LIMIT = 3


class SpineError(Exception):
    """Base class for all user-facing spine errors."""

    def __init__(self, message: str, suggestion: str | None = None):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion

    def __str__(self) -> str:
        if self.suggestion:
            return f"{self.message}\n{self.suggestion}"
        return self.message


class InvalidPathError(SpineError):
    def __init__(self, path: Path | str):
        super().__init__(
            f"Path does not exist: {path}",
            "Check the path and try again.",
        )
        self.path = Path(path)


class PackageNotFoundError(SpineError):
    """Raised when a package name is not registered.

    ``similar`` holds up to three registered names within edit distance 3,
    closest first.
    """

    def __init__(self, package: str, available: list[str] | None = None):
        available = list(available or [])
        self.package = package
        self.similar = find_similar_names(package, available)
        if not available:
            suggestion = (
                "No packages are currently configured. "
                "Use 'spine add <package> <path>' to add one."
            )
        elif self.similar:
            suggestion = (
                f"Did you mean '{self.similar[0]}'? "
                f"Available: {', '.join(available)}"
            )
        else:
            suggestion = f"Available packages: {', '.join(available)}"
        super().__init__(f"Package not found: '{package}'", suggestion)


class CommandFailedError(SpineError):
    """An external command exited non-zero or could not be started.

    stderr is kept verbatim.
    """

    def __init__(self, command: str, stderr: str):
        self.command = command
        self.stderr = stderr
        super().__init__(
            f"Command failed: {command}\n{stderr.strip()}",
            _command_suggestion(command),
        )


class LinkCommandFailedError(CommandFailedError):
    """npm link or npm unlink failed."""


class VerificationFailedError(SpineError):
    """The link command reported success but no live symlink was found."""

    def __init__(self, package: str, project_dir: Path):
        self.package = package
        self.project_dir = project_dir
        super().__init__(
            f"Link command succeeded but verification failed for "
            f"'{package}' in {project_dir}",
            "Check that node_modules in this project is the one npm links into.",
        )


class BuildTimeoutError(SpineError):
    def __init__(self, timeout: float, pending: list[str]):
        self.timeout = timeout
        self.pending = pending
        super().__init__(
            f"Timed out after {timeout:.0f}s waiting for library builds: "
            f"{', '.join(pending)}",
            "Watcher processes are still running; check their output with 'spine build --watch'.",
        )


class BuildFailedError(SpineError):
    def __init__(self, library: str, detail: str = ""):
        self.library = library
        message = f"Library '{library}' build failed"
        if detail:
            message += f": {detail.strip()}"
        super().__init__(message)


class ConfigCorruptError(SpineError):
    def __init__(self, path: Path, detail: str):
        self.path = path
        super().__init__(
            f"Configuration file could not be parsed: {path}\n{detail}",
            "Fix the file by hand (spine config-edit) or move it aside to start fresh.",
        )


class ManifestError(SpineError):
    """package.json is missing, unreadable, or lacks a required field."""


class WorkspaceError(SpineError):
    @classmethod
    def not_found(cls, directory: Path) -> WorkspaceError:
        return cls(
            f"No angular.json found in {directory}",
            "Make sure you're in an Angular project root directory, "
            "or run 'ng new' to create a new project.",
        )


def _command_suggestion(command: str) -> str:
    words = command.split()
    if words and words[0].startswith("ng"):
        return "Make sure Angular CLI is installed: npm install -g @angular/cli"
    if words and words[0].startswith("npm"):
        return "Make sure you're in a directory with package.json"
    return "Check that all required tools are installed and accessible"


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance that also counts an adjacent swap as one edit.

    Typos like "raect" for "react" are one edit away, not two.
    """
    rows = len(a) + 1
    cols = len(b) + 1
    d = [[0] * cols for _ in range(rows)]
    for i in range(rows):
        d[i][0] = i
    for j in range(cols):
        d[0][j] = j
    for i in range(1, rows):
        for j in range(1, cols):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            d[i][j] = min(d[i - 1][j] + 1, d[i][j - 1] + 1, d[i - 1][j - 1] + cost)
            if i > 1 and j > 1 and a[i - 1] == b[j - 2] and a[i - 2] == b[j - 1]:
                d[i][j] = min(d[i][j], d[i - 2][j - 2] + 1)
    return d[-1][-1]


def find_similar_names(target: str, candidates: list[str]) -> list[str]:
    """Return up to three candidates within edit distance 3, closest first."""
    scored = [(edit_distance(target, c), i, c) for i, c in enumerate(candidates)]
    scored = [s for s in scored if s[0] <= SUGGESTION_MAX_DISTANCE]
    scored.sort()
    return [c for _, _, c in scored[:SUGGESTION_LIMIT]]
