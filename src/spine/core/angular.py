"""Angular workspace model (angular.json), one-shot and affected builds, publishing."""

from __future__ import annotations

import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path

import orjson

from spine.core.errors import (
    BuildFailedError,
    CommandFailedError,
    PackageNotFoundError,
    WorkspaceError,
)
from spine.core.manifest import manifest_path
from spine.core.models import PackageLink
from spine.core.npm import command_name, run_tool

log = logging.getLogger(__name__)

WORKSPACE_FILE = "angular.json"
DEFAULT_PORT = 4200
DEPENDENCY_FILES = ("package.json", "package-lock.json")


@dataclass
class AngularProject:
    name: str
    root: str
    project_type: str
    source_root: str | None = None
    architect: dict = field(default_factory=dict)

    @property
    def is_library(self) -> bool:
        return self.project_type == "library"

    @property
    def is_application(self) -> bool:
        return self.project_type == "application"


@dataclass
class AngularWorkspace:
    root: Path
    projects: dict[str, AngularProject] = field(default_factory=dict)
    default_project: str | None = None

    def library_projects(self) -> list[str]:
        return sorted(n for n, p in self.projects.items() if p.is_library)

    def has_library(self, name: str) -> bool:
        project = self.projects.get(name)
        return project is not None and project.is_library

    def application_project(self) -> str | None:
        """defaultProject if set, else the first application by name."""
        if self.default_project:
            return self.default_project
        apps = sorted(n for n, p in self.projects.items() if p.is_application)
        return apps[0] if apps else None

    def configured_port(self, app: str) -> int | None:
        """Port from the app's serve target, checking its development config too."""
        project = self.projects.get(app)
        if project is None:
            return None
        serve = project.architect.get("serve") or {}
        port = (serve.get("options") or {}).get("port")
        if isinstance(port, int):
            return port
        dev = (serve.get("configurations") or {}).get("development") or {}
        port = dev.get("port")
        return port if isinstance(port, int) else None


@dataclass
class BuildResult:
    library: str
    success: bool
    duration: float
    output: str = ""
    error: str | None = None


def load_workspace(root: Path) -> AngularWorkspace | None:
    """Parse ``root/angular.json``; None if there is none."""
    path = root / WORKSPACE_FILE
    if not path.exists():
        return None
    try:
        raw = orjson.loads(path.read_bytes())
    except (OSError, orjson.JSONDecodeError) as e:
        raise WorkspaceError(f"Invalid {WORKSPACE_FILE} at {path}: {e}")
    if not isinstance(raw, dict):
        raise WorkspaceError(f"Invalid {WORKSPACE_FILE} at {path}: not an object")

    projects = {}
    for name, data in (raw.get("projects") or {}).items():
        if not isinstance(data, dict):
            continue
        projects[name] = AngularProject(
            name=name,
            root=data.get("root", ""),
            project_type=data.get("projectType", "application"),
            source_root=data.get("sourceRoot"),
            architect=data.get("architect") or data.get("targets") or {},
        )
    return AngularWorkspace(
        root=root,
        projects=projects,
        default_project=raw.get("defaultProject"),
    )


def find_workspace_root(package_path: Path) -> Path | None:
    """Walk up from *package_path* to the nearest directory with angular.json."""
    for candidate in [package_path, *package_path.parents]:
        if candidate.name == "dist":
            continue
        if (candidate / WORKSPACE_FILE).exists():
            return candidate
    return None


def _same_location(a: Path, b: Path) -> bool:
    try:
        return a.resolve(strict=True) == b.resolve(strict=True)
    except OSError:
        return False


def resolve_library(workspace: AngularWorkspace, link: PackageLink) -> str | None:
    """Map a registered package to a library project in *workspace*.

    Tries, in order: a library with the package's name, a library whose
    ``dist/<lib>`` output is the package path, and a library whose source
    root contains the package path.
    """
    if workspace.has_library(link.name):
        return link.name
    for lib in workspace.library_projects():
        if _same_location(link.path, workspace.root / "dist" / lib):
            return lib
    for lib in workspace.library_projects():
        lib_root = workspace.root / workspace.projects[lib].root
        if workspace.projects[lib].root and link.path.is_relative_to(lib_root):
            return lib
    return None


def require_library(workspace: AngularWorkspace, name: str) -> str:
    if workspace.has_library(name):
        return name
    raise PackageNotFoundError(name, workspace.library_projects())


def build_library(
    workspace: AngularWorkspace, library: str, production: bool = True
) -> BuildResult:
    """Run ``ng build <library>`` once; the exit status decides success."""
    argv = [command_name("ng"), "build", library]
    if production:
        argv += ["--configuration", "production"]
    log.info("Building %s in %s", library, workspace.root)
    start = time.monotonic()
    try:
        result = subprocess.run(
            argv,
            cwd=workspace.root,
            capture_output=True,
            text=True,
            env=ng_env(),
        )
    except OSError as e:
        return BuildResult(library, False, time.monotonic() - start, error=str(e))
    duration = time.monotonic() - start
    if result.returncode == 0:
        return BuildResult(library, True, duration, output=result.stdout)
    return BuildResult(
        library, False, duration, output=result.stdout, error=result.stderr
    )


def ng_env() -> dict[str, str]:
    env = dict(os.environ)
    env["NG_CLI_ANALYTICS"] = "false"
    return env


def linked_libraries(workspace: AngularWorkspace, links: list[PackageLink]) -> list[str]:
    """Libraries in *workspace* that registered packages resolve to."""
    return sorted({
        lib for lib in (resolve_library(workspace, link) for link in links)
        if lib is not None
    })


# -- affected builds -------------------------------------------------------


def _git(root: Path, *args: str) -> list[str] | None:
    """Output lines of a git command, or None if git failed or is missing."""
    try:
        result = subprocess.run(
            ["git", *args],
            cwd=root,
            capture_output=True,
            text=True,
        )
    except OSError as e:
        log.debug("git not available: %s", e)
        return None
    if result.returncode != 0:
        log.debug("git %s failed: %s", " ".join(args), result.stderr.strip())
        return None
    return [line for line in result.stdout.splitlines() if line.strip()]


def changed_files(root: Path) -> list[str] | None:
    """Files changed under *root*, relative to it.

    Looks at the last commit first, then staged changes, then the working
    tree, and returns the first non-empty set. None means *root* is not in
    a git repository or git is not installed.
    """
    if _git(root, "rev-parse", "--git-dir") is None:
        return None
    for revision in (["HEAD~1..HEAD"], ["--cached"], []):
        files = _git(root, "diff", "--name-only", "--relative", *revision)
        if files:
            log.debug("Changed files (%s): %s", " ".join(revision) or "working tree", files)
            return files
    return []


def affected_libraries(
    workspace: AngularWorkspace, candidates: list[str], files: list[str]
) -> list[str]:
    """Libraries among *candidates* with a changed file under their root.

    A changed package.json or lockfile anywhere affects every candidate.
    """
    for path in files:
        if path in DEPENDENCY_FILES or path.endswith("/package.json"):
            return sorted(candidates)
    affected = set()
    for lib in candidates:
        root = workspace.projects[lib].root.strip("/")
        if root and any(path.startswith(root + "/") for path in files):
            affected.add(lib)
    return sorted(affected)


def detect_affected_libraries(workspace: AngularWorkspace, candidates: list[str]) -> list[str]:
    files = changed_files(workspace.root)
    if files is None:
        log.warning("git not available; treating every linked library as affected")
        return sorted(candidates)
    return affected_libraries(workspace, candidates, files)


# -- publishing ------------------------------------------------------------


@dataclass
class PublishResult:
    library: str
    directory: Path
    dry_run: bool
    output: str = ""


def find_publish_directory(
    workspace: AngularWorkspace, library: str, package_path: Path
) -> Path:
    """Directory holding the built package.json for *library*.

    Build outputs are preferred over the registered path, which for a
    source-registered library is the unbuilt project.
    """
    root = workspace.root
    candidates = [
        root / "dist" / library,
        root / "dist" / "libs" / library,
        root / "projects" / library / "dist",
    ]
    project = workspace.projects.get(library)
    if project is not None:
        options = (project.architect.get("build") or {}).get("options") or {}
        output_path = options.get("outputPath")
        if isinstance(output_path, str):
            candidates.append(root / output_path)
    candidates.append(package_path)
    for candidate in candidates:
        if manifest_path(candidate).exists():
            return candidate
    raise WorkspaceError(
        f"Could not find built package directory for '{library}'",
        f"Build it first: spine build {library}",
    )


def publish_library(
    workspace: AngularWorkspace,
    library: str,
    package_path: Path,
    dry_run: bool = False,
    skip_build: bool = False,
) -> PublishResult:
    """Build *library*, then ``npm publish`` its output directory.

    Raises BuildFailedError if the build fails; nothing is published then.
    """
    if not skip_build:
        result = build_library(workspace, library)
        if not result.success:
            raise BuildFailedError(library, result.error or "")
    directory = find_publish_directory(workspace, library, package_path)
    args = ["npm", "publish"]
    if dry_run:
        args.append("--dry-run")
    log.info("Publishing %s from %s", library, directory)
    completed = run_tool(args, directory, error=CommandFailedError)
    return PublishResult(library, directory, dry_run, completed.stdout)
