"""Run ``ng build --watch`` for linked libraries and gate the app server on them.

``ng`` prints no machine-readable "build finished" marker, so completion is
guessed from its free-text output by a CompletionSignal. That guess is
best-effort only: a process exit status is always authoritative, and the
text scan exists only so the app server can start without waiting for a
watcher to exit (which it never does on success).
"""

from __future__ import annotations

import enum
import logging
import queue
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable

from spine.core import prober
from spine.core.angular import (
    AngularWorkspace,
    find_workspace_root,
    load_workspace,
    ng_env,
    resolve_library,
)
from spine.core.errors import BuildFailedError, BuildTimeoutError
from spine.core.npm import command_name
from spine.core.registry import Registry

log = logging.getLogger(__name__)

INITIAL_BUILD_TIMEOUT = 120.0
POLL_INTERVAL = 0.1


class BuildEvent(enum.Enum):
    COMPLETE = "complete"
    FAILED = "failed"
    EXITED = "exited"


class CompletionSignal:
    """Strategy that classifies one line of build output.

    Returns a BuildEvent, or None for lines that mean nothing.
    """

    def classify(self, line: str) -> BuildEvent | None:
        raise NotImplementedError


class PhraseCompletionSignal(CompletionSignal):
    """Substring match against phrases Angular CLI versions are known to print."""

    COMPLETE_PHRASES = (
        "✓ Built",
        "Build complete",
        "Compilation complete",
        "webpack compiled",
    )
    FAILED_PHRASES = (
        "Build failed",
        "✖ Failed",
        "ERROR",
    )

    def __init__(
        self,
        complete_phrases: Iterable[str] | None = None,
        failed_phrases: Iterable[str] | None = None,
    ):
        self.complete_phrases = tuple(complete_phrases or self.COMPLETE_PHRASES)
        self.failed_phrases = tuple(failed_phrases or self.FAILED_PHRASES)

    def classify(self, line: str) -> BuildEvent | None:
        if any(p in line for p in self.complete_phrases):
            return BuildEvent.COMPLETE
        if any(p in line for p in self.failed_phrases):
            return BuildEvent.FAILED
        return None


@dataclass
class LibraryWatch:
    """A library to rebuild on change, and the workspace that owns it."""

    library: str
    package_name: str
    workspace_root: Path


@dataclass
class WatchEvent:
    library: str
    kind: BuildEvent
    line: str = ""


def _spawn(argv: list[str], cwd: Path) -> subprocess.Popen:
    return subprocess.Popen(
        argv,
        cwd=cwd,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        bufsize=1,
        env=ng_env(),
    )


def plan_watches(
    registry: Registry, workspace: AngularWorkspace, project_dir: Path
) -> list[LibraryWatch]:
    """Libraries to watch: registered packages linked into *project_dir*.

    Each package is matched to a library in *workspace* first, then in the
    workspace that contains the package itself. A library reached through
    more than one registered package is watched once.
    """
    watches = []
    seen: set[tuple[str, Path]] = set()
    for link in registry.list():
        if not (link.has_project(project_dir) or prober.is_linked(link.name, project_dir)):
            continue
        root = workspace.root
        lib = resolve_library(workspace, link)
        if lib is None:
            own_root = find_workspace_root(link.path)
            own = load_workspace(own_root) if own_root else None
            lib = resolve_library(own, link) if own else None
            if lib is None:
                log.warning("Could not map package '%s' to an Angular library", link.name)
                continue
            log.info("Mapped %s to library %s in %s", link.name, lib, own_root)
            root = own_root
        key = (lib, root.resolve())
        if key in seen:
            log.debug("Library %s already watched; skipping %s", lib, link.name)
            continue
        seen.add(key)
        watches.append(LibraryWatch(lib, link.name, root))
    return watches


class LibraryWatchServer:
    """Spawns one watcher per library plus the app server, and tracks them.

    Output of each watcher is read on its own daemon thread and funnelled
    through a single queue, so events from one process arrive in the order
    it printed them. Use as a context manager; leaving the block terminates
    every child process. A timeout while waiting does not.
    """

    def __init__(
        self,
        watches: list[LibraryWatch],
        signal: CompletionSignal | None = None,
        spawn: Callable[[list[str], Path], subprocess.Popen] = _spawn,
    ):
        self.watches = watches
        self.signal = signal or PhraseCompletionSignal()
        self._spawn = spawn
        self._events: queue.Queue[WatchEvent] = queue.Queue()
        self._watchers: dict[str, subprocess.Popen] = {}
        self._processes: list[subprocess.Popen] = []
        self._threads: list[threading.Thread] = []

    def __enter__(self) -> LibraryWatchServer:
        return self

    def __exit__(self, *exc) -> None:
        self.stop()

    def start_watchers(self) -> None:
        for watch in self.watches:
            argv = [command_name("ng"), "build", watch.library, "--watch"]
            log.debug("Starting watcher: %s", " ".join(argv))
            proc = self._spawn(argv, watch.workspace_root)
            self._watchers[watch.library] = proc
            self._processes.append(proc)
            thread = threading.Thread(
                target=self._read_output,
                args=(watch.library, proc),
                daemon=True,
            )
            thread.start()
            self._threads.append(thread)

    def _read_output(self, library: str, proc: subprocess.Popen) -> None:
        if proc.stdout is not None:
            for raw in proc.stdout:
                line = raw.rstrip("\n")
                if "error" in line.lower() or "failed" in line.lower():
                    log.warning("[%s] %s", library, line)
                else:
                    log.debug("[%s] %s", library, line)
                kind = self.signal.classify(line)
                if kind is not None:
                    self._events.put(WatchEvent(library, kind, line))
        self._events.put(WatchEvent(library, BuildEvent.EXITED))

    def wait_for_initial_builds(
        self,
        timeout: float = INITIAL_BUILD_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        on_complete: Callable[[str], None] | None = None,
    ) -> list[str]:
        """Block until every watcher reports its first successful build.

        Raises BuildFailedError when a watcher reports a failure or exits
        non-zero, and BuildTimeoutError once *timeout* seconds pass in total.
        """
        pending = list(dict.fromkeys(w.library for w in self.watches))
        completed: list[str] = []
        deadline = time.monotonic() + timeout

        while pending:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise BuildTimeoutError(timeout, pending)
            try:
                event = self._events.get(timeout=min(poll_interval, remaining))
            except queue.Empty:
                continue

            if event.kind is BuildEvent.FAILED:
                raise BuildFailedError(event.library, event.line)
            if event.kind is BuildEvent.EXITED:
                code = self._watchers[event.library].wait()
                if code != 0:
                    raise BuildFailedError(event.library, f"watcher exited with status {code}")
            if event.library in pending:
                pending.remove(event.library)
                completed.append(event.library)
                if on_complete is not None:
                    on_complete(event.library)
        return completed

    def start_app_server(
        self, app: str, workspace_root: Path, port: int, hmr: bool = False
    ) -> subprocess.Popen:
        argv = [
            command_name("ng"), "serve", app,
            "--port", str(port),
            "--host", "0.0.0.0",
            "--live-reload", "true",
        ]
        if hmr:
            argv.append("--hmr")
        log.debug("Starting app server: %s", " ".join(argv))
        proc = subprocess.Popen(argv, cwd=workspace_root, env=ng_env())
        self._processes.append(proc)
        return proc

    def monitor(self, poll_interval: float = 1.0) -> int:
        """Wait until any child exits; returns its exit status."""
        while True:
            for proc in self._processes:
                code = proc.poll()
                if code is not None:
                    return code
            time.sleep(poll_interval)

    def stop(self) -> None:
        for proc in self._processes:
            if proc.poll() is None:
                proc.terminate()
        for proc in self._processes:
            try:
                proc.wait(timeout=5)
            except subprocess.TimeoutExpired:
                proc.kill()
        self._processes.clear()
