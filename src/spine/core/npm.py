"""Thin wrapper around the npm executable.

Success is judged by exit status only; stderr is kept verbatim for errors.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path

from spine.core.errors import CommandFailedError, LinkCommandFailedError

log = logging.getLogger(__name__)


def command_name(base: str) -> str:
    """npm, ng and npx are .cmd shims on Windows."""
    if sys.platform == "win32" and base in ("npm", "ng", "npx"):
        return f"{base}.cmd"
    return base


def run_tool(
    args: list[str],
    cwd: Path,
    error: type[CommandFailedError] = LinkCommandFailedError,
) -> subprocess.CompletedProcess:
    """Run an external tool, raising *error* on non-zero exit or a missing binary."""
    argv = [command_name(args[0]), *args[1:]]
    display = " ".join(args)
    log.debug("Running %s in %s", display, cwd)
    try:
        result = subprocess.run(
            argv,
            cwd=cwd,
            capture_output=True,
            text=True,
        )
    except OSError as e:
        raise error(display, str(e))
    if result.returncode != 0:
        raise error(display, result.stderr or result.stdout)
    return result


class NpmLinker:
    """Creates and removes package links with ``npm link`` / ``npm unlink``."""

    def link(self, package_path: Path, cwd: Path) -> None:
        run_tool(["npm", "link", str(package_path)], cwd)

    def unlink(self, package_name: str, cwd: Path) -> None:
        run_tool(["npm", "unlink", package_name], cwd)
