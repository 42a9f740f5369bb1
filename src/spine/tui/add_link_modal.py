from __future__ import annotations

import asyncio
from pathlib import Path

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Vertical
from textual.screen import ModalScreen
from textual.suggester import Suggester
from textual.widgets import Input, Static

from spine.core.errors import ManifestError
from spine.core.manifest import get_package_name, manifest_path
from spine.core.scanner import SKIP_DIRS


class PathSuggester(Suggester):
    """Ghost-text completion for package directories.

    Among the children matching what has been typed, one holding a
    package.json wins over plain directories. node_modules and other
    directories the scanner skips are never offered, nor are hidden ones
    unless the typed prefix starts with a dot.
    """

    def __init__(self):
        super().__init__(use_cache=False, case_sensitive=True)

    async def get_suggestion(self, value: str) -> str | None:
        return await asyncio.to_thread(self._suggest_sync, value)

    def _suggest_sync(self, value: str) -> str | None:
        if not value:
            return None
        tilde_prefix = value.startswith("~/") or value == "~"
        try:
            path = Path(value).expanduser()
        except RuntimeError:
            return None
        if path.is_dir() and value.endswith("/"):
            parent, prefix = path, ""
        else:
            parent, prefix = path.parent, path.name
        try:
            matches = [
                child for child in sorted(parent.iterdir())
                if child.name.startswith(prefix)
                and child.name not in SKIP_DIRS
                and (prefix.startswith(".") or not child.name.startswith("."))
                and child.is_dir()
            ]
        except OSError:
            return None
        if not matches:
            return None
        best = next((c for c in matches if manifest_path(c).exists()), matches[0])
        result = str(best) + "/"
        if tilde_prefix:
            home = str(Path.home())
            if result.startswith(home):
                result = "~" + result[len(home) :]
        return result


def detected_name(raw_path: str) -> str | None:
    """Package name from the package.json in *raw_path*, if there is one."""
    try:
        return get_package_name(manifest_path(Path(raw_path.strip()).expanduser()))
    except (ManifestError, RuntimeError):
        return None


class AddLinkModal(ModalScreen[tuple[str, Path] | None]):
    """Register a package directory. The name defaults to the one in its package.json."""

    BINDINGS = [
        Binding("escape", "cancel", "Cancel", show=False),
        Binding("tab", "accept_suggestion", "Accept suggestion", show=False),
    ]

    def __init__(self, start_dir: Path):
        super().__init__()
        self.start_dir = start_dir

    def compose(self) -> ComposeResult:
        with Vertical(id="modal_container"):
            yield Static("Add Package Link", id="modal_title")
            yield Input(
                value=str(self.start_dir.parent) + "/",
                placeholder="Package directory...",
                id="path_input",
                suggester=PathSuggester(),
            )
            yield Input(
                placeholder="Package name (blank reads package.json)",
                id="name_input",
            )
            yield Static("", id="modal_error")
            yield Static(
                "Enter to confirm · Escape to cancel · Tab/→ to accept suggestion",
                id="modal_hint",
            )

    def on_mount(self) -> None:
        inp = self.query_one("#path_input", Input)
        inp.focus()
        inp.action_end()

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id != "path_input":
            return
        name = detected_name(event.value)
        name_input = self.query_one("#name_input", Input)
        if name:
            name_input.placeholder = f"Package name (blank uses {name})"
        else:
            name_input.placeholder = "Package name (no package.json here yet)"
        self.query_one("#modal_error", Static).update("")

    def on_input_submitted(self, event: Input.Submitted) -> None:
        if event.input.id == "path_input":
            self.query_one("#name_input", Input).focus()
            return

        raw_path = self.query_one("#path_input", Input).value.strip()
        if not raw_path:
            self.dismiss(None)
            return
        path = Path(raw_path).expanduser()
        name = self.query_one("#name_input", Input).value.strip()
        if not name:
            try:
                name = get_package_name(manifest_path(path))
            except ManifestError as e:
                self.query_one("#modal_error", Static).update(f"[red]{e.message}[/red]")
                return
        self.dismiss((name, path))

    def action_accept_suggestion(self) -> None:
        focused = self.focused
        if isinstance(focused, Input) and focused.id == "path_input":
            focused.action_cursor_right()
        else:
            self.focus_next()

    def action_cancel(self) -> None:
        self.dismiss(None)
