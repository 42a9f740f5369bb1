from __future__ import annotations

from pathlib import Path

from textual.app import App

from spine.core.registry import Registry


class SpineApp(App):
    """Interactive view over the link registry for one project."""

    CSS_PATH = "styles.css"
    TITLE = "spine"

    def __init__(self, registry: Registry, project_dir: Path, linker=None):
        super().__init__()
        from spine.core.npm import NpmLinker

        self.registry = registry
        self.project_dir = project_dir
        self.linker = linker or NpmLinker()

    def on_mount(self) -> None:
        from spine.tui.link_list_screen import LinkListScreen

        self.sub_title = str(self.project_dir)
        self.push_screen(LinkListScreen())
