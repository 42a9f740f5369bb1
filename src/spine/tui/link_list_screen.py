from __future__ import annotations

from pathlib import Path

from rich.text import Text
from textual import work
from textual.app import ComposeResult
from textual.binding import Binding
from textual.screen import Screen
from textual.widgets import Footer, OptionList, Static
from textual.widgets.option_list import Option

from spine.core.errors import SpineError
from spine.core.status import PackageStatus, package_status


class LinkListScreen(Screen):
    """Registered packages with their link and health state for this project."""

    BINDINGS = [
        Binding("l", "link", "Link", show=True),
        Binding("u", "unlink", "Unlink", show=True),
        Binding("a", "add", "Add", show=True),
        Binding("d", "remove", "Remove", show=True),
        Binding("delete", "remove", "Remove", show=False),
        Binding("v", "verify", "Verify", show=True),
        Binding("s", "sync", "Sync", show=True),
        Binding("r", "refresh", "Refresh", show=False),
        Binding("question_mark", "show_help", "Help", show=True),
        Binding("q", "quit_app", "Quit", show=True),
        # Vim navigation
        Binding("j", "cursor_down", "Down", show=False),
        Binding("k", "cursor_up", "Up", show=False),
        Binding("g", "go_top", "Top", show=False),
        Binding("G", "go_bottom", "Bottom", show=False),
    ]

    def __init__(self):
        super().__init__()
        self._names: list[str] = []
        self._busy = False

    def compose(self) -> ComposeResult:
        yield Static(" Package Links", id="links_header")
        yield Static("", id="links_explanation")
        yield OptionList(id="link_list")
        yield Static("", id="detail")
        yield Static("", id="links_status")
        yield Footer()

    def on_mount(self) -> None:
        app = self.app  # type: SpineApp
        self.query_one("#links_explanation", Static).update(
            f" Project: {app.project_dir}\n"
            " l links the highlighted package here, u unlinks it. a registers a new package,\n"
            " d removes one. v drops stale entries, s restores links the registry expects."
        )
        self._rebuild_list()
        self.query_one("#link_list", OptionList).focus()

    def _rebuild_list(self) -> None:
        app = self.app  # type: SpineApp
        option_list = self.query_one("#link_list", OptionList)
        highlighted = option_list.highlighted
        option_list.clear_options()
        self._names.clear()

        statuses = [package_status(link, app.project_dir) for link in app.registry.list()]
        for status in statuses:
            option_list.add_option(Option(self._label(status)))
            self._names.append(status.name)

        if self._names:
            option_list.highlighted = min(highlighted or 0, len(self._names) - 1)

        linked = sum(1 for s in statuses if s.linked)
        issues = sum(1 for s in statuses if not s.healthy)
        self.query_one("#links_status", Static).update(
            f" {len(statuses)} packages | {linked} linked here | {issues} with issues"
        )
        self._update_detail()

    @staticmethod
    def _label(status: PackageStatus) -> Text:
        label = Text()
        if status.errors:
            label.append("✗ ", style="bold red")
        elif status.linked:
            label.append("● ", style="bold green")
        else:
            label.append("○ ", style="dim")
        label.append(status.name, style="bold")
        label.append(f"  v{status.stored_version or '?'}", style="cyan")
        if status.version_mismatch:
            label.append(f" (actual {status.actual_version})", style="yellow")
        label.append(f"  {status.path}", style="dim")
        return label

    def _highlighted_name(self) -> str | None:
        idx = self.query_one("#link_list", OptionList).highlighted
        if idx is None or idx >= len(self._names):
            return None
        return self._names[idx]

    def _update_detail(self) -> None:
        name = self._highlighted_name()
        detail = self.query_one("#detail", Static)
        if name is None:
            detail.update(" No packages registered. Press a to add one.")
            return
        app = self.app  # type: SpineApp
        status = package_status(app.registry.get(name), app.project_dir)
        lines = [f" {name}"]
        lines += [f"   ✗ {e}" for e in status.errors]
        lines += [f"   ⚠ {w}" for w in status.warnings]
        if status.linked_projects:
            lines.append("   Linked projects:")
            lines += [f"     • {p}" for p in status.linked_projects]
        detail.update("\n".join(lines))

    def on_option_list_option_highlighted(self, event: OptionList.OptionHighlighted) -> None:
        self._update_detail()

    # -- actions that shell out run on a worker thread --------------------
    #
    # Only one runs at a time, and nothing else touches the registry until it
    # has finished; _busy is read and written on the UI thread only.

    def _refuse_while_busy(self) -> bool:
        if self._busy:
            self.notify("Still waiting for npm; try again when it finishes", severity="warning")
        return self._busy

    def _start(self, message: str) -> bool:
        if self._refuse_while_busy():
            return False
        self._busy = True
        self.notify(message)
        return True

    def _finish(self) -> None:
        self._busy = False
        self._rebuild_list()

    @work(thread=True, exclusive=True)
    def _run_link(self, name: str, unlink: bool) -> None:
        from spine.core.operations import link_package, unlink_package

        app = self.app  # type: SpineApp
        try:
            if unlink:
                unlink_package(app.registry, name, app.project_dir, app.linker)
            else:
                link_package(app.registry, name, app.project_dir, app.linker)
            app.registry.save()
        except SpineError as e:
            app.call_from_thread(self.notify, e.message, severity="error", timeout=6)
        else:
            verb = "Unlinked" if unlink else "Linked"
            app.call_from_thread(self.notify, f"{verb} {name}")
        finally:
            app.call_from_thread(self._finish)

    def action_link(self) -> None:
        name = self._highlighted_name()
        if name and self._start(f"Linking {name}..."):
            self._run_link(name, unlink=False)

    def action_unlink(self) -> None:
        name = self._highlighted_name()
        if name and self._start(f"Unlinking {name}..."):
            self._run_link(name, unlink=True)

    @work(thread=True, exclusive=True)
    def _run_sync(self) -> None:
        from spine.core.reconcile import restore

        app = self.app  # type: SpineApp
        try:
            report = restore(app.registry, app.project_dir, app.linker)
            app.registry.save()
            message = f"Restored {len(report.restored)}, {len(report.already_linked)} already linked"
            app.call_from_thread(self.notify, message)
            for failure in report.failures:
                app.call_from_thread(
                    self.notify, f"{failure.name}: {failure.reason}", severity="error", timeout=6
                )
        except SpineError as e:
            app.call_from_thread(self.notify, e.message, severity="error", timeout=6)
        finally:
            app.call_from_thread(self._finish)

    def action_sync(self) -> None:
        if self._start("Restoring links..."):
            self._run_sync()

    # -- registry-only actions ------------------------------------------

    def action_verify(self) -> None:
        from spine.core.reconcile import verify

        if self._refuse_while_busy():
            return
        app = self.app  # type: SpineApp
        removed = verify(app.registry)
        if removed:
            app.registry.save()
            self.notify(f"Removed {len(removed)} stale link(s)")
        else:
            self.notify("All links are valid")
        self._rebuild_list()

    def action_remove(self) -> None:
        name = self._highlighted_name()
        if name is None or self._refuse_while_busy():
            return
        app = self.app  # type: SpineApp
        app.registry.remove(name)
        app.registry.save()
        self.notify(f"Removed: {name}")
        self._rebuild_list()

    def action_add(self) -> None:
        from spine.tui.add_link_modal import AddLinkModal

        self.app.push_screen(AddLinkModal(self.app.project_dir), callback=self._handle_add)

    def _handle_add(self, result: tuple[str, Path] | None) -> None:
        if result is None or self._refuse_while_busy():
            return
        name, path = result
        app = self.app  # type: SpineApp
        try:
            app.registry.add(name, path)
        except SpineError as e:
            self.notify(e.message, severity="error")
            return
        app.registry.save()
        self.notify(f"Added {name} -> {path}")
        self._rebuild_list()

    def action_refresh(self) -> None:
        self._rebuild_list()

    def action_show_help(self) -> None:
        self.notify(
            "l Link  u Unlink  a Add  d Remove  v Verify  s Sync  r Refresh\n"
            "j/k Up/Down  g/G Top/Bottom  q Quit",
            title="Keyboard Help",
            timeout=5,
        )

    def action_cursor_down(self) -> None:
        self.query_one("#link_list", OptionList).action_cursor_down()

    def action_cursor_up(self) -> None:
        self.query_one("#link_list", OptionList).action_cursor_up()

    def action_go_top(self) -> None:
        ol = self.query_one("#link_list", OptionList)
        if ol.option_count > 0:
            ol.highlighted = 0
            ol.scroll_home()

    def action_go_bottom(self) -> None:
        ol = self.query_one("#link_list", OptionList)
        last = ol.option_count - 1
        if last >= 0:
            ol.highlighted = last
            ol.scroll_end()

    def action_quit_app(self) -> None:
        self.app.exit()
