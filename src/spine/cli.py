from __future__ import annotations

import functools
import subprocess
from importlib.metadata import PackageNotFoundError as DistributionNotFound
from importlib.metadata import version
from pathlib import Path

import orjson
import typer
from rich.console import Console
from rich.table import Table

from spine.core import prober
from spine.core.errors import (
    CommandFailedError,
    InvalidPathError,
    ManifestError,
    SpineError,
    WorkspaceError,
)
from spine.core.manifest import get_package_name, manifest_path
from spine.core.models import BatchSummary
from spine.core.npm import NpmLinker, command_name
from spine.core.registry import Registry, default_config_path
from spine.logging_config import setup_logging

app = typer.Typer(
    name="spine",
    help="A managed replacement for npm link, with Angular-aware build and serve.",
    invoke_without_command=True,
)
console = Console()


def _version_callback(value: bool) -> None:
    if value:
        try:
            print(f"spine {version('spine-link')}")
        except DistributionNotFound:
            print("spine (not installed)")
        raise typer.Exit()


def _reports_errors(func):
    """Render SpineError as a red message plus suggestion, exit code 1."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SpineError as e:
            console.print(f"[red]{e.message}[/red]", highlight=False)
            if e.suggestion:
                console.print(f"[yellow]{e.suggestion}[/yellow]", highlight=False)
            raise typer.Exit(code=1)

    return wrapper


def _config_path(ctx: typer.Context) -> Path:
    obj = ctx.find_root().obj or {}
    return obj.get("config") or default_config_path()


def _load_registry(ctx: typer.Context) -> Registry:
    return Registry.load_or_create(_config_path(ctx))


def _complete_package_names(incomplete: str) -> list[str]:
    try:
        names = Registry.load(default_config_path()).names()
    except SpineError:
        return []
    return [n for n in names if n.startswith(incomplete)]


def _package_arg():
    return typer.Argument(
        ..., help="Package name", autocompletion=_complete_package_names
    )


def _print_batch_summary(title: str, summary: BatchSummary) -> None:
    """Print counts and failure reasons; exits 1 after printing if anything failed."""
    counts = (
        f"  [green]{len(summary.succeeded)}[/green] succeeded, "
        f"[red]{len(summary.failed)}[/red] failed"
    )
    if summary.skipped:
        counts += f", [yellow]{len(summary.skipped)}[/yellow] skipped (not managed by spine)"
    console.print(f"\n[bold]{title}[/bold]")
    console.print(counts)
    for failure in summary.failed:
        console.print(f"    [red]✗[/red] {failure.name}: {failure.reason}", highlight=False)
    if summary.failed:
        raise typer.Exit(code=1)


# -- registry ------------------------------------------------------------


@app.command("list")
@_reports_errors
def list_links(ctx: typer.Context):
    """List registered package links."""
    registry = _load_registry(ctx)
    links = registry.list()
    if not links:
        console.print("No package links configured.")
        return

    table = Table(title=f"Package Links ({len(links)})")
    table.add_column("Package", style="cyan", no_wrap=True)
    table.add_column("Version", style="green")
    table.add_column("Path", style="white")
    table.add_column("Linked Projects", style="magenta")
    for link in links:
        table.add_row(
            link.name,
            link.version or "unknown",
            str(link.path),
            "\n".join(str(p) for p in link.linked_projects),
        )
    console.print(table)


def _detect_package_info(package: str | None, path: str | None) -> tuple[str, Path]:
    target = Path(path or ".").expanduser()
    if not target.exists():
        raise InvalidPathError(target)
    if package:
        return package, target.resolve()
    try:
        name = get_package_name(manifest_path(target))
    except ManifestError as e:
        raise ManifestError(
            e.message,
            "Could not detect the package name; pass it explicitly: spine add <package> <path>",
        )
    console.print(f"Auto-detected package name: [bold]{name}[/bold]")
    return name, target.resolve()


@app.command("add")
@_reports_errors
def add(
    ctx: typer.Context,
    package: str = typer.Argument(
        None, help="Package name (auto-detected from package.json if not provided)"
    ),
    path: str = typer.Argument(
        None, help="Local path to package (defaults to current directory)"
    ),
):
    """Register a local package."""
    registry = _load_registry(ctx)
    name, package_path = _detect_package_info(package, path)
    link = registry.add(name, package_path)
    registry.save()
    console.print(f"Added link: [cyan]{link.name}[/cyan] -> {link.path}", highlight=False)


@app.command("remove")
@_reports_errors
def remove(ctx: typer.Context, package: str = _package_arg()):
    """Deregister a package, forgetting every project it was linked into."""
    registry = _load_registry(ctx)
    registry.remove(package)
    registry.save()
    console.print(f"Removed link: [cyan]{package}[/cyan]", highlight=False)


# -- linking -------------------------------------------------------------


@app.command("link")
@_reports_errors
def link(ctx: typer.Context, package: str = _package_arg()):
    """Link a registered package into the current project."""
    from spine.core.operations import link_package

    registry = _load_registry(ctx)
    entry = registry.get(package)
    console.print(f"Linking package: {package} -> {entry.path}", highlight=False)
    link_package(registry, package, Path.cwd(), NpmLinker())
    registry.save()
    console.print(f"[green]✓[/green] Successfully linked: {package}", highlight=False)


@app.command("link-all")
@_reports_errors
def link_all_command(ctx: typer.Context):
    """Link every registered package into the current project."""
    from spine.core.operations import link_all

    registry = _load_registry(ctx)
    if not len(registry):
        console.print("No packages configured to link.")
        return
    console.print("Linking all configured packages...")
    summary = link_all(registry, Path.cwd(), NpmLinker())
    registry.save()
    for name in summary.succeeded:
        console.print(f"[green]✓[/green] Linked: {name}", highlight=False)
    _print_batch_summary("Link summary", summary)


@app.command("unlink")
@_reports_errors
def unlink(ctx: typer.Context, package: str = _package_arg()):
    """Unlink a package from the current project."""
    from spine.core.operations import unlink_package

    registry = _load_registry(ctx)
    removed = unlink_package(registry, package, Path.cwd(), NpmLinker())
    registry.save()
    if removed:
        console.print(f"[green]✓[/green] Successfully unlinked: {package}", highlight=False)
    else:
        console.print(
            f"[yellow]Unlink completed but the symlink still exists for: {package}[/yellow]",
            highlight=False,
        )


@app.command("unlink-all")
@_reports_errors
def unlink_all_command(ctx: typer.Context):
    """Unlink every managed package from the current project."""
    from spine.core.operations import unlink_all

    registry = _load_registry(ctx)
    summary = unlink_all(registry, Path.cwd(), NpmLinker())
    if not (summary.succeeded or summary.failed or summary.skipped):
        console.print("No packages currently linked in this project.")
        return
    registry.save()
    for name in summary.succeeded:
        console.print(f"[green]✓[/green] Unlinked: {name}", highlight=False)
    _print_batch_summary("Unlink summary", summary)


# -- reconciliation ------------------------------------------------------


@app.command("verify")
@_reports_errors
def verify_command(ctx: typer.Context):
    """Drop recorded links that no longer exist on disk."""
    from spine.core.reconcile import verify

    registry = _load_registry(ctx)
    console.print("Verifying package links...")
    removed = verify(registry)
    if not removed:
        console.print("[green]✓[/green] All links are valid.")
        return
    console.print(f"Cleaned up {len(removed)} broken link(s):")
    for name, project in removed:
        console.print(f"  [red]✗[/red] Removed: {name} from {project}", highlight=False)
    registry.save()
    console.print("\nConfiguration updated.")


@app.command("sync")
@_reports_errors
def sync(ctx: typer.Context):
    """Restore links the registry expects in this project (e.g. after npm install)."""
    from spine.core.reconcile import reconcile, restore

    registry = _load_registry(ctx)
    if not len(registry):
        console.print("No packages configured to sync.")
        return

    cwd = Path.cwd()
    restore_report = restore(registry, cwd, NpmLinker())
    console.print("[bold]Current state[/bold]")
    console.print(f"  Already linked as configured: {len(restore_report.already_linked)}")
    console.print(f"  Restored: {len(restore_report.restored)}")
    console.print(f"  Not configured for this project: {len(restore_report.not_configured_here)}")
    for name in restore_report.restored:
        console.print(f"  [green]✓[/green] Restored {name}", highlight=False)
    for failure in restore_report.failures:
        kind = type(failure.error).__name__.removesuffix("Error")
        console.print(
            f"  [red]✗[/red] {failure.name} ({kind}): {failure.reason}", highlight=False
        )

    report = reconcile(registry, cwd, prober.find_linked_packages(cwd), prune=False)
    for name, project in report.added_missing_links:
        console.print(f"  [green]+[/green] Recorded link {name} to {project}", highlight=False)
    if report.untracked_links:
        console.print("\n[yellow]Linked here but not managed by spine:[/yellow]")
        for name in report.untracked_links:
            console.print(f"  ○ {name}", highlight=False)
    registry.save()

    if restore_report.failures:
        raise typer.Exit(code=1)


# -- status --------------------------------------------------------------


def _show_plain_status(registry: Registry, cwd: Path) -> None:
    console.print("[bold]npm link status for current project[/bold]")
    if not manifest_path(cwd).exists():
        console.print(
            "[yellow]Warning: current directory is not an npm project (no package.json found)[/yellow]"
        )
        return

    linked = prober.find_linked_packages(cwd)
    if not linked:
        console.print("No packages currently linked in this project.")
    else:
        console.print("\nCurrently linked packages:")
        for name in linked:
            if name in registry:
                console.print(f"  [green]✓[/green] {name} (managed by spine)", highlight=False)
            else:
                console.print(f"  ○ {name} (not in spine config)", highlight=False)

    if len(registry):
        console.print("\nSpine configured packages:")
        for entry in registry.list():
            state = "[green]linked[/green]" if entry.name in linked else "not linked"
            console.print(f"  {entry.name} -> {entry.path} \\[{state}]", highlight=False)


def _show_detailed_status(statuses, cwd: Path) -> None:
    console.print("[bold]Detailed Package Status[/bold]")
    if not statuses:
        console.print("No packages configured.")
        return
    for s in statuses:
        console.print(f"\n[bold cyan]{s.name}[/bold cyan]", highlight=False)
        console.print(f"   Path: {s.path}", highlight=False)
        if s.stored_version or s.actual_version:
            line = f"   Version: {s.stored_version or 'unset'}"
            if s.version_mismatch:
                line += f" [yellow](actual: {s.actual_version})[/yellow]"
            console.print(line, highlight=False)
        if s.linked:
            console.print("   Status: [green]linked to current project[/green]")
        else:
            console.print("   Status: not linked to current project")
        if s.linked_projects:
            console.print("   Linked projects:")
            for project in s.linked_projects:
                console.print(f"     • {project}", highlight=False)
        for error in s.errors:
            console.print(f"   [red]✗ {error}[/red]", highlight=False)


def _show_health_status(statuses, detailed: bool) -> None:
    console.print("[bold]Package Health Check[/bold]")
    healthy = 0
    for s in statuses:
        suffix = " (linked)" if s.linked else ""
        if s.errors:
            console.print(f"[red]✗[/red] {s.name} - " + " - ".join(s.errors), highlight=False)
        elif s.warnings:
            console.print(f"[yellow]⚠[/yellow] {s.name} - " + " - ".join(s.warnings), highlight=False)
        else:
            console.print(f"[green]✓[/green] {s.name}{suffix}", highlight=False)
            healthy += 1
            continue
        if detailed:
            console.print(f"   Path: {s.path}", highlight=False)
            console.print(f"   Stored version: {s.stored_version or 'unset'}", highlight=False)
    console.print(
        f"\nSummary: [green]{healthy}[/green] healthy, "
        f"[yellow]{len(statuses) - healthy}[/yellow] with issues"
    )


@app.command("status")
@_reports_errors
def status(
    ctx: typer.Context,
    detailed: bool = typer.Option(
        False, "--detailed", is_flag=True, help="Show versions, paths and linked projects"
    ),
    health: bool = typer.Option(
        False, "--health", is_flag=True, help="Check for missing paths, manifests and version drift"
    ),
    json_output: bool = typer.Option(
        False, "--json", is_flag=True, help="Output JSON for scripts/CI"
    ),
):
    """Show link status for the current project."""
    from spine.core.status import collect_status, status_to_json

    registry = _load_registry(ctx)
    cwd = Path.cwd()

    if json_output:
        data = status_to_json(collect_status(registry, cwd), cwd, detailed, health)
        typer.echo(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())
    elif health:
        _show_health_status(collect_status(registry, cwd), detailed)
    elif detailed:
        _show_detailed_status(collect_status(registry, cwd), cwd)
    else:
        _show_plain_status(registry, cwd)


# -- discovery -----------------------------------------------------------


@app.command("scan")
@_reports_errors
def scan(
    ctx: typer.Context,
    add_packages: bool = typer.Option(
        False, "--add", is_flag=True, help="Register the discovered packages"
    ),
    path: Path = typer.Option(
        None, "--path", "-p", help="Directory to scan (defaults to current directory)"
    ),
):
    """Find local packages on disk."""
    from spine.core.scanner import filter_packages, load_workspace_config, scan_for_packages

    search_dir = (path or Path.cwd()).expanduser().resolve()
    console.print(f"Scanning for packages in {search_dir}...", highlight=False)
    packages = scan_for_packages(search_dir)
    if not packages:
        console.print("No packages found in the specified directory.")
        return

    included = filter_packages(packages, load_workspace_config(search_dir))
    included_names = {p.name for p in included}

    table = Table(title=f"Discovered Packages ({len(packages)})")
    table.add_column("", justify="center")
    table.add_column("Package", style="cyan")
    table.add_column("Version", style="green")
    table.add_column("Path", style="white")
    for pkg in packages:
        mark = "[green]✓[/green]" if pkg.name in included_names else "○"
        dist = " (dist)" if pkg.is_dist else ""
        table.add_row(mark, pkg.name, pkg.version, f"{pkg.path}{dist}")
    console.print(table)

    if not add_packages:
        console.print("\nUse --add to register discovered packages.")
        console.print("Add an auto_link section to .spine.yaml to filter them.")
        return

    registry = _load_registry(ctx)
    for pkg in included:
        registry.add(pkg.name, pkg.path)
        console.print(f"[green]✓[/green] Added: {pkg.name}", highlight=False)
    registry.save()
    console.print(f"\nAdded {len(included)} package(s) to configuration.")


@app.command("suggest")
@_reports_errors
def suggest(
    path: Path = typer.Option(
        None, "--path", "-p", help="Directory to search for local packages"
    ),
):
    """Suggest local packages matching the current project's dependencies."""
    from spine.core.scanner import suggest_packages

    cwd = Path.cwd()
    suggested = suggest_packages(cwd, path.expanduser().resolve() if path else None)
    if not suggested:
        console.print("No local packages found that match your project's dependencies.")
        return
    console.print(f"Found {len(suggested)} local package(s) matching your dependencies:")
    for pkg in suggested:
        dist = " (dist)" if pkg.is_dist else ""
        console.print(f"  {pkg.name} (v{pkg.version}) -> {pkg.path}{dist}", highlight=False)
    console.print("\nUse 'spine add <name> <path>' then 'spine link <name>'.")


@app.command("config-edit")
@_reports_errors
def config_edit(ctx: typer.Context):
    """Open the configuration file in an editor."""
    registry = _load_registry(ctx)
    code = typer.launch(str(registry.path))
    if code != 0:
        console.print(f"Could not open an editor. Edit manually: {registry.path}", highlight=False)


# -- angular -------------------------------------------------------------


def _workspace_for(registry: Registry, cwd: Path):
    """Angular workspace in *cwd*, or the first one found from a registered package."""
    from spine.core.angular import find_workspace_root, load_workspace

    workspace = load_workspace(cwd)
    if workspace is not None:
        return workspace
    for entry in registry.list():
        root = find_workspace_root(entry.path)
        if root is not None:
            console.print(f"Using Angular workspace from package '{entry.name}': {root}", highlight=False)
            return load_workspace(root)
    raise WorkspaceError.not_found(cwd)


def _wait_with_progress(server, total: int) -> None:
    from rich.progress import Progress

    with Progress(console=console) as progress:
        task = progress.add_task("Building libraries...", total=total)

        def on_complete(library: str) -> None:
            progress.update(task, advance=1, description=f"Built: {library}")

        server.wait_for_initial_builds(on_complete=on_complete)


@app.command("build")
@_reports_errors
def build(
    ctx: typer.Context,
    library: str = typer.Argument(None, help="Library to build"),
    all_libraries: bool = typer.Option(
        False, "--all", is_flag=True, help="Build every library linked through spine"
    ),
    watch: bool = typer.Option(
        False, "--watch", is_flag=True, help="Rebuild on change"
    ),
    affected: bool = typer.Option(
        False, "--affected", is_flag=True, help="Build only linked libraries changed according to git"
    ),
):
    """Build Angular libraries."""
    from spine.core.angular import (
        build_library,
        detect_affected_libraries,
        linked_libraries,
        require_library,
        resolve_library,
    )
    from spine.core.watch import LibraryWatch, LibraryWatchServer

    registry = _load_registry(ctx)
    workspace = _workspace_for(registry, Path.cwd())

    if library:
        if library in registry:
            resolved = resolve_library(workspace, registry.get(library))
            libraries = [resolved or require_library(workspace, library)]
        else:
            libraries = [require_library(workspace, library)]
    elif affected:
        if watch:
            raise SpineError(
                "Watch mode is not supported with --affected",
                "Watch individual libraries instead: spine build <library> --watch",
            )
        console.print("Detecting affected libraries...")
        libraries = detect_affected_libraries(workspace, linked_libraries(workspace, registry.list()))
        if not libraries:
            console.print("No affected libraries detected.")
            return
        console.print(f"Found {len(libraries)} affected: {', '.join(libraries)}", highlight=False)
    elif all_libraries:
        libraries = linked_libraries(workspace, registry.list())
    else:
        table = Table(title=f"Libraries in {workspace.root}")
        table.add_column("Library", style="cyan")
        table.add_column("Built", justify="center")
        for lib in workspace.library_projects():
            built = manifest_path(workspace.root / "dist" / lib).exists()
            table.add_row(lib, "[green]yes[/green]" if built else "[red]no[/red]")
        console.print(table)
        console.print("\nUse 'spine build <library>' or 'spine build --all'.")
        return

    if not libraries:
        console.print("[yellow]No linked libraries found in this workspace.[/yellow]")
        return

    if watch:
        watches = [LibraryWatch(lib, lib, workspace.root) for lib in libraries]
        with LibraryWatchServer(watches) as server:
            server.start_watchers()
            _wait_with_progress(server, len(watches))
            console.print("Watching for changes (Ctrl+C to stop)...")
            try:
                server.monitor()
            except KeyboardInterrupt:
                console.print("\nStopping watchers...")
        return

    failed = 0
    for lib in libraries:
        result = build_library(workspace, lib)
        if result.success:
            console.print(f"[green]✓[/green] Built {lib} in {result.duration:.1f}s", highlight=False)
        else:
            failed += 1
            console.print(f"[red]✗[/red] Failed to build {lib}", highlight=False)
            if result.error:
                console.print(result.error.strip(), highlight=False, markup=False)
    console.print(f"\n[bold]{len(libraries) - failed}[/bold] built, [bold]{failed}[/bold] failed.")
    if failed:
        raise typer.Exit(code=1)


@app.command("publish")
@_reports_errors
def publish(
    ctx: typer.Context,
    package: str = _package_arg(),
    skip_build: bool = typer.Option(
        False, "--skip-build", is_flag=True, help="Publish the existing build output"
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", is_flag=True, help="Run npm publish --dry-run"
    ),
):
    """Build a registered library and publish it to npm."""
    from spine.core.angular import (
        find_workspace_root,
        load_workspace,
        publish_library,
        resolve_library,
    )
    from spine.core.errors import PackageNotFoundError

    registry = _load_registry(ctx)
    entry = registry.get(package)
    root = find_workspace_root(entry.path)
    if root is None:
        raise WorkspaceError(
            f"No Angular workspace found for package '{package}'",
            "Make sure the package lives inside an Angular workspace.",
        )
    workspace = load_workspace(root)
    library = resolve_library(workspace, entry)
    if library is None:
        raise PackageNotFoundError(package, workspace.library_projects())

    if skip_build:
        console.print("Skipping build step")
    else:
        console.print(f"Building {library}...", highlight=False)
    result = publish_library(workspace, library, entry.path, dry_run=dry_run, skip_build=skip_build)
    console.print(f"Published from {result.directory}", highlight=False)
    if result.output.strip():
        console.print(result.output.strip(), highlight=False, markup=False)
    if dry_run:
        console.print("[green]✓[/green] Dry run completed")
    else:
        console.print(f"[green]✓[/green] Published {package}", highlight=False)


@app.command("serve")
@_reports_errors
def serve(
    ctx: typer.Context,
    project: str = typer.Argument(
        None, help="Application project to serve (auto-detected if not given)"
    ),
    with_libs: bool = typer.Option(
        False, "--with-libs", is_flag=True, help="Rebuild linked libraries on change"
    ),
    port: int = typer.Option(None, "--port", help="Development server port"),
    hmr: bool = typer.Option(False, "--hmr", is_flag=True, help="Enable Hot Module Replacement"),
):
    """Start the Angular dev server, optionally watching linked libraries."""
    from spine.core.angular import DEFAULT_PORT
    from spine.core.watch import LibraryWatchServer, plan_watches

    if not with_libs:
        argv = [command_name("ng"), "serve"]
        if port:
            argv += ["--port", str(port)]
        if hmr:
            argv.append("--hmr")
        if project:
            argv.append(project)
        try:
            code = subprocess.call(argv)
        except OSError as e:
            raise CommandFailedError("ng serve", str(e))
        raise typer.Exit(code=code)

    registry = _load_registry(ctx)
    cwd = Path.cwd()
    workspace = _workspace_for(registry, cwd)
    app_project = project or workspace.application_project()
    if app_project is None:
        raise WorkspaceError(
            f"No application project found in {workspace.root}",
            "Pass the project name explicitly: spine serve <project> --with-libs",
        )
    port = port or workspace.configured_port(app_project) or DEFAULT_PORT

    watches = plan_watches(registry, workspace, cwd)
    if not watches:
        console.print("[yellow]No linked libraries found; serving without library watchers.[/yellow]")
    for w in watches:
        console.print(f"  Watching {w.library} (package {w.package_name})", highlight=False)

    with LibraryWatchServer(watches) as server:
        server.start_watchers()
        if watches:
            _wait_with_progress(server, len(watches))
        server.start_app_server(app_project, workspace.root, port, hmr)
        console.print(f"[green]Development server running at http://localhost:{port}[/green]")
        try:
            code = server.monitor()
        except KeyboardInterrupt:
            console.print("\nStopping all development servers...")
            return
        console.print(f"[yellow]A process stopped with exit status {code}[/yellow]")


# -- tui -----------------------------------------------------------------


def _launch_tui_impl(config_path: Path) -> None:
    registry = Registry.load_or_create(config_path)

    from spine.tui.app import SpineApp

    SpineApp(registry=registry, project_dir=Path.cwd()).run()


@app.command("tui")
@_reports_errors
def tui_command(ctx: typer.Context):
    """Launch the interactive TUI."""
    _launch_tui_impl(_config_path(ctx))


@app.callback(invoke_without_command=True)
def default(
    ctx: typer.Context,
    version_flag: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit",
        is_eager=True,
        callback=_version_callback,
        is_flag=True,
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", is_flag=True, help="Show debug logging"
    ),
    config: Path = typer.Option(
        None,
        "--config",
        envvar="SPINE_CONFIG",
        help="Path to the link registry file",
    ),
):
    """Default command: launches the interactive TUI."""
    setup_logging(verbose)
    ctx.obj = {"config": config.expanduser() if config else None}
    if ctx.invoked_subcommand is None:
        _reports_errors(_launch_tui_impl)(_config_path(ctx))
