"""Command line interface for the SuperCrew installation manager."""

from __future__ import annotations

import difflib
import json
from pathlib import Path
from typing import Any, Iterable, NoReturn

import click
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from supercrew.backup import BackupError, BackupManager, BackupOptions
from supercrew.cli_support import CLIState, backup_row, summary_metrics
from supercrew.components import (
    ComponentError,
    ComponentRegistry,
    SettingsManager,
    default_registry,
)
from supercrew.config import ConfigError, ConfigManager, CrewConfig, resolve_with_precedence
from supercrew.installer import BACKUP_NAME, InstallationSummary, Installer
from supercrew.metadata import MetadataError, MetadataStore
from supercrew.metadata.store import format_bytes

console = Console()

METADATA_SECTIONS = (
    "framework",
    "components",
    "documents",
    "features",
    "installation",
    "inventory",
    "integrity",
)


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> NoReturn:
    """Emit a standardized error and terminate the command appropriately.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """

    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _emit_message(message: Any, *, mode: str, quiet: bool, summary_only: bool) -> None:
    """Conditionally print CLI output according to quiet/summary settings.

    Args:
        message: Renderable or string to emit.
        mode: Output mode identifier (`detail`, `summary`, `warning`, or `error`).
        quiet: Whether quiet mode is active.
        summary_only: Whether only summary lines should be emitted.
    """

    if quiet and mode != "error":
        return

    important_modes = {"summary", "warning", "error"}
    if summary_only and mode not in important_modes:
        return

    console.print(message)


def _format_summary_line(command: str, root: Path | str, metrics: dict[str, Any]) -> str:
    """Return a consistent summary line for CLI commands.

    Args:
        command: Command name to include in the summary.
        root: Installation directory relevant to the command.
        metrics: Ordered mapping of metric names to values.

    Returns:
        str: Rich-formatted summary string.
    """

    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {root}: {parts}.[/green]"


def _assign_nested(target: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a nested value within a dictionary for a dotted path.

    Args:
        target: Mapping to mutate in-place.
        path: Sequence of keys representing the nested location.
        value: Value to assign at the nested location.

    Raises:
        ConfigError: If a non-mapping value is encountered along the path.
    """

    node = target
    for segment in path[:-1]:
        existing = node.get(segment)
        if existing is None:
            existing = {}
            node[segment] = existing
        elif not isinstance(existing, dict):
            raise ConfigError(
                f"Cannot assign into '{segment}' because it is not a mapping in the config file."
            )
        node = existing
    node[path[-1]] = value


def _emit(state: CLIState, message: Any, mode: str = "detail") -> None:
    _emit_message(message, mode=mode, quiet=state.quiet, summary_only=state.summary_only)


def _fail(state: CLIState, exc: Exception, code: str) -> NoReturn:
    _handle_cli_error(str(exc), code=code, json_output=state.json_output, original=exc)


def _load_state(ctx: click.Context) -> CLIState:
    """Return the shared CLI state with configuration loaded."""
    state = ctx.ensure_object(CLIState)
    try:
        state.load()
    except ConfigError as exc:
        _fail(state, exc, "config_error")
    except ValueError as exc:
        _fail(state, exc, "invalid_options")
    return state


def _registry(state: CLIState) -> ComponentRegistry:
    return default_registry(state.source_dir)


def _installed_names(registry: ComponentRegistry, install_dir: Path) -> list[str]:
    return [
        component.name
        for component in registry
        if component.get_installed_version(install_dir) is not None
    ]


def _order_names(
    registry: ComponentRegistry, requested: Iterable[str], *, expand: bool
) -> list[str]:
    """Order requested names dependencies first.

    Unknown names are kept at the end so the installer reports them as failures.

    Args:
        registry: Components available by name.
        requested: Names given on the command line.
        expand: Include dependencies that were not requested.
    """
    requested = list(dict.fromkeys(requested))
    known = [name for name in requested if name in registry]
    unknown = [name for name in requested if name not in registry]
    ordered = registry.resolve_dependencies(known)
    if not expand:
        ordered = [name for name in ordered if name in known]
    return ordered + unknown


def _installer(state: CLIState, registry: ComponentRegistry) -> Installer:
    return Installer(
        state.install_dir,
        registry,
        dry_run=state.dry_run,
        compression=state.config.backup.compression,
    )


def _report(command: str, state: CLIState, summary: InstallationSummary, ok: bool) -> None:
    """Render an installer summary and fail the command when components failed."""
    payload = summary.to_payload()
    payload["install_dir"] = str(state.install_dir)

    if state.json_output:
        if not ok:
            _handle_cli_error(
                f"{command} failed for: {', '.join(summary.failed)}",
                code="component_failed",
                json_output=True,
                details=payload,
            )
        console.print_json(data=payload)
        return

    for name in summary.planned:
        _emit(state, f"[yellow]Would {command} {name}[/yellow]")
    for verb, names in (
        ("Installed", summary.installed),
        ("Updated", summary.updated),
        ("Uninstalled", summary.uninstalled),
    ):
        for name in names:
            _emit(state, f"[green]{verb} {name}[/green]")
    for name, errors in summary.validation.items():
        if errors:
            _emit(state, f"[yellow]{name}: {'; '.join(errors)}[/yellow]", "warning")
    if summary.backup_path is not None:
        _emit(state, f"Backup: {summary.backup_path}")
    for name in summary.failed:
        _emit(state, f"[red]Failed: {name}[/red]", "error")

    _emit(
        state,
        _format_summary_line(command, state.install_dir, summary_metrics(payload)),
        "summary",
    )
    if not ok:
        raise click.ClickException(f"{command} failed for: {', '.join(summary.failed)}")


def _backup_manager(state: CLIState, **overrides: Any) -> BackupManager:
    options = {
        "install_dir": state.install_dir,
        "backup_dir": state.backup_dir,
        "backup_name": BACKUP_NAME,
        "compress": state.config.backup.compression,
        "verbose": state.verbose,
        "dry_run": state.dry_run,
        "include_config": state.config.backup.include_config,
        "include_logs": state.config.backup.include_logs,
    }
    options.update(overrides)
    return BackupManager(BackupOptions(**options))


def _resolve_archive(state: CLIState, archive: str) -> Path:
    """Accept either a path or a bare archive name inside the backup directory."""
    candidate = Path(archive).expanduser()
    if candidate.exists() or candidate.is_absolute():
        return candidate
    return state.backup_dir / archive


def _metadata_store(state: CLIState) -> MetadataStore:
    store = MetadataStore(state.install_dir)
    if not store.check_installation_exists():
        _handle_cli_error(
            f"No installation metadata found in {state.install_dir}. "
            "Run `crew metadata refresh` first.",
            code="metadata_missing",
            json_output=state.json_output,
        )
    return store


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="supercrew")
@click.option(
    "--install-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Installation directory (defaults to configuration).",
)
@click.option(
    "--source-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory holding the framework templates.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit JSON output.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--dry-run", is_flag=True, help="Preview changes without modifying files.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(
    ctx: click.Context,
    install_dir: Path | None,
    source_dir: Path | None,
    json_output: bool,
    quiet: bool,
    summary_mode: bool,
    dry_run: bool,
    verbose: bool,
) -> None:
    """SuperCrew installs, backs up and tracks framework files in a Claude directory."""
    ctx.obj = CLIState(
        install_dir_option=install_dir,
        source_dir_option=source_dir,
        json_output=json_output,
        quiet=quiet,
        summary_only=summary_mode,
        dry_run=dry_run,
        verbose=verbose,
        explicit_quiet=ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE,
        explicit_summary=ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE,
    )


# Component lifecycle --------------------------------------------------


@cli.command()
@click.argument("components", nargs=-1)
@click.option("--backup", "force_backup", is_flag=True, help="Back up even a fresh target.")
@click.option("--overwrite-claude", is_flag=True, help="Replace CLAUDE.md instead of merging.")
@click.option("--skip-claude", is_flag=True, help="Leave an existing CLAUDE.md untouched.")
@click.pass_context
def install(
    ctx: click.Context,
    components: tuple[str, ...],
    force_backup: bool,
    overwrite_claude: bool,
    skip_claude: bool,
) -> None:
    """Install COMPONENTS (all by default) along with their dependencies."""
    state = _load_state(ctx)
    if overwrite_claude and skip_claude:
        _handle_cli_error(
            "--overwrite-claude cannot be combined with --skip-claude.",
            code="invalid_options",
            json_output=state.json_output,
        )

    registry = _registry(state)
    try:
        names = _order_names(registry, components or registry.list_components(), expand=True)
    except ComponentError as exc:
        _fail(state, exc, "dependency_error")

    installer = _installer(state, registry)
    ok = installer.install_components(
        names,
        {
            "backup": force_backup,
            "claude_overwrite": overwrite_claude,
            "claude_skip": skip_claude,
        },
    )
    _report("install", state, installer.summary(), ok)


@cli.command()
@click.argument("components", nargs=-1)
@click.option(
    "--backup/--no-backup",
    "backup",
    default=None,
    help="Archive the installation first (defaults to backup.auto_backup).",
)
@click.pass_context
def update(ctx: click.Context, components: tuple[str, ...], backup: bool | None) -> None:
    """Update COMPONENTS (all installed ones by default)."""
    state = _load_state(ctx)
    registry = _registry(state)
    requested = components or tuple(_installed_names(registry, state.install_dir))
    if not requested:
        _handle_cli_error(
            f"No installed components found in {state.install_dir}.",
            code="not_installed",
            json_output=state.json_output,
        )

    try:
        names = _order_names(registry, requested, expand=False)
    except ComponentError as exc:
        _fail(state, exc, "dependency_error")

    installer = _installer(state, registry)
    ok = installer.update_components(
        names,
        {"backup": state.config.backup.auto_backup if backup is None else backup},
    )
    _report("update", state, installer.summary(), ok)


@cli.command()
@click.argument("components", nargs=-1)
@click.option(
    "--backup/--no-backup",
    "backup",
    default=None,
    help="Archive the installation first (defaults to backup.auto_backup).",
)
@click.pass_context
def uninstall(ctx: click.Context, components: tuple[str, ...], backup: bool | None) -> None:
    """Remove COMPONENTS (everything installed by default).

    Only files the framework ships are removed. Uninstalling everything also
    drops the metadata and installation registry files.
    """
    state = _load_state(ctx)
    registry = _registry(state)
    full = not components
    requested = components or tuple(_installed_names(registry, state.install_dir))
    if not requested:
        _handle_cli_error(
            f"No installed components found in {state.install_dir}.",
            code="not_installed",
            json_output=state.json_output,
        )

    try:
        names = _order_names(registry, requested, expand=False)
    except ComponentError as exc:
        _fail(state, exc, "dependency_error")

    installer = _installer(state, registry)
    ok = installer.uninstall_components(
        names,
        {"backup": state.config.backup.auto_backup if backup is None else backup},
    )

    if full and ok and not state.dry_run:
        try:
            MetadataStore(state.install_dir).delete()
            SettingsManager(state.install_dir).path.unlink(missing_ok=True)
        except (MetadataError, OSError) as exc:
            _handle_cli_error(
                f"Failed to remove installation records: {exc}",
                code="metadata_error",
                json_output=state.json_output,
                original=exc,
            )
    _report("uninstall", state, installer.summary(), ok)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show installed components, their versions and integrity."""
    state = _load_state(ctx)
    registry = _registry(state)
    install_dir = state.install_dir

    rows: list[dict[str, Any]] = []
    for component in registry:
        rows.append(
            {
                "name": component.name,
                "available": component.version,
                "installed": component.get_installed_version(install_dir),
                "present": component.is_installed(install_dir),
                "strategy": component.get_update_strategy(install_dir),
            }
        )

    store = MetadataStore(install_dir)
    integrity: dict[str, Any] | None = None
    metadata_error = None
    if store.check_installation_exists():
        try:
            snapshot = store.get_integrity_status()
        except MetadataError as exc:
            metadata_error = str(exc)
        else:
            integrity = {
                "status": snapshot.status,
                "total_files": snapshot.total_files,
                "modified_files": snapshot.modified_files,
                "missing_files": snapshot.missing_files,
                "corrupted_files": snapshot.corrupted_files,
                "last_scan": snapshot.last_scan.isoformat(),
            }
    backups = _backup_manager(state).list_backups()

    if state.json_output:
        payload: dict[str, Any] = {
            "install_dir": str(install_dir),
            "components": rows,
            "integrity": integrity,
            "backups": len(backups),
        }
        if metadata_error:
            payload["metadata_error"] = metadata_error
        console.print_json(data=payload)
        return

    table = Table(title=f"SuperCrew installation: {install_dir}")
    table.add_column("Component")
    table.add_column("Installed")
    table.add_column("Available")
    table.add_column("Action")
    for row in rows:
        table.add_row(
            row["name"],
            row["installed"] or "-",
            row["available"],
            row["strategy"],
        )
    _emit(state, table)
    if metadata_error:
        _emit(state, f"[red]Metadata unreadable: {metadata_error}[/red]", "warning")
    elif integrity is None:
        _emit(state, "[yellow]No installation metadata recorded yet.[/yellow]", "warning")
    else:
        _emit(state, f"Integrity: {integrity['status']} ({integrity['total_files']} files tracked)")

    installed = sum(1 for row in rows if row["installed"])
    _emit(
        state,
        _format_summary_line(
            "status",
            install_dir,
            {"installed": installed, "available": len(rows), "backups": len(backups)},
        ),
        "summary",
    )


# Backups --------------------------------------------------------------


@cli.group()
def backup() -> None:
    """Create, inspect and restore installation archives."""


@backup.command("create")
@click.option(
    "--name", "backup_name", default=BACKUP_NAME, show_default=True, help="Archive prefix."
)
@click.option(
    "--compress",
    type=click.Choice(["none", "gzip", "bzip2"]),
    default=None,
    help="Compression (defaults to backup.compression).",
)
@click.option("--description", default="", help="Label appended to the archive name.")
@click.option("--include-logs", is_flag=True, help="Archive log files too.")
@click.option("--no-config", is_flag=True, help="Leave .crew/config out of the archive.")
@click.pass_context
def backup_create(
    ctx: click.Context,
    backup_name: str,
    compress: str | None,
    description: str,
    include_logs: bool,
    no_config: bool,
) -> None:
    """Archive the installation directory."""
    state = _load_state(ctx)
    overrides: dict[str, Any] = {"backup_name": backup_name, "description": description}
    if compress is not None:
        overrides["compress"] = compress
    if include_logs:
        overrides["include_logs"] = True
    if no_config:
        overrides["include_config"] = False
    manager = _backup_manager(state, **overrides)

    try:
        archive = manager.create()
    except BackupError as exc:
        _fail(state, exc, "backup_error")

    if state.dry_run:
        if state.json_output:
            console.print_json(data={"path": str(archive), "dry_run": True})
        else:
            _emit(state, f"[yellow]Would create {archive}[/yellow]", "summary")
        return

    info = manager.get_backup_info(archive)
    if state.json_output:
        console.print_json(data=info.to_payload())
        return
    _emit(state, f"[green]Backup created: {archive}[/green]", "summary")
    _emit(state, f"Size: {format_bytes(info.size)}, files: {info.file_count}")


@backup.command("list")
@click.pass_context
def backup_list(ctx: click.Context) -> None:
    """List archives in the backup directory, newest first."""
    state = _load_state(ctx)
    backups = _backup_manager(state).list_backups()

    if state.json_output:
        console.print_json(data={"backups": [info.to_payload() for info in backups]})
        return
    if not backups:
        _emit(state, f"[yellow]No backups found in {state.backup_dir}.[/yellow]", "summary")
        return

    table = Table(title=f"Backups in {state.backup_dir}")
    for column in ("Name", "Created", "Size", "Files", "Description"):
        table.add_column(column)
    for info in backups:
        table.add_row(*backup_row(info))
    _emit(state, table)


@backup.command("info")
@click.argument("archive")
@click.pass_context
def backup_info(ctx: click.Context, archive: str) -> None:
    """Describe ARCHIVE, given as a path or a name in the backup directory."""
    state = _load_state(ctx)
    info = _backup_manager(state).get_backup_info(_resolve_archive(state, archive))
    if not info.exists:
        _handle_cli_error(
            f"Backup file not found: {info.path}",
            code="backup_not_found",
            json_output=state.json_output,
        )

    if state.json_output:
        console.print_json(data=info.to_payload())
        return

    _emit(state, f"[bold]{info.path.name}[/bold]")
    _emit(state, f"Size: {format_bytes(info.size)}")
    _emit(state, f"Files: {info.file_count}")
    if info.created is not None:
        _emit(state, f"Created: {info.created.astimezone().isoformat()}")
    if info.metadata is not None:
        _emit(state, f"Framework version: {info.metadata.framework_version or '-'}")
        for name, version in sorted(info.metadata.components.items()):
            _emit(state, f"  {name}: {version}")
        if info.metadata.description:
            _emit(state, f"Description: {info.metadata.description}")
    if info.error:
        _emit(state, f"[red]{info.error}[/red]", "error")


@backup.command("restore")
@click.argument("archive")
@click.option("--overwrite", is_flag=True, help="Replace files that already exist.")
@click.pass_context
def backup_restore(ctx: click.Context, archive: str, overwrite: bool) -> None:
    """Restore ARCHIVE into the installation directory."""
    state = _load_state(ctx)
    manager = _backup_manager(state, overwrite=overwrite)
    path = _resolve_archive(state, archive)
    try:
        restored = manager.restore(path)
    except BackupError as exc:
        _fail(state, exc, "restore_error")

    if state.json_output:
        console.print_json(
            data={"archive": str(path), "restored": restored, "dry_run": state.dry_run}
        )
        return
    _emit(
        state,
        _format_summary_line(
            "restore", state.install_dir, {"entries": restored, "dry_run": state.dry_run}
        ),
        "summary",
    )


@backup.command("verify")
@click.argument("archive")
@click.pass_context
def backup_verify(ctx: click.Context, archive: str) -> None:
    """Check ARCHIVE against its recorded size and checksum."""
    state = _load_state(ctx)
    path = _resolve_archive(state, archive)
    try:
        metadata = _backup_manager(state).verify(path)
    except BackupError as exc:
        _fail(state, exc, "verification_failed")

    if state.json_output:
        console.print_json(
            data={
                "archive": str(path),
                "valid": True,
                "metadata": metadata.model_dump(mode="json"),
            }
        )
        return
    _emit(state, f"[green]Backup {path.name} verified.[/green]", "summary")


@backup.command("cleanup")
@click.option("--keep", type=int, default=None, help="Archives to keep (defaults to backup.keep).")
@click.option(
    "--older-than",
    "older_than",
    type=int,
    default=None,
    help="Remove archives older than DAYS (defaults to backup.max_age_days).",
)
@click.pass_context
def backup_cleanup(ctx: click.Context, keep: int | None, older_than: int | None) -> None:
    """Remove old archives by count and age."""
    state = _load_state(ctx)
    keep_count = state.config.backup.keep if keep is None else keep
    max_age = state.config.backup.max_age_days if older_than is None else older_than
    removed = _backup_manager(state).cleanup(keep=keep_count, older_than_days=max_age)

    if state.json_output:
        console.print_json(data={"removed": removed, "dry_run": state.dry_run})
        return
    _emit(
        state,
        _format_summary_line(
            "cleanup", state.backup_dir, {"removed": removed, "dry_run": state.dry_run}
        ),
        "summary",
    )


# Metadata -------------------------------------------------------------


@cli.command()
@click.option("--fix", is_flag=True, help="Stop tracking modified and corrupted files.")
@click.option("--verbose", "show_files", is_flag=True, help="List every file that is not clean.")
@click.pass_context
def integrity(ctx: click.Context, fix: bool, show_files: bool) -> None:
    """Hash tracked files and report modifications.

    Exits with status 1 when any file is corrupted.
    """
    state = _load_state(ctx)
    store = _metadata_store(state)
    try:
        result = store.check_file_integrity()
        fixed = store.fix_integrity_issues() if fix and not state.dry_run else []
    except MetadataError as exc:
        _fail(state, exc, "metadata_error")

    problems = {
        key: entry.status for key, entry in result.file_hashes.items() if entry.status != "clean"
    }

    if state.json_output:
        console.print_json(
            data={
                "status": result.status,
                "total_files": result.total_files,
                "clean_files": result.clean_files,
                "modified_files": result.modified_files,
                "missing_files": result.missing_files,
                "corrupted_files": result.corrupted_files,
                "files": problems,
                "fixed": fixed,
            }
        )
    else:
        if show_files:
            for key, status_value in sorted(problems.items()):
                _emit(state, f"[yellow]{status_value}[/yellow] {key}")
        for key in fixed:
            _emit(state, f"No longer tracking {key}")
        colour = {"clean": "green", "warning": "yellow", "critical": "red"}[result.status]
        _emit(
            state,
            f"[{colour}]Integrity {result.status}: {result.clean_files}/{result.total_files} "
            f"clean, {result.modified_files} modified, {result.missing_files} missing, "
            f"{result.corrupted_files} corrupted.[/{colour}]",
            "summary",
        )

    if result.status == "critical":
        ctx.exit(1)


@cli.group()
def metadata() -> None:
    """Inspect and rebuild the unified metadata file."""


@metadata.command("refresh")
@click.pass_context
def metadata_refresh(ctx: click.Context) -> None:
    """Rescan components and documents on disk."""
    state = _load_state(ctx)
    if state.dry_run:
        _emit(state, "[yellow]Dry run: metadata not refreshed.[/yellow]", "summary")
        return
    try:
        snapshot = MetadataStore(state.install_dir).refresh()
    except MetadataError as exc:
        _fail(state, exc, "metadata_error")

    installed = [name for name, meta in snapshot.components.items() if meta.status == "installed"]
    metrics = {
        "components": len(installed),
        "documents": len(snapshot.documents),
        "files": snapshot.installation.total_files,
        "size": format_bytes(snapshot.installation.total_size),
    }
    if state.json_output:
        console.print_json(
            data={"install_dir": str(state.install_dir), **metrics, "installed": installed}
        )
        return
    _emit(state, _format_summary_line("refresh", state.install_dir, metrics), "summary")


@metadata.command("show")
@click.option("--section", type=click.Choice(METADATA_SECTIONS), help="Only show one section.")
@click.pass_context
def metadata_show(ctx: click.Context, section: str | None) -> None:
    """Print the unified metadata file."""
    state = _load_state(ctx)
    store = _metadata_store(state)
    try:
        data = store.load().model_dump(mode="json")
    except MetadataError as exc:
        _fail(state, exc, "metadata_error")
    if section:
        data = data[section]

    if state.json_output:
        console.print_json(data=data)
        return
    _emit(state, Syntax(json.dumps(data, indent=2), "json", word_wrap=True))


@cli.command("update-document")
@click.argument("path")
@click.argument("version")
@click.option("--no-changelog", is_flag=True, help="Do not add a changelog entry.")
@click.pass_context
def update_document(ctx: click.Context, path: str, version: str, no_changelog: bool) -> None:
    """Record VERSION for the tracked document at PATH."""
    state = _load_state(ctx)
    store = _metadata_store(state)
    if state.dry_run:
        _emit(state, f"[yellow]Would set {path} to {version}.[/yellow]", "summary")
        return
    try:
        doc = store.update_document_version(path, version, update_changelog=not no_changelog)
    except MetadataError as exc:
        _fail(state, exc, "document_error")

    key = store.relative_key(path)
    if state.json_output:
        console.print_json(data={"document": key, **doc.model_dump(mode="json")})
        return
    _emit(
        state,
        f"[green]{key}: {doc.previous_version} -> {doc.version}[/green]",
        "summary",
    )


# Configuration --------------------------------------------------------


@cli.group()
def config() -> None:
    """Manage SuperCrew configuration files and overrides."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Args:
        no_env: If True, ignore environment-derived overrides.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must specify a dotted path such as 'backup.keep'.")

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        file_data = manager.load_file_overrides()
        _assign_nested(file_data, segments, parsed_value)
        resolve_with_precedence(defaults=CrewConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(file_data)
    after = manager.read_text().splitlines()

    # The timestamp header always changes; compare the body only.
    diff = [
        line
        for line in difflib.unified_diff(
            [line for line in before if not line.startswith("# Last updated")],
            [line for line in after if not line.startswith("# Last updated")],
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    ]

    if not diff:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


@config.command("edit")
def config_edit() -> None:
    """Open the configuration file in an interactive editor session.

    Raises:
        click.ClickException: If edited content is invalid or cannot be saved.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    original = manager.read_text()
    edited = click.edit(original, extension=".yaml")

    if edited is None:
        console.print("[yellow]Edit cancelled; no changes applied.[/yellow]")
        return

    if edited == original:
        console.print("[yellow]No changes detected.[/yellow]")
        return

    try:
        parsed = yaml.safe_load(edited) or {}
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Invalid YAML: {exc}") from exc

    if not isinstance(parsed, dict):
        raise click.ClickException("Configuration file must contain a top-level mapping.")

    try:
        resolve_with_precedence(defaults=CrewConfig(), file_overrides=parsed)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(parsed)
    console.print("[green]Configuration updated successfully.[/green]")


def main() -> None:
    """Invoke the Click CLI as the console script entry point."""
    cli()


if __name__ == "__main__":
    main()
