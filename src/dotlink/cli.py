"""Command-line interface for dotlink."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import MergedConfig, load_config
from .conflict import ConflictPolicy, RichConflictPrompt
from .errors import ApplyAbortedError, ConfigError, ConfigNotFoundError, DotlinkError
from .logging_config import setup_logging
from .manager import DotlinkManager
from .models import ApplyAction, ApplyResult, Change, ChangeKind, ResourceKind, StatusReport, StatusState
from .packages import HomebrewManager
from .paths import PathProvider
from .state import StateStore
from .status import check_status
from .undo import UndoEngine

app = typer.Typer(help="Declarative dotfile and package reconciliation")
hosts_app = typer.Typer(help="Inspect hosts declared in the configuration")
secrets_app = typer.Typer(help="Inspect declared secrets")
app.add_typer(hosts_app, name="hosts")
app.add_typer(secrets_app, name="secrets")
console = Console()


def _load_manager(config: Path | None, host: str | None, state: Path | None) -> DotlinkManager:
    paths = PathProvider.from_environment()
    config_obj = load_config(config, paths=paths)
    return DotlinkManager(config_obj, host=host, paths=paths, state_path=state)


def _state_path(state: Path | None) -> Path:
    return state or PathProvider.from_environment().default_state_path


def _handle_error(exc: Exception, verbose: bool = False) -> None:
    if isinstance(exc, typer.Exit):
        raise exc
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Check write access to the target directories.")
        raise typer.Exit(code=1)
    if isinstance(exc, DotlinkError):
        console.print(f"[red]Error:[/red] {escape(str(exc))}")
        if verbose:
            cause = exc.__cause__
            while cause is not None:
                console.print(f"  [dim]Caused by:[/dim] {escape(str(cause))}")
                cause = cause.__cause__
        if isinstance(exc, ConfigNotFoundError):
            console.print("[yellow]Pass --config with the path to your dotlink.toml.[/yellow]")
        elif isinstance(exc, ConfigError) and "not found in config" in str(exc):
            console.print("[yellow]Run 'dotlink hosts list' to see the declared hosts.[/yellow]")
        raise typer.Exit(code=1)
    raise exc


def _print_changes(changes: Iterable[Change]) -> None:
    for change in changes:
        label = escape(change.description)
        if change.kind is ChangeKind.ADD:
            console.print(f"  [green]+[/green] {change.resource_kind.value}: {label}")
        elif change.kind is ChangeKind.MODIFY:
            reason = f" [dim]({escape(change.reason)})[/dim]" if change.reason else ""
            console.print(f"  [yellow]~[/yellow] {change.resource_kind.value}: {label}{reason}")
        else:
            console.print(f"  [dim]✓ {change.resource_kind.value}: {label}[/dim]")


def _format_apply_results(results: Iterable[ApplyResult]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Kind")
    table.add_column("Resource")
    table.add_column("Action")
    table.add_column("Details", overflow="fold")

    action_styles = {
        ApplyAction.LINKED: "green",
        ApplyAction.INSTALLED: "green",
        ApplyAction.RAN: "green",
        ApplyAction.RENDERED: "green",
        ApplyAction.UNCHANGED: "dim",
        ApplyAction.SKIPPED: "yellow",
        ApplyAction.FAILED: "red",
    }

    for result in results:
        style = action_styles.get(result.action, "white")
        table.add_row(
            result.resource_kind.value,
            escape(result.name),
            f"[{style}]{result.action.value}[/{style}]",
            escape(result.details or ""),
        )

    console.print(table)


def _format_status(report: StatusReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Kind")
    table.add_column("Resource")
    table.add_column("State")
    table.add_column("Details", overflow="fold")

    for entry in report.entries:
        style = "green" if entry.state is StatusState.IN_SYNC else "red"
        if entry.state is StatusState.UNKNOWN:
            style = "yellow"
        table.add_row(
            entry.resource_kind.value,
            escape(entry.name),
            f"[{style}]{entry.state.value}[/{style}]",
            escape(entry.details or ""),
        )

    console.print(table)


def _confirm_continue(result: ApplyResult) -> bool:
    console.print(f"[red]Failed:[/red] {escape(result.name)}: {escape(result.details or '')}")
    return typer.confirm("Continue with the remaining resources?", default=True)


@app.command()
def apply(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    host: str | None = typer.Option(None, "--host", "-H", help="Host to apply (defaults to this machine)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not prompt; back up conflicting files"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would change without touching anything"),
    state: Path | None = typer.Option(None, "--state", help="Path to the state file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging and error causes"),
) -> None:
    """Link dotfiles, install packages and run hooks for a host."""

    setup_logging(verbose)
    try:
        manager = _load_manager(config, host, state)
        changes = manager.diff()
        pending = [change for change in changes if change.is_pending]
        hooks = manager.resolved.hooks

        if not pending and not hooks:
            console.print("[green]No changes to apply.[/green]")
            return

        if pending:
            console.print("[bold]Changes to apply:[/bold]")
            _print_changes(pending)
        if hooks:
            console.print(f"[bold]Hooks to run:[/bold] {', '.join(hook.display_name for hook in hooks)}")

        if dry_run:
            console.print("[yellow]Dry-run mode: no changes were made.[/yellow]")
            return

        if not yes and not typer.confirm("Apply these changes?", default=False):
            console.print("Aborted.")
            return

        if yes:
            policy = ConflictPolicy.unattended()
            report = manager.apply(policy, continue_on_error=lambda _result: True)
        else:
            policy = ConflictPolicy(RichConflictPrompt(console))
            report = manager.apply(policy, continue_on_error=_confirm_continue)

        _format_apply_results(report.results)
        if report.ok:
            console.print("[green]✓ Successfully applied configuration[/green]")
        else:
            console.print(f"[yellow]⚠ Applied with {len(report.failures)} failure(s)[/yellow]")
        console.print(f"[dim]State saved to {escape(str(manager.store.path))}[/dim]")
        if not report.ok:
            raise typer.Exit(code=1)
    except ApplyAbortedError as exc:
        _format_apply_results(exc.report.results)
        _handle_error(exc, verbose)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc, verbose)


@app.command()
def diff(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    host: str | None = typer.Option(None, "--host", "-H", help="Host to compare (defaults to this machine)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging and error causes"),
) -> None:
    """Show what 'apply' would change."""

    setup_logging(verbose)
    try:
        manager = _load_manager(config, host, None)
        changes = manager.diff()
        _print_changes(changes)

        added = sum(1 for change in changes if change.kind is ChangeKind.ADD)
        modified = sum(1 for change in changes if change.kind is ChangeKind.MODIFY)
        if added or modified:
            console.print(f"[bold]{added} to add, {modified} to modify[/bold]")
        else:
            console.print("[green]Everything is up to date.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc, verbose)


@app.command()
def status(
    state: Path | None = typer.Option(None, "--state", help="Path to the state file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging and error causes"),
) -> None:
    """Check recorded resources for drift; exits non-zero when drift is found."""

    setup_logging(verbose)
    try:
        store = StateStore(_state_path(state))
        if not store.path.exists():
            console.print("No state file found. Run 'dotlink apply' first.")
            return

        report = check_status(store.load(), HomebrewManager())
        if not report.entries:
            console.print("No resources recorded.")
            return

        _format_status(report)
        for kind in (ResourceKind.DOTFILE, ResourceKind.PACKAGE):
            total = report.count(kind)
            if total:
                console.print(f"{report.count(kind, in_sync=True)}/{total} {kind.value}s in sync")

        if report.has_drift:
            console.print("[yellow]Drift detected. Run 'dotlink apply' to reconcile.[/yellow]")
            raise typer.Exit(code=1)
        console.print("[green]✓ All resources in sync[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc, verbose)


@app.command()
def undo(
    state: Path | None = typer.Option(None, "--state", help="Path to the state file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging and error causes"),
) -> None:
    """Remove links created by the last apply and restore backups."""

    setup_logging(verbose)
    try:
        report = UndoEngine(StateStore(_state_path(state))).undo()
        if report.nothing_to_undo:
            console.print("Nothing to undo.")
            return

        if report.errors:
            console.print("[yellow]⚠ Undo finished with errors[/yellow]")
        else:
            console.print("[green]✓ Successfully undone last apply[/green]")
        for line in report.summary_lines():
            console.print(f"  {line}")
        for error in report.errors:
            console.print(f"  [red]{escape(error)}[/red]")
        if report.errors:
            raise typer.Exit(code=1)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc, verbose)


@app.command()
def render(
    template: Path = typer.Argument(..., help="Template file to render"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    host: str | None = typer.Option(None, "--host", "-H", help="Host whose variables are used"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging and error causes"),
) -> None:
    """Render a template with a host's variables and print the result."""

    setup_logging(verbose)
    try:
        manager = _load_manager(config, host, None)
        typer.echo(manager.render(template), nl=False)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc, verbose)


@hosts_app.command("list")
def hosts_list(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging and error causes"),
) -> None:
    """List the hosts declared in the configuration."""

    setup_logging(verbose)
    try:
        config_obj = load_config(config, paths=PathProvider.from_environment())
        names = config_obj.host_names()
        if not names:
            console.print("No hosts declared; the base configuration applies everywhere.")
            return
        for name in names:
            host_config = config_obj.hosts[name]
            roles = f" [dim]roles: {', '.join(host_config.roles)}[/dim]" if host_config.roles else ""
            parent = f" [dim]inherits: {host_config.inherits}[/dim]" if host_config.inherits else ""
            console.print(f"  {escape(name)}{roles}{parent}")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc, verbose)


def _describe_host(merged: MergedConfig) -> None:
    console.print(f"[bold]Host:[/bold] {escape(merged.host_name or 'base configuration')}")
    console.print(f"[bold]Roles:[/bold] {', '.join(merged.roles) or '(none)'}")

    if merged.variables:
        console.print("[bold]Variables:[/bold]")
        for key, value in sorted(merged.variables.items()):
            console.print(f"  {escape(key)} = {escape(value)}")

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Kind")
    table.add_column("Resource")
    table.add_column("Applies")

    for dotfile in merged.dotfiles:
        label = f"{dotfile.source} → {dotfile.target}"
        if dotfile.is_template:
            label += " (template)"
        table.add_row("dotfile", escape(label), _applies(dotfile.applies_to(merged.roles)))
    for package in merged.packages:
        table.add_row("package", escape(f"{package.name} ({package.kind.value})"), _applies(package.applies_to(merged.roles)))
    for hook in merged.hooks:
        table.add_row("hook", escape(hook.display_name), _applies(hook.applies_to(merged.roles)))
    console.print(table)

    if merged.tools:
        console.print("[bold]Tools:[/bold] " + ", ".join(f"{name}@{version}" for name, version in sorted(merged.tools.items())))


def _applies(applies: bool) -> str:
    return "[green]yes[/green]" if applies else "[dim]skipped for roles[/dim]"


@hosts_app.command("show")
def hosts_show(
    name: str = typer.Argument(..., help="Host to show"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging and error causes"),
) -> None:
    """Show the merged configuration for a host."""

    setup_logging(verbose)
    try:
        config_obj = load_config(config, paths=PathProvider.from_environment())
        _describe_host(config_obj.resolve(name))
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc, verbose)


@secrets_app.command("list")
def secrets_list(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to dotlink.toml"),
    host: str | None = typer.Option(None, "--host", "-H", help="Host whose secrets are listed"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging and error causes"),
) -> None:
    """List declared secrets and whether their environment variable is set."""

    setup_logging(verbose)
    try:
        merged = load_config(config, paths=PathProvider.from_environment()).resolve(host)
        if not merged.secrets:
            console.print("No secrets declared.")
            return

        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Name")
        table.add_column("Description", overflow="fold")
        table.add_column("Environment")
        for name, secret in sorted(merged.secrets.items()):
            if secret.env_var is None:
                env = "[dim]-[/dim]"
            elif secret.env_var in os.environ:
                env = f"[green]{escape(secret.env_var)} (set)[/green]"
            else:
                env = f"[yellow]{escape(secret.env_var)} (unset)[/yellow]"
            table.add_row(escape(name), escape(secret.description or ""), env)
        console.print(table)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc, verbose)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()
