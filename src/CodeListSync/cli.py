"""Typer-based CLI for CodeListSync with Pydantic v2 configuration."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

import typer
from bs4 import BeautifulSoup
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from CodeListSync.config import (
    SyncConfig,
    export_config_schema,
    load_config,
    validate_config_file,
)
from CodeListSync.http import build_retrying, create_client, fetch_document
from CodeListSync.models import ArtifactRecord
from CodeListSync.registry import ChangeResult
from CodeListSync.report import build_link_report, write_link_report
from CodeListSync.synchronizer import SyncResult, Synchronizer

console = Console()
app = typer.Typer(help="CodeListSync: mirror the EN16931 code-list registry")

CONFIG_ENVVAR = "CODELIST_SYNC_CONFIG"


def _setup_logging(verbose: bool) -> None:
    """Setup logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _overrides(
    registry_url: Optional[str] = None,
    base_path: Optional[str] = None,
    yes: bool = False,
) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {"registry_url": registry_url, "download_base_path": base_path}
    if yes:
        overrides["auto_confirm_downloads"] = True
    return overrides


def _load(config: Optional[str], overrides: Optional[Dict[str, Any]] = None) -> SyncConfig:
    cfg = load_config(path=config, cli_overrides=overrides)
    console.print(
        Panel(
            f"[bold green]✓ Config loaded[/bold green]\n"
            f"Hash: {cfg.config_hash()[:8]}...\n"
            f"Catalog: {cfg.registry_url}\n"
            f"Downloads: {cfg.download_base_path}\n"
            f"Registry: {cfg.registry_path}",
            title="CodeListSync",
        )
    )
    return cfg


def _format_size(size: float) -> str:
    if size <= 0:
        return "?"
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{size:.1f} GB"


def _records_table(records: Sequence[ArtifactRecord], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Effective", style="cyan")
    table.add_column("Version", style="magenta")
    table.add_column("Category", style="green")
    table.add_column("File")
    table.add_column("Size", justify="right")
    for record in records:
        table.add_row(
            record.effective_date.isoformat() if record.effective_date else "",
            record.version or "",
            record.category,
            record.decoded_filename + (" [bold](latest)[/bold]" if record.is_latest_release else ""),
            _format_size(record.content_length),
        )
    return table


def _changes_table(changes: Sequence[ChangeResult], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Change", style="yellow")
    table.add_column("Category", style="green")
    table.add_column("File")
    table.add_column("Size", justify="right")
    table.add_column("Reason", style="dim")
    for change in changes:
        table.add_row(
            change.change.value,
            change.record.category,
            change.record.decoded_filename,
            _format_size(change.record.content_length),
            change.reason,
        )
    return table


def _confirm_downloads(changes: Sequence[ChangeResult]) -> bool:
    """Show the pending transfers and ask before downloading."""
    console.print(_changes_table(changes, f"{len(changes)} file(s) to download"))
    total = sum(change.record.content_length for change in changes)
    console.print(f"[cyan]Total size: {_format_size(total)}[/cyan]")
    return typer.confirm("Proceed with download?", default=False)


def _summary_panel(result: SyncResult) -> Panel:
    status = "[bold green]Cycle complete[/bold green]"
    if result.cancelled:
        status = "[bold yellow]Download cancelled[/bold yellow]"
    elif not result.ok:
        status = "[bold yellow]Cycle complete with failures[/bold yellow]"
    return Panel(
        f"{status}\n"
        f"Discovered: {result.discovered}\n"
        f"New: {result.new}\n"
        f"Changed: {result.changed}\n"
        f"Unchanged: {result.unchanged}\n"
        f"Downloaded: {result.succeeded}\n"
        f"Failed: {result.failed}",
        title="Execution Summary",
    )


@app.command()
def run(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar=CONFIG_ENVVAR,
    ),
    registry_url: Optional[str] = typer.Option(None, "--registry-url", help="Catalog page URL"),
    base_path: Optional[str] = typer.Option(None, "--base-path", help="Download directory"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Download without asking"),
    watch: bool = typer.Option(False, "--watch", help="Keep running on a schedule"),
    initial_delay: float = typer.Option(0.0, "--initial-delay", help="Seconds before the first cycle"),
    interval: Optional[float] = typer.Option(
        None, "--interval", help="Seconds between cycles (default: check_interval_seconds)"
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Run analyze, compare and download once, or on a schedule with --watch."""
    _setup_logging(verbose)

    try:
        cfg = _load(config, _overrides(registry_url, base_path, yes))
        with create_client(cfg.http) as client:
            with Synchronizer(cfg, client=client, confirm=_confirm_downloads) as sync:
                if watch:
                    interval_s = interval if interval is not None else cfg.check_interval_seconds
                    console.print(
                        f"[cyan]Scheduled mode: first cycle in {initial_delay}s, "
                        f"then every {interval_s}s (Ctrl+C to stop)[/cyan]"
                    )
                    sync.watch(
                        initial_delay,
                        interval,
                        on_cycle=lambda result: console.print(_summary_panel(result)),
                    )
                    console.print("[yellow]Stopped[/yellow]")
                else:
                    console.print(_summary_panel(sync.run_once()))

    except KeyboardInterrupt:
        console.print("[yellow]Stopped[/yellow]")
    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        if verbose:
            raise
        raise typer.Exit(code=1)


@app.command()
def analyze(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar=CONFIG_ENVVAR,
    ),
    registry_url: Optional[str] = typer.Option(None, "--registry-url", help="Catalog page URL"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Phase 1: list the catalog's artifacts with their resolved metadata."""
    _setup_logging(verbose)

    try:
        cfg = _load(config, _overrides(registry_url))
        with create_client(cfg.http) as client:
            with Synchronizer(cfg, client=client) as sync:
                records = sync.analyze()
                console.print(_records_table(records, f"{len(records)} artifact(s)"))
                if sync.analyzer.inventory_path is not None:
                    console.print(f"[green]✓ Inventory written to {sync.analyzer.inventory_path}[/green]")

    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        if verbose:
            raise
        raise typer.Exit(code=1)


@app.command()
def compare(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar=CONFIG_ENVVAR,
    ),
    registry_url: Optional[str] = typer.Option(None, "--registry-url", help="Catalog page URL"),
    base_path: Optional[str] = typer.Option(None, "--base-path", help="Download directory"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Phases 1-2: show which artifacts are new or changed, without downloading."""
    _setup_logging(verbose)

    try:
        cfg = _load(config, _overrides(registry_url, base_path))
        with create_client(cfg.http) as client:
            with Synchronizer(cfg, client=client) as sync:
                records = sync.analyze()
                changes = sync.compare(records)
                if changes:
                    console.print(_changes_table(changes, f"{len(changes)} file(s) need download"))
                else:
                    console.print("[green]✓ Everything is up to date[/green]")
                console.print(f"[cyan]Unchanged: {len(records) - len(changes)}[/cyan]")

    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        if verbose:
            raise
        raise typer.Exit(code=1)


@app.command()
def download(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar=CONFIG_ENVVAR,
    ),
    registry_url: Optional[str] = typer.Option(None, "--registry-url", help="Catalog page URL"),
    base_path: Optional[str] = typer.Option(None, "--base-path", help="Download directory"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Download without asking"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Phases 1-3: download new and changed artifacts and list each outcome."""
    _setup_logging(verbose)

    try:
        cfg = _load(config, _overrides(registry_url, base_path, yes))
        with create_client(cfg.http) as client:
            with Synchronizer(cfg, client=client, confirm=_confirm_downloads) as sync:
                result = sync.run_once()

        table = Table(title="Downloads")
        table.add_column("File")
        table.add_column("Category", style="green")
        table.add_column("Status")
        for record, status in result.outcomes:
            style = "green" if status.succeeded else "red"
            table.add_row(record.decoded_filename, record.category, f"[{style}]{status.label}[/{style}]")
        if result.outcomes:
            console.print(table)
        console.print(_summary_panel(result))
        if not result.ok:
            raise typer.Exit(code=1)

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        if verbose:
            raise
        raise typer.Exit(code=1)


@app.command()
def links(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar=CONFIG_ENVVAR,
    ),
    output: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Report file (default: <csv_output_base_path>/registry-links-analysis.txt)"
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Write a categorised report of every link on the catalog page."""
    _setup_logging(verbose)

    try:
        cfg = _load(config)
        with create_client(cfg.http) as client:
            html, final_url = fetch_document(client, cfg.registry_url, retrying=build_retrying(cfg.http))
        report = build_link_report(BeautifulSoup(html, "lxml"), final_url)
        target = output or Path(cfg.output.csv_output_base_path) / "registry-links-analysis.txt"
        write_link_report(report, target)

        table = Table(title=f"{report.total} links ({report.unique} unique)")
        table.add_column("Bucket", style="cyan")
        table.add_column("Links", justify="right")
        for bucket, count in report.counts().items():
            table.add_row(bucket, str(count))
        console.print(table)
        console.print(f"[green]✓ Report written to {target}[/green]")

    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        if verbose:
            raise
        raise typer.Exit(code=1)


@app.command()
def print_config(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar=CONFIG_ENVVAR,
    ),
    raw: bool = typer.Option(False, "--raw", help="Raw JSON"),
) -> None:
    """Print merged effective config."""
    try:
        cfg = load_config(path=config)
        data = cfg.model_dump(mode="json")

        if raw:
            typer.echo(json.dumps(data, indent=2))
        else:
            console.print(Panel(json.dumps(data, indent=2), title="CodeListSync Config", expand=False))

    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def validate_config(
    config: str = typer.Argument(..., help="Path to config file"),
) -> None:
    """Validate a config file."""
    try:
        validate_config_file(config)
        console.print("[green]✓ Config valid[/green]")
    except Exception as e:
        console.print(f"[red]✗ Invalid: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def schema(
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Save schema to file"),
) -> None:
    """Export JSON Schema for SyncConfig."""
    try:
        schema_data = export_config_schema()

        if output:
            output.write_text(json.dumps(schema_data, indent=2))
            console.print(f"[green]✓ Schema written to {output}[/green]")
        else:
            console.print(Panel(json.dumps(schema_data, indent=2), title="JSON Schema", expand=False))

    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)


def main() -> None:
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
