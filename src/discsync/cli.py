"""CLI interface for discsync."""

from __future__ import annotations

import asyncio
import json

import typer
from pydantic import SecretStr
from rich.console import Console
from rich.table import Table

from discsync.config import AppConfig, ensure_dirs, load_config, save_config, validate_config
from discsync.errors import DiscsyncError
from discsync.logging import setup_logging

app = typer.Typer(
    name="discsync",
    help="Sync a Discogs collection and its cover art into a records store.",
    add_completion=False,
)
console = Console()


def main() -> None:
    """Entry point that wraps ``app()`` with a clean KeyboardInterrupt handler."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("Interrupted.")
        raise SystemExit(130) from None


def _load(*, env: bool = True) -> AppConfig:
    try:
        return load_config(env=env)
    except DiscsyncError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(1) from None


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def sync() -> None:
    """Reconcile the Discogs collection into the records store once."""
    from discsync.sync.runner import run_sync

    cfg = _load()
    try:
        validate_config(cfg)
    except DiscsyncError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        raise typer.Exit(1) from None

    ensure_dirs()
    setup_logging(cfg.general.log_level, cfg.log_dir)

    try:
        remote, stats = asyncio.run(run_sync(cfg))
    except Exception as exc:
        # already logged by the engine; keep the traceback out of the terminal
        console.print(f"[red]Sync failed:[/red] {exc}")
        raise typer.Exit(1) from None

    console.print(f"[green]Sync complete.[/green] {len(remote)} releases in the Discogs collection.")
    if stats is not None:
        console.print(
            f"  new records: {stats.new_records}   covers uploaded: {stats.covers_uploaded}"
            f"   covers repaired: {stats.covers_repaired}   cover failures: {stats.cover_failures}"
        )


@app.command()
def records(
    limit: int = typer.Option(50, "--limit", "-n", help="Number of records to show (0 = all)"),
) -> None:
    """List records stored in the configured records store."""
    from discsync.sync.runner import open_record_store

    cfg = _load()

    async def _fetch():
        async with open_record_store(cfg) as store:
            return await store.list_records(limit=limit or None)

    try:
        rows = asyncio.run(_fetch())
    except DiscsyncError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from None

    if not rows:
        console.print("[dim]No records stored yet.[/dim]")
        return

    table = Table(title="Records")
    table.add_column("Release", justify="right")
    table.add_column("Artist")
    table.add_column("Title")
    table.add_column("Cover")
    for r in rows:
        cover = "[green]stored[/green]" if r.asset_url else ("[yellow]remote[/yellow]" if r.image_url else "[dim]—[/dim]")
        table.add_row(str(r.release_id), r.artist, r.title, cover)
    console.print(table)


@app.command()
def status(
    limit: int = typer.Option(5, "--limit", "-n", help="Number of sync runs to show"),
) -> None:
    """Show the most recent sync runs."""
    from discsync.storage.database import Database

    cfg = _load()
    if not cfg.db_path.exists():
        console.print("[yellow]No sync history yet.[/yellow] Run [bold]discsync sync[/bold] first.")
        raise typer.Exit(1)

    async def _fetch():
        async with Database(cfg.db_path) as db:
            return await db.list_sync_runs(limit=limit)

    runs = asyncio.run(_fetch())
    if not runs:
        console.print("[dim]No sync runs recorded.[/dim]")
        return

    state_colors = {"completed": "green", "running": "blue", "failed": "red"}
    console.print()
    for run in runs:
        color = state_colors.get(run.status, "white")
        console.print(f"  [bold]#{run.id}[/bold]  [{color}]{run.status}[/{color}]  started {run.started_at:%Y-%m-%d %H:%M:%S}")
        if run.stats_json:
            stats = json.loads(run.stats_json)
            parts = [f"{k}: {v}" for k, v in stats.items()]
            console.print(f"      [dim]{', '.join(parts)}[/dim]")
        if run.error_message:
            console.print(f"      [red]{run.error_message}[/red]")
    console.print()


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def _mask(secret: SecretStr) -> str:
    """Return '***' if the secret is non-empty, else '(not set)'."""
    return "[bold]***[/bold]" if secret.get_secret_value() else "[dim](not set)[/dim]"


config_app = typer.Typer(name="config", help="View and modify configuration.", add_completion=False)
app.add_typer(config_app)


@config_app.command(name="show")
def config_show() -> None:
    """Show current configuration (secrets are masked)."""
    cfg = _load()

    console.print("\n[bold]Current Configuration[/bold]")
    for section_name in AppConfig.model_fields:
        section = getattr(cfg, section_name)
        console.print(f"\n[bold cyan]\\[{section_name}][/bold cyan]")
        for key, value in section.model_dump(mode="python").items():
            if isinstance(value, SecretStr):
                shown = _mask(value)
            elif value == "":
                shown = "[dim](not set)[/dim]"
            else:
                shown = str(value)
            console.print(f"  {key} = {shown}")
    console.print()


@config_app.command(name="set")
def config_set(
    key: str = typer.Argument(help="Dotted key, e.g. discogs.user"),
    value: str = typer.Argument(help="New value"),
) -> None:
    """Set a configuration value (e.g. discsync config set store.backend sqlite)."""
    parts = key.split(".", maxsplit=1)
    if len(parts) != 2:
        console.print("[red]Key must be in section.field format (e.g. discogs.user).[/red]")
        raise typer.Exit(1)

    section_name, field_name = parts
    # file values only, so env secrets never get written to disk
    cfg = _load(env=False)

    if section_name not in AppConfig.model_fields:
        console.print(f"[red]Unknown section:[/red] {section_name}")
        console.print(f"[dim]Valid sections: {', '.join(AppConfig.model_fields)}[/dim]")
        raise typer.Exit(1)

    section_model = getattr(cfg, section_name)
    fields = type(section_model).model_fields
    if field_name not in fields:
        console.print(f"[red]Unknown field:[/red] {section_name}.{field_name}")
        console.print(f"[dim]Valid fields: {', '.join(fields)}[/dim]")
        raise typer.Exit(1)

    section_data = section_model.model_dump(mode="python")
    section_data[field_name] = value
    try:
        new_section = type(section_model).model_validate(section_data)
    except ValueError as exc:
        console.print(f"[red]Invalid value:[/red] {exc}")
        raise typer.Exit(1) from None

    setattr(cfg, section_name, new_section)
    save_config(cfg)

    display_val = "***" if isinstance(getattr(new_section, field_name), SecretStr) else getattr(new_section, field_name)
    console.print(f"[green]Set[/green] {key} = {display_val}")
