"""Command-line interface for mboxkit.

Provides commands for inspecting, threading, splitting and merging mbox
archives, plus configuration validation.

Usage:
    python -m mboxkit info inbox.mbox
    python -m mboxkit threads inbox.mbox --limit 20
    python -m mboxkit split inbox.mbox out/ --by month
    python -m mboxkit merge all.mbox a.mbox b.mbox
    python -m mboxkit validate-config
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from mboxkit.config import load_config, validate_config_file
from mboxkit.core.logging import configure_logging

if TYPE_CHECKING:
    from mboxkit.config_schema import AppConfig
    from mboxkit.engine.archive_engine import ArchiveEngine
    from mboxkit.engine.partition import PartitionStrategy

console = Console()

SPLIT_MODES = ("count", "size", "day", "month", "year", "domain")


def _load_cli_config(config_path: Path | None) -> AppConfig:
    """Load config for a command. Prints an actionable error and exits on failure."""
    from mboxkit.config import get_config
    from mboxkit.core.errors import ConfigLoadError, ConfigValidationError

    try:
        return load_config(config_path) if config_path else get_config()
    except (ConfigLoadError, ConfigValidationError) as e:
        console.print(
            f"[red]Config error:[/red] {e}\n\n"
            "Fix the file, or run [cyan]validate-config[/cyan] for details."
        )
        sys.exit(1)


@contextmanager
def _progress_bar(engine: ArchiveEngine) -> Iterator[None]:
    """Show a rich progress bar fed by the engine's progress events."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting...", total=1.0)

        def on_event(event) -> None:
            progress.update(task, description=event.status, completed=event.fraction)

        unsubscribe = engine.progress.subscribe(on_event)
        try:
            yield
        finally:
            unsubscribe()


def _run(action: Callable[[], object]) -> object:
    """Run an engine action, turning mboxkit errors into exit code 1."""
    from mboxkit.core.errors import MboxError

    try:
        return action()
    except MboxError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)
    except ValueError as e:
        console.print(f"[red]Invalid argument:[/red] {e}")
        sys.exit(1)


def _make_engine(ctx: click.Context) -> ArchiveEngine:
    from mboxkit.engine.archive_engine import ArchiveEngine

    return ArchiveEngine(config=ctx.obj["config"])


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: $MBOXKIT_CONFIG_PATH or config/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, config_path: Path | None) -> None:
    """mboxkit - parse, thread, split and merge mbox archives."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    # validate-config reports config problems itself
    if ctx.invoked_subcommand == "validate-config":
        configure_logging(log_level="DEBUG" if debug else "WARNING", json_output=False)
        return

    config = _load_cli_config(config_path)
    ctx.obj["config"] = config

    log_level = "DEBUG" if debug else config.logging.level
    configure_logging(log_level=log_level, json_output=config.logging.json_output)


@cli.command("validate-config")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/config.yaml)",
)
@click.pass_context
def validate_config(ctx: click.Context, config_path: Path | None) -> None:
    """Validate the configuration file.

    Checks that config.yaml exists and passes Pydantic schema validation.
    Reports specific errors for invalid fields.
    """
    config_path = config_path or ctx.obj.get("config_path")
    console.print(f"Validating config: [cyan]{config_path or 'config/config.yaml'}[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


@cli.command("info")
@click.argument("archive", type=click.Path(path_type=Path))
@click.pass_context
def info(ctx: click.Context, archive: Path) -> None:
    """Summarize an archive: messages, dropped chunks, attachments, dates."""
    engine = _make_engine(ctx)
    with _progress_bar(engine):
        result = _run(lambda: engine.parse_file(archive))

    messages = result.messages
    dates = [m.parsed_date for m in messages if m.parsed_date is not None]
    attachments = sum(m.attachment_count for m in messages)

    table = Table(title=str(archive), show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Messages", str(len(messages)))
    table.add_row("Chunks", str(result.total_chunks))
    table.add_row("Dropped chunks", str(result.dropped_chunks))
    table.add_row("Undated messages", str(len(messages) - len(dates)))
    table.add_row("Attachments", str(attachments))
    if dates:
        table.add_row("First message", min(dates).isoformat())
        table.add_row("Last message", max(dates).isoformat())
    console.print(table)


@cli.command("threads")
@click.argument("archive", type=click.Path(path_type=Path))
@click.option("--limit", default=20, type=int, help="Number of threads to show (default: 20)")
@click.pass_context
def threads(ctx: click.Context, archive: Path, limit: int) -> None:
    """List conversations grouped by normalized subject, largest first."""
    engine = _make_engine(ctx)
    with _progress_bar(engine):
        result = _run(lambda: engine.parse_file(archive))
        found = _run(lambda: engine.detect_threads(result.messages))

    table = Table(title=f"{len(found)} threads in {archive.name}")
    table.add_column("Messages", justify="right")
    table.add_column("Subject")
    table.add_column("Participants", justify="right")
    table.add_column("Date range")

    for thread in found[:limit]:
        date_range = thread.date_range
        span = (
            f"{date_range[0]:%Y-%m-%d} - {date_range[1]:%Y-%m-%d}" if date_range else "Unknown date range"
        )
        table.add_row(
            str(thread.count),
            thread.key or "[dim](no subject)[/dim]",
            str(len(thread.participants)),
            span,
        )
    console.print(table)


def _build_strategy(
    mode: str,
    count: int | None,
    max_bytes: int | None,
    domains: tuple[str, ...],
) -> PartitionStrategy:
    from mboxkit.engine.partition import ByCount, ByDate, BySenderDomain, BySize

    if mode == "count":
        if count is None:
            raise click.UsageError("--by count requires --count")
        return ByCount(count)
    if mode == "size":
        if max_bytes is None:
            raise click.UsageError("--by size requires --max-bytes")
        return BySize(max_bytes)
    if mode == "domain":
        if not domains:
            raise click.UsageError("--by domain requires at least one --domain")
        return BySenderDomain(domains=domains)
    return ByDate(granularity=mode)


@cli.command("split")
@click.argument("archive", type=click.Path(path_type=Path))
@click.argument("output_dir", type=click.Path(file_okay=False, path_type=Path))
@click.option("--by", "mode", type=click.Choice(SPLIT_MODES), required=True, help="Split strategy")
@click.option("--count", type=int, default=None, help="Messages per part (--by count)")
@click.option("--max-bytes", type=int, default=None, help="Estimated size cap per part (--by size)")
@click.option("--domain", "domains", multiple=True, help="Sender domain bucket (--by domain, repeatable)")
@click.pass_context
def split(
    ctx: click.Context,
    archive: Path,
    output_dir: Path,
    mode: str,
    count: int | None,
    max_bytes: int | None,
    domains: tuple[str, ...],
) -> None:
    """Split an archive into several archives."""
    strategy = _run(lambda: _build_strategy(mode, count, max_bytes, domains))
    engine = _make_engine(ctx)
    with _progress_bar(engine):
        paths = _run(lambda: engine.split_file(archive, strategy, output_dir))

    console.print(f"[green]✓[/green] Wrote {len(paths)} archive(s) to [cyan]{output_dir}[/cyan]")
    for path in paths:
        console.print(f"  {path.name}")


@cli.command("merge")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.argument("inputs", nargs=-1, required=True, type=click.Path(path_type=Path))
@click.option(
    "--records/--raw",
    default=False,
    help="Re-parse inputs and write records sorted by date (default: raw concatenation)",
)
@click.option("--dedupe/--no-dedupe", default=None, help="Drop duplicate messages (--records only)")
@click.option("--validate/--no-validate", default=None, help="Reject inputs that are not mbox (raw only)")
@click.pass_context
def merge(
    ctx: click.Context,
    output: Path,
    inputs: tuple[Path, ...],
    records: bool,
    dedupe: bool | None,
    validate: bool | None,
) -> None:
    """Merge INPUTS into OUTPUT."""
    engine = _make_engine(ctx)
    if dedupe is not None:
        engine.config = engine.config.model_copy(
            update={"merge": engine.config.merge.model_copy(update={"remove_duplicates": dedupe})}
        )

    with _progress_bar(engine):
        if records:
            written = _run(lambda: engine.merge_archives(list(inputs), output))
            summary = f"{written} message(s)"
        else:
            merged = _run(lambda: engine.merge_files(list(inputs), output, validate=validate))
            summary = f"{merged} file(s)"

    console.print(f"[green]✓[/green] Merged {summary} into [cyan]{output}[/cyan]")


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
