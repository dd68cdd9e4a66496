"""
CLI interface for the entry store.

Usage:
    telescope record request --tag status:403 --content '{"uri": "/admin"}'
    telescope entries request --tag "status:403|method:POST"
    telescope entries --tag "created:>2024-01-01"
    telescope guess 2/4-22
"""

import json
import os
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .config import get_default_store_path, load_or_create_config
from .dates import parse_date
from .entry_store import EntryStore
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .types import EntryQueryOptions, EntryRecord


# Set TELESCOPE_VERBOSE=1 to enable debug mode via environment
if os.environ.get("TELESCOPE_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"telescope {version('telescope-entries')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


def _get_store_override() -> Optional[Path]:
    return _store_override


app = typer.Typer(
    name="telescope",
    help="Record and search logged application entries.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="TELESCOPE_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Record and search logged application entries."""


# -----------------------------------------------------------------------------
# Common Options
# -----------------------------------------------------------------------------

LimitOption = Annotated[
    Optional[int],
    typer.Option(
        "--limit", "-n",
        help="Maximum results to return (default from config)"
    )
]

BatchOption = Annotated[
    Optional[str],
    typer.Option("--batch-id", help="Batch identifier")
]

FamilyOption = Annotated[
    Optional[str],
    typer.Option("--family-hash", help="Family hash grouping related entries")
]


def _get_store() -> EntryStore:
    """Open the entry store, handling errors gracefully."""
    store_path = get_default_store_path(_get_store_override())
    try:
        config = load_or_create_config(store_path)
        configure_ops_log(store_path)
        entry_store = EntryStore(config.database_path, timezone=config.timezone)
    except (OSError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    return entry_store


def _default_limit() -> int:
    return load_or_create_config(get_default_store_path(_get_store_override())).limit


def _format_entries(entries: list[EntryRecord]) -> str:
    if _get_json_output():
        return json.dumps([e.to_dict() for e in entries], indent=2, ensure_ascii=False)
    if not entries:
        return "No entries found."
    return "\n".join(str(e) for e in entries)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

@app.command()
def record(
    type: Annotated[str, typer.Argument(help="Entry type (request, query, job, ...)")],
    content: Annotated[Optional[str], typer.Option(
        "--content", "-c",
        help="Entry content as a JSON object"
    )] = None,
    tag: Annotated[Optional[list[str]], typer.Option(
        "--tag", "-t",
        help="Tag to attach (repeatable), e.g. status:403"
    )] = None,
    batch_id: BatchOption = None,
    family_hash: FamilyOption = None,
    created_at: Annotated[Optional[str], typer.Option(
        "--created-at",
        help="Creation time, YYYY-MM-DD HH:MM:SS (default: now)"
    )] = None,
    hidden: Annotated[bool, typer.Option(
        "--hidden",
        help="Hide the entry from the index listing"
    )] = False,
):
    """
    Append an entry to the store.

    \b
    Examples:
        telescope record request -t status:403 -t method:POST
        telescope record query -c '{"sql": "select 1"}' --family-hash abc
    """
    try:
        data = json.loads(content) if content else {}
    except json.JSONDecodeError as e:
        typer.echo(f"Error: Invalid JSON content: {e}", err=True)
        raise typer.Exit(1)
    if not isinstance(data, dict):
        typer.echo("Error: Content must be a JSON object", err=True)
        raise typer.Exit(1)

    with _get_store() as entry_store:
        try:
            entry = entry_store.record(
                type,
                data,
                tag or [],
                batch_id=batch_id or "",
                family_hash=family_hash,
                should_display_on_index=not hidden,
                created_at=created_at or "",
            )
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)

    if _get_json_output():
        typer.echo(json.dumps(entry.to_dict(), ensure_ascii=False))
    else:
        typer.echo(entry.uuid)


@app.command()
def entries(
    type: Annotated[Optional[str], typer.Argument(help="Only entries of this type")] = None,
    tag: Annotated[Optional[str], typer.Option(
        "--tag", "-t",
        help="Tag query, e.g. 'status:403|method:POST' or 'created:>2024-01-01'"
    )] = None,
    batch_id: BatchOption = None,
    family_hash: FamilyOption = None,
    before: Annotated[Optional[int], typer.Option(
        "--before", "-b",
        help="Only entries with a sequence below this (pagination cursor)"
    )] = None,
    limit: LimitOption = None,
):
    """
    List entries, newest first.

    \b
    Query syntax for --tag:
        a,b        entries tagged a or b
        a;b        entries matching both sub-queries
        a|b        entries matching either sub-query
        created:>2024-01-01, created:<=2024-03-15 10:00,
        created:2024-03 (whole month), created:!2024-03 (not in March)
    """
    options = EntryQueryOptions(
        batch_id=batch_id,
        tag=tag,
        family_hash=family_hash,
        before_sequence=before,
        limit=limit or _default_limit(),
    )
    with _get_store() as entry_store:
        found = entry_store.get_entries(type, options)
    typer.echo(_format_entries(found))


@app.command()
def show(
    uuid: Annotated[str, typer.Argument(help="Entry uuid")],
):
    """Show one entry with its content."""
    with _get_store() as entry_store:
        entry = entry_store.get(uuid)
    if entry is None:
        typer.echo(f"Not found: {uuid}", err=True)
        raise typer.Exit(1)

    if _get_json_output():
        typer.echo(json.dumps(entry.to_dict(), ensure_ascii=False))
        return
    typer.echo(str(entry))
    typer.echo(json.dumps(entry.content, indent=2, ensure_ascii=False))


@app.command()
def guess(
    text: Annotated[str, typer.Argument(help="Date or date-time text")],
    tz: Annotated[Optional[str], typer.Option(
        "--timezone", "-z",
        help="Zone of the wall-clock time (default from config)"
    )] = None,
):
    """
    Show the format inferred for a date string and the parsed date.

    \b
    Examples:
        telescope guess 220422
        telescope guess "2/4-22 10:30"
        telescope guess 2017-07-25T15:25:16.123456+02:00
    """
    if tz is None:
        tz = load_or_create_config(get_default_store_path(_get_store_override())).timezone

    result = parse_date(text, tz)
    if _get_json_output():
        typer.echo(json.dumps({
            "format": str(result.format) if result.format else None,
            "date": result.value.isoformat() if result.ok else None,
            "error": result.reason,
        }))
    else:
        typer.echo(f"format: {result.format or '-'}")
        if result.ok:
            typer.echo(f"date:   {result.value.isoformat()}")
        else:
            typer.echo(f"error:  {result.reason}")
    if not result.ok:
        raise typer.Exit(1)


@app.command()
def prune(
    before: Annotated[str, typer.Argument(help="Delete entries created before this (YYYY-MM-DD HH:MM:SS)")],
):
    """Delete old entries."""
    with _get_store() as entry_store:
        try:
            count = entry_store.prune(before)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
    typer.echo(f"Pruned {count} entries.")


@app.command()
def config():
    """Show the active configuration."""
    cfg = load_or_create_config(get_default_store_path(_get_store_override()))
    data = {
        "path": str(cfg.path),
        "config": str(cfg.config_path),
        "database": str(cfg.database_path),
        "timezone": cfg.timezone,
        "limit": cfg.limit,
    }
    if _get_json_output():
        typer.echo(json.dumps(data, indent=2))
    else:
        for key, value in data.items():
            typer.echo(f"{key}: {value}")


# -----------------------------------------------------------------------------

def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        store_path = get_default_store_path(_get_store_override())
        log_path = log_exception(e, store_path, context="telescope CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
