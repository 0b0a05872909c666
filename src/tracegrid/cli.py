from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.table import Table

from tracegrid.core.config import DEFAULT_TABLE, ColumnEntry, TablesConfig, load_tables_config
from tracegrid.core.logger import build_logger, log_event
from tracegrid.core.state.db import DEFAULT_DB_PATH, Db, SqliteRelatedSource, ensure_db_initialized, summarize_ingest
from tracegrid.core.state.models import Record
from tracegrid.core.table import TableConfig, render_live
from tracegrid.modules.analytics import default_analytics
from tracegrid.modules.columns import COLUMN_BUILDERS, COLUMN_OPTIONS, ColumnContext, build_columns
from tracegrid.modules.viewers import MaskingPolicy
from tracegrid.utils.format import parse_timestamp, resolve_locale, resolve_timezone
from tracegrid.utils.ids import new_record_id
from tracegrid.utils.io import iter_jsonl

app = typer.Typer(no_args_is_help=True)
console = Console()

RELATED_WORKERS = 4


def _default_config_path() -> Path:
    cwd_candidate = Path.cwd() / "config" / "tables.yaml"
    if cwd_candidate.exists():
        return cwd_candidate

    here = Path(__file__).resolve()
    repo_candidate = here.parents[2] / "config" / "tables.yaml"
    if repo_candidate.exists():
        return repo_candidate

    raise FileNotFoundError("tables.yaml not found. Provide --config (e.g. --config config/tables.yaml).")


def _fail(message: str) -> None:
    console.print(f"[red]✖[/red] {message}")
    raise typer.Exit(code=1)


@app.command()
def ingest(
    source: Path = typer.Argument(..., help="JSON-lines file, one record per line"),
    db_path: Path = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite DB path"),
    log_path: Optional[Path] = typer.Option(None, "--log", help="Write JSON event log to this file"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose logging"),
):
    """
    Load records into the local store (records without id get a generated one).
    """
    logger = build_logger(log_path, verbose=verbose)
    ensure_db_initialized(db_path)

    outcomes: List[str] = []
    try:
        with Db(db_path) as db:
            for _line_no, obj in iter_jsonl(source):
                if not obj.get("id"):
                    created = parse_timestamp(obj.get("createdAt") or obj.get("created_at"))
                    ts_ms = int(created.timestamp() * 1000) if created else None
                    obj = {**obj, "id": new_record_id(ts_ms)}
                outcomes.append(db.upsert_record(Record.from_dict(obj)))
    except (FileNotFoundError, ValueError) as exc:
        log_event(logger, {"event": "ingest.failed", "source": str(source), "error": str(exc)})
        _fail(str(exc))

    counts = summarize_ingest(outcomes)
    log_event(logger, {"event": "ingest.finish", "source": str(source), **counts})
    console.print(
        f"[green]OK[/green] {len(outcomes)} records "
        f"(inserted={counts['inserted']} updated={counts['updated']} unchanged={counts['unchanged']})"
    )


def _column_entries(cfg: TablesConfig, table: str, enrichment: List[str]) -> List[ColumnEntry]:
    entries = list(cfg.table(table).columns)
    configured = {e.options.get("kind") for e in entries if e.column == "enrichment"}
    for kind in enrichment:
        if kind not in configured:
            entries.append(ColumnEntry(column="enrichment", options={"kind": kind}))
    return entries


@app.command()
def show(
    table: str = typer.Option(DEFAULT_TABLE, "--table", "-t", help="Table name from tables.yaml"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to tables.yaml (default: config/tables.yaml)"),
    db_path: Path = typer.Option(DEFAULT_DB_PATH, "--db", help="SQLite DB path"),
    sort: Optional[str] = typer.Option(None, "--sort", help="Column id to sort by"),
    desc: bool = typer.Option(False, "--desc", help="Sort descending"),
    limit: int = typer.Option(50, "--limit", help="Max records (newest first)"),
    related: bool = typer.Option(False, "--related", help="Aggregate feedback across related records"),
    enrichment: List[str] = typer.Option([], "--enrichment", "-e", help="Add an enrichment column (repeatable)"),
    mask: Optional[bool] = typer.Option(None, "--mask/--no-mask", help="Override masking from tables.yaml"),
    timeout: float = typer.Option(10.0, "--timeout", help="Max seconds the live table waits for related feedback before its final render"),
    log_path: Optional[Path] = typer.Option(None, "--log", help="Write JSON event log to this file"),
    verbose: bool = typer.Option(False, "--verbose", help="Verbose logging"),
):
    """
    Render stored records as a table.
    """
    logger = build_logger(log_path, verbose=verbose)
    try:
        cfg = load_tables_config(config_path or _default_config_path())
        entries = _column_entries(cfg, table, enrichment)
    except (FileNotFoundError, ValueError) as exc:
        _fail(str(exc))

    ensure_db_initialized(db_path)
    display = cfg.display
    masking = display.masking if mask is None else mask

    executor = ThreadPoolExecutor(max_workers=RELATED_WORKERS, thread_name_prefix="related")
    try:
        ctx = ColumnContext(
            protect=MaskingPolicy(enabled=masking),
            analytics=default_analytics(),
            locale=resolve_locale(display.locale),
            tz=resolve_timezone(display.timezone),
            currency=display.currency,
            related_source=SqliteRelatedSource(db_path),
            executor=executor,
            with_related_runs=related,
        )
        try:
            config = TableConfig(tuple(build_columns(entries, ctx)))
        except ValueError as exc:
            _fail(str(exc))

        with Db(db_path) as db:
            records = db.list_records(limit=limit)

        if sort:
            try:
                records = config.sort(records, sort, descending=desc)
            except ValueError as exc:
                _fail(str(exc))

        log_event(
            logger,
            {"event": "table.render", "table": table, "rows": len(records), "columns": config.ids, "related": related},
        )
        render_live(config.view(records), console, title=table, timeout=timeout)
    finally:
        # queued reads are cancelled; reads already running finish before the process exits
        executor.shutdown(wait=False, cancel_futures=True)


@app.command()
def columns():
    """
    List available column types.
    """
    t = Table(title="Columns")
    t.add_column("column", style="cyan")
    t.add_column("options")
    for name in sorted(COLUMN_BUILDERS):
        t.add_row(name, COLUMN_OPTIONS.get(name, ""))
    console.print(t)
