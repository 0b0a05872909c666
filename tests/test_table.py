from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from rich.console import Console
from rich.table import Table

from tracegrid.core.column import ColumnSpec
from tracegrid.core.table import TableConfig, render_live
from tracegrid.modules.columns import (
    cost_column,
    duration_column,
    enrichment_column,
    feedback_column,
    input_column,
    name_column,
    status_column,
)

from conftest import StubSource, make_record


def _records():
    return [
        make_record(id="a", name="alpha", cost=None, endedAt="2026-10-17T12:00:02Z"),
        make_record(id="b", name="beta", cost=5, endedAt=None),
        make_record(id="c", name="gamma", cost=2, endedAt="2026-10-17T12:00:01Z"),
    ]


def test_duplicate_column_ids_are_rejected():
    with pytest.raises(ValueError):
        TableConfig((name_column(), name_column("Other")))


def test_columns_are_kept_in_order():
    config = TableConfig([status_column(), name_column(), cost_column()])
    assert config.ids == ["status", "name", "cost"]
    assert isinstance(config.columns, tuple)


def test_sort_by_cost_puts_missing_first():
    config = TableConfig((name_column(), cost_column()))
    out = config.sort(_records(), "cost")
    assert [r.id for r in out] == ["a", "c", "b"]

    out = config.sort(_records(), "cost", descending=True)
    assert [r.id for r in out] == ["b", "c", "a"]


def test_sort_by_duration_treats_running_records_as_lowest():
    config = TableConfig((duration_column(),))
    out = config.sort(_records(), "duration")
    assert [r.id for r in out] == ["b", "c", "a"]


def test_sort_rejects_unsortable_and_unknown_columns():
    config = TableConfig((input_column(), name_column()))
    with pytest.raises(ValueError):
        config.sort(_records(), "input")
    with pytest.raises(ValueError):
        config.sort(_records(), "missing")


def test_render_builds_rich_table():
    config = TableConfig((name_column(), status_column(), duration_column(), enrichment_column("pii")))
    table = config.render(_records(), title="runs")
    assert isinstance(table, Table)
    assert table.row_count == 3
    assert [c.header for c in table.columns] == ["Name", "Status", "Duration", "Pii ✨"]

    console = Console(width=120, record=True)
    console.print(table)
    out = console.export_text()
    assert "alpha" in out
    assert "2.00s" in out


def test_one_bad_row_does_not_stop_the_table():
    def fragile(row):
        if row.id == "b":
            raise RuntimeError("bad row")
        return row.name

    config = TableConfig((ColumnSpec(id="fragile", header="F", accessor=fragile, cell=lambda v, r: v),))
    cells = config.view(_records()).cells()
    assert cells == [["alpha"], [None], ["gamma"]]


def test_view_reads_io_columns_once_per_row():
    source = StubSource([make_record(id="z", feedback={"thumbs": "up"})])
    config = TableConfig((name_column(), feedback_column(True, source=source)))
    view = config.view(_records())
    view.cells()
    view.cells()
    assert source.calls == ["a", "b", "c"]


def test_view_waits_for_pending_aggregations():
    gate = threading.Event()

    class SlowSource:
        def fetch_related(self, record_id):
            gate.wait(5)
            return [make_record(id="z", feedback={"thumbs": "down"})]

    with ThreadPoolExecutor(max_workers=2) as executor:
        config = TableConfig((feedback_column(True, source=SlowSource(), executor=executor),))
        view = config.view([make_record(id="a", feedback={"thumbs": "up"})])
        assert len(view.pending()) == 1
        assert len(view.cells()[0][0].views) == 1

        gate.set()
        assert view.wait(timeout=5) is True

    assert view.pending() == []
    assert len(view.cells()[0][0].views) == 2


def test_render_live_prints_resolved_table():
    source = StubSource([make_record(id="z", feedback={"thumbs": "down"})])
    config = TableConfig((name_column(), feedback_column(True, source=source)))
    console = Console(width=120, record=True)
    render_live(config.view(_records()), console, title="traces")
    out = console.export_text()
    assert "traces" in out
    assert "👎" in out


def test_render_live_timeout_bounds_the_wait_and_queued_reads_are_cancelled():
    gate = threading.Event()

    class StuckSource:
        def fetch_related(self, record_id):
            gate.wait(5)
            return []

    executor = ThreadPoolExecutor(max_workers=1)
    config = TableConfig((name_column(), feedback_column(True, source=StuckSource(), executor=executor)))
    view = config.view(
        [
            make_record(id="a", name="alpha", feedback={"thumbs": "up"}),
            make_record(id="b", name="beta", feedback={"thumbs": "down"}),
        ]
    )
    console = Console(width=120, record=True)
    try:
        render_live(view, console, title="traces", timeout=0.2)
        out = console.export_text()
        assert "👍" in out
        assert "👎" in out

        executor.shutdown(wait=False, cancel_futures=True)
        # the running read for "a" stays pending, the queued one for "b" is cancelled
        assert len(view.pending()) == 1
        queued = view.cells()[1][1]
        assert [v.data for v in queued.views] == [{"thumbs": "down"}]
    finally:
        gate.set()
        executor.shutdown(wait=True)
