from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from rich.console import Console
from rich.live import Live
from rich.table import Table

from tracegrid.core.column import ColumnSpec
from tracegrid.core.state.models import Record
from tracegrid.core.visual import to_text


def _is_pending(value: Any) -> bool:
    done = getattr(value, "done", None)
    return callable(done) and not done()


@dataclass(frozen=True)
class TableConfig:
    """Ordered column descriptors for one table. Column ids are unique."""

    columns: Tuple[ColumnSpec, ...]

    def __post_init__(self) -> None:
        cols = tuple(self.columns)
        object.__setattr__(self, "columns", cols)
        seen = set()
        for c in cols:
            if c.id in seen:
                raise ValueError(f"duplicate column id: {c.id!r}")
            seen.add(c.id)

    @property
    def ids(self) -> List[str]:
        return [c.id for c in self.columns]

    def column(self, column_id: str) -> ColumnSpec:
        for c in self.columns:
            if c.id == column_id:
                return c
        raise ValueError(f"unknown column: {column_id!r} (available: {', '.join(self.ids)})")

    def sort(self, records: Iterable[Record], column_id: str, descending: bool = False) -> List[Record]:
        col = self.column(column_id)
        if not col.sortable:
            raise ValueError(f"column {column_id!r} is not sortable")
        key = col.sort_key()
        return sorted(records, key=lambda r: key(col.sort_value(r)), reverse=descending)

    def view(self, records: Iterable[Record]) -> "TableView":
        return TableView(self, list(records))

    def render(self, records: Iterable[Record], title: Optional[str] = None) -> Table:
        return self.view(records).to_rich(title=title)


class TableView:
    """
    One render of a table: values are read once per cell, so I/O columns
    issue a single read per row; cells are re-rendered from those values.
    """

    def __init__(self, config: TableConfig, records: Sequence[Record]) -> None:
        self.config = config
        self.records = list(records)
        self._values: List[List[Any]] = [[c.safe_value(r) for c in config.columns] for r in self.records]

    def cells(self) -> List[List[Any]]:
        out: List[List[Any]] = []
        for row, values in zip(self.records, self._values):
            out.append([c.safe_render(v, row) for c, v in zip(self.config.columns, values)])
        return out

    def pending(self) -> List[Any]:
        return [v for values in self._values for v in values if _is_pending(v)]

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Wait for pending values; True when nothing is left pending."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for v in self.pending():
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            v.wait(timeout=remaining)
        return not self.pending()

    def to_rich(self, title: Optional[str] = None) -> Table:
        t = Table(title=title, expand=True)
        for c in self.config.columns:
            # size hints are relative widths
            t.add_column(c.header, ratio=c.size or 100)
        for cells in self.cells():
            t.add_row(*(to_text(v) for v in cells))
        return t


def render_live(
    view: TableView,
    console: Console,
    title: Optional[str] = None,
    timeout: Optional[float] = None,
) -> None:
    """
    Print the table now and update it in place as pending cells resolve.
    Cells still pending at timeout keep their initial rendering.
    """
    if not view.pending():
        console.print(view.to_rich(title=title))
        return

    deadline = None if timeout is None else time.monotonic() + timeout
    with Live(view.to_rich(title=title), console=console, refresh_per_second=8) as live:
        for v in view.pending():
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            v.wait(timeout=remaining)
            live.update(view.to_rich(title=title))
            if deadline is not None and time.monotonic() >= deadline:
                break
