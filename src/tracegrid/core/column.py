from __future__ import annotations

import functools
import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Optional

from tracegrid.core.logger import get_logger, log_event
from tracegrid.core.state.models import Record

logger = get_logger("columns")

# (a, b) -> negative / zero / positive
Comparator = Callable[[Any, Any], float]
# (value, row) -> visual, None renders an empty cell
CellRenderer = Callable[[Any, Record], Any]

# Cell whose accessor raised; renders empty, sorts as missing.
FAILED = object()


def is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def compare_nullable(a: Any, b: Any) -> int:
    """
    Total order for sorting: missing values (None, NaN) sort lowest and are
    equal to each other.
    """
    a_missing, b_missing = is_missing(a), is_missing(b)
    if a_missing and b_missing:
        return 0
    if a_missing:
        return -1
    if b_missing:
        return 1
    try:
        return (a > b) - (a < b)
    except TypeError:
        sa, sb = str(a), str(b)
        return (sa > sb) - (sa < sb)


def _sign(n: Any) -> int:
    if is_missing(n):
        return 0
    return (n > 0) - (n < 0)


@dataclass(frozen=True)
class ColumnSpec:
    """
    Self-contained column descriptor consumed by the host table.

    Values come from ``accessor`` when set, otherwise from the record
    attribute named by ``field`` (or ``id``). Descriptors are immutable;
    use dataclasses.replace() to reconfigure one.
    """

    id: str
    header: str
    cell: CellRenderer
    size: Optional[int] = None
    min_size: Optional[int] = None
    accessor: Optional[Callable[[Record], Any]] = None
    field: Optional[str] = None
    compare: Optional[Comparator] = None
    sortable: bool = True
    performs_io: bool = False

    def value(self, row: Record) -> Any:
        if self.accessor is not None:
            return self.accessor(row)
        return getattr(row, self.field or self.id, None)

    def render(self, value: Any, row: Record) -> Any:
        return self.cell(value, row)

    def _failed(self, row: Record, exc: Exception) -> None:
        log_event(
            logger,
            {
                "event": "column.render_failed",
                "column": self.id,
                "record_id": getattr(row, "id", None),
                "error": repr(exc),
            },
            level=logging.WARNING,
        )

    def safe_value(self, row: Record) -> Any:
        """value(), or FAILED when the accessor raises."""
        try:
            return self.value(row)
        except Exception as exc:  # noqa: BLE001
            self._failed(row, exc)
            return FAILED

    def safe_render(self, value: Any, row: Record) -> Any:
        if value is FAILED:
            return None
        try:
            return self.render(value, row)
        except Exception as exc:  # noqa: BLE001
            self._failed(row, exc)
            return None

    def render_cell(self, row: Record) -> Any:
        """value() then render(); a failing cell renders empty instead of aborting the table."""
        return self.safe_render(self.safe_value(row), row)

    def sort_value(self, row: Record) -> Any:
        v = self.safe_value(row)
        return None if v is FAILED else v

    def sort_key(self) -> Callable[[Any], Any]:
        """Key function over values (not rows) for sorted()."""
        cmp = self.compare or compare_nullable

        def _cmp(a: Any, b: Any) -> int:
            try:
                return _sign(cmp(a, b))
            except Exception:  # noqa: BLE001
                return compare_nullable(a, b)

        return functools.cmp_to_key(_cmp)
