from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

DEFAULT_TABLE = "traces"


@dataclass(frozen=True)
class ColumnEntry:
    """One configured column: a factory name plus its options."""

    column: str
    options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DisplayConfig:
    locale: Optional[str] = None
    timezone: Optional[str] = None
    currency: str = "USD"
    masking: bool = False


@dataclass(frozen=True)
class TableDef:
    name: str
    description: str
    columns: List[ColumnEntry]


@dataclass(frozen=True)
class TablesConfig:
    display: DisplayConfig
    tables: Dict[str, TableDef]

    def table(self, name: str) -> TableDef:
        t = self.tables.get(name)
        if t is None:
            raise ValueError(f"table {name!r} not found (available: {', '.join(sorted(self.tables)) or 'none'})")
        return t


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _parse_column(table: str, raw: Any) -> ColumnEntry:
    if isinstance(raw, str):
        return ColumnEntry(column=raw.strip())
    if isinstance(raw, dict) and raw.get("column"):
        opts = {k: v for k, v in raw.items() if k != "column"}
        return ColumnEntry(column=str(raw["column"]).strip(), options=opts)
    raise ValueError(f"table {table!r}: invalid column entry {raw!r}")


def parse_tables_config(raw: Dict[str, Any]) -> TablesConfig:
    raw_display: Dict[str, Any] = raw.get("display", {}) or {}
    raw_tables: Dict[str, Any] = raw.get("tables", {}) or {}

    display = DisplayConfig(
        locale=_opt_str(raw_display.get("locale")),
        timezone=_opt_str(raw_display.get("timezone")),
        currency=_opt_str(raw_display.get("currency")) or "USD",
        masking=as_bool(raw_display.get("masking")),
    )

    tables: Dict[str, TableDef] = {}
    for tname, t in raw_tables.items():
        t = t or {}
        tables[tname] = TableDef(
            name=tname,
            description=str(t.get("description", "")),
            columns=[_parse_column(tname, c) for c in t.get("columns", []) or []],
        )

    return TablesConfig(display=display, tables=tables)


def load_tables_config(path: Path) -> TablesConfig:
    if not path.exists():
        raise FileNotFoundError(f"tables.yaml not found: {path}")

    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return parse_tables_config(raw)
