from __future__ import annotations

import math
import re
from concurrent.futures import Executor
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from tracegrid.core.column import ColumnSpec, compare_nullable, is_missing
from tracegrid.core.config import ColumnEntry, as_bool
from tracegrid.core.state.models import STATUS_ERROR, STATUS_SUCCESS, Record
from tracegrid.core.visual import Badge, BadgeGroup, NEUTRAL_COLOR, WithTooltip
from tracegrid.modules.analytics import AnalyticsSink, default_analytics
from tracegrid.modules.enrichment import render_enrichment
from tracegrid.modules.feedback import (
    RelatedRecordsSource,
    aggregated_feedback_column,
    simple_feedback_column,
)
from tracegrid.modules.viewers import (
    Avatar,
    Link,
    MaskingPolicy,
    PayloadViewer,
    Router,
    TextWrapper,
    smart_viewer,
    template_route,
)
from tracegrid.utils.format import (
    LocaleLike,
    capitalize,
    format_cost,
    format_seconds,
    ms_to_time,
    time_of_day_or_date,
    to_epoch_ms,
)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")

# Enrichment kind not present on the record (distinct from a present None).
MISSING = object()

HAS_TAGS_EVENT = "HasTags"

_NO_PROTECTION = MaskingPolicy(enabled=False)


def _attr_name(name: str) -> str:
    """createdAt -> created_at; snake_case passes through."""
    return _CAMEL_RE.sub("_", name).lower()


def _empty_to_none(s: str) -> Optional[str]:
    return s or None


# --------- Time / duration ---------


def compare_timestamps(a: Any, b: Any) -> int:
    return compare_nullable(to_epoch_ms(a), to_epoch_ms(b))


def time_column(
    field_name: str = "created_at",
    label: str = "Time",
    *,
    locale: LocaleLike = None,
    tz: Union[str, tzinfo, None] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> ColumnSpec:
    attr = _attr_name(field_name)

    def cell(value: Any, row: Record) -> Optional[str]:
        now = clock() if clock is not None else None
        return _empty_to_none(time_of_day_or_date(value, now=now, locale=locale, tz=tz))

    return ColumnSpec(
        id=field_name,
        header=label,
        size=80,
        accessor=lambda row: getattr(row, attr, None),
        compare=compare_timestamps,
        cell=cell,
    )


def record_duration_ms(row: Record) -> float:
    """ended_at - created_at in ms; NaN while the run has not ended or on bad timestamps."""
    ended = to_epoch_ms(row.ended_at)
    created = to_epoch_ms(row.created_at)
    if ended is None or created is None:
        return math.nan
    return ended - created


_DURATION_FORMATS: Dict[str, Callable[[Any], str]] = {
    "s": format_seconds,
    "full": ms_to_time,
}


def duration_column(unit: str = "s") -> ColumnSpec:
    fmt = _DURATION_FORMATS.get(unit)
    if fmt is None:
        raise ValueError(f"unknown duration unit: {unit!r} (expected one of {sorted(_DURATION_FORMATS)})")

    def cell(value: Any, row: Record) -> Optional[str]:
        if is_missing(value):
            return None
        return _empty_to_none(fmt(value))

    return ColumnSpec(
        id="duration",
        header="Duration",
        size=45,
        accessor=record_duration_ms,
        compare=compare_nullable,
        cell=cell,
    )


# --------- Status / name / tags ---------


def status_column(*, protect: TextWrapper = _NO_PROTECTION) -> ColumnSpec:
    def cell(value: Any, row: Record) -> Optional[Badge]:
        if not value:
            return None
        color = "green" if value == STATUS_SUCCESS else "red"
        return Badge(label=protect(str(value)), color=color)

    return ColumnSpec(id="status", header="Status", size=60, field="status", cell=cell)


def status_color(status: Optional[str]) -> str:
    if status == STATUS_SUCCESS:
        return "green"
    if status == STATUS_ERROR:
        return "red"
    return NEUTRAL_COLOR


def name_column(label: str = "Name") -> ColumnSpec:
    def cell(value: Any, row: Record) -> Optional[Badge]:
        text = value or row.type
        if not text:
            return None
        return Badge(label=str(text), color=status_color(row.status), variant="outline")

    return ColumnSpec(id="name", header=label, size=80, min_size=30, field="name", cell=cell)


def tags_column(*, analytics: Optional[AnalyticsSink] = None) -> ColumnSpec:
    sink = analytics if analytics is not None else default_analytics()

    def cell(value: Any, row: Record) -> Optional[BadgeGroup]:
        if not value:
            return None
        sink.track_once(HAS_TAGS_EVENT)
        return BadgeGroup(tuple(Badge(label=str(t), color="blue", variant="outline") for t in value))

    return ColumnSpec(id="tags", header="Tags", size=70, field="tags", cell=cell)


# --------- Payloads ---------


def input_column(label: str = "Input", *, viewer: PayloadViewer = smart_viewer) -> ColumnSpec:
    return ColumnSpec(
        id="input",
        header=label,
        size=200,
        field="input",
        sortable=False,
        cell=lambda value, row: viewer(value, compact=True),
    )


def output_column(label: str = "Response", *, viewer: PayloadViewer = smart_viewer) -> ColumnSpec:
    return ColumnSpec(
        id="output",
        header=label,
        field="output",
        sortable=False,
        cell=lambda value, row: viewer(value, error=row.error, compact=True),
    )


# --------- Template / user ---------


def template_column(*, route: Router = template_route) -> ColumnSpec:
    def cell(value: Any, row: Record) -> Optional[Link]:
        if not value:
            return None
        return Link(label=row.template_slug or str(value), href=route(str(value)))

    return ColumnSpec(
        id="template",
        header="Template",
        field="template_version_id",
        sortable=False,
        cell=cell,
    )


def user_column() -> ColumnSpec:
    def cell(value: Any, row: Record) -> Optional[Avatar]:
        if value is None or not getattr(value, "id", None):
            return None
        return Avatar(user=value, with_name=True)

    return ColumnSpec(
        id="user",
        header="User",
        size=120,
        min_size=120,
        field="user",
        compare=lambda a, b: compare_nullable(
            a.display_name.lower() if a is not None else None,
            b.display_name.lower() if b is not None else None,
        ),
        cell=cell,
    )


# --------- Cost ---------


def compare_costs(a: Any, b: Any) -> float:
    """Numeric subtraction; a missing cost sorts below any number."""
    if is_missing(a) or is_missing(b):
        return compare_nullable(a, b)
    return a - b


def cost_column(
    *,
    protect: TextWrapper = _NO_PROTECTION,
    currency: str = "USD",
    locale: LocaleLike = None,
) -> ColumnSpec:
    def cell(value: Any, row: Record) -> Any:
        text = format_cost(value, currency=currency, locale=locale)
        if not text:
            return None
        return protect(text)

    return ColumnSpec(id="cost", header="Cost", size=60, field="cost", compare=compare_costs, cell=cell)


# --------- Feedback / enrichment ---------


def feedback_column(
    with_related_runs: bool = False,
    *,
    source: Optional[RelatedRecordsSource] = None,
    executor: Optional[Executor] = None,
) -> ColumnSpec:
    if not with_related_runs:
        return simple_feedback_column()
    if source is None:
        raise ValueError("with_related_runs requires a related-records source")
    # without an executor the related read blocks the caller
    return aggregated_feedback_column(source, executor=executor)


def enrichment_value(row: Record, kind: str) -> Any:
    return row.enrichment.get(kind, MISSING)


def enrichment_column(kind: str) -> ColumnSpec:
    def cell(value: Any, row: Record) -> Optional[WithTooltip]:
        if value is MISSING:
            return None
        view = render_enrichment(kind, value)
        return WithTooltip(visual=view.visual, tooltip=view.tooltip)

    return ColumnSpec(
        id=f"enrichment-{kind}",
        header=f"{capitalize(kind)} ✨",
        size=100,
        accessor=lambda row: enrichment_value(row, kind),
        sortable=False,
        cell=cell,
    )


# --------- Registry (configured tables) ---------


# Options each configured column accepts, for `tracegrid columns`.
COLUMN_OPTIONS: Dict[str, str] = {
    "time": "field, label",
    "duration": "unit (s | full)",
    "input": "label",
    "output": "label",
    "name": "label",
    "feedback": "with_related_runs",
    "enrichment": "kind (required)",
}


@dataclass(frozen=True)
class ColumnContext:
    """Collaborators and display settings shared by all columns of one table."""

    protect: TextWrapper = _NO_PROTECTION
    viewer: PayloadViewer = smart_viewer
    route: Router = template_route
    analytics: Optional[AnalyticsSink] = None
    locale: LocaleLike = None
    tz: Union[str, tzinfo, None] = None
    currency: str = "USD"
    clock: Optional[Callable[[], datetime]] = None
    related_source: Optional[RelatedRecordsSource] = None
    executor: Optional[Executor] = None
    with_related_runs: bool = False


ColumnBuilder = Callable[[ColumnContext, Mapping[str, Any]], ColumnSpec]


def _build_time(ctx: ColumnContext, opts: Mapping[str, Any]) -> ColumnSpec:
    return time_column(
        str(opts.get("field", "created_at")),
        str(opts.get("label", "Time")),
        locale=ctx.locale,
        tz=ctx.tz,
        clock=ctx.clock,
    )


def _build_feedback(ctx: ColumnContext, opts: Mapping[str, Any]) -> ColumnSpec:
    related = as_bool(opts.get("with_related_runs", ctx.with_related_runs))
    return feedback_column(related, source=ctx.related_source, executor=ctx.executor)


COLUMN_BUILDERS: Dict[str, ColumnBuilder] = {
    "time": _build_time,
    "duration": lambda ctx, opts: duration_column(str(opts.get("unit", "s"))),
    "status": lambda ctx, opts: status_column(protect=ctx.protect),
    "tags": lambda ctx, opts: tags_column(analytics=ctx.analytics),
    "input": lambda ctx, opts: input_column(str(opts.get("label", "Input")), viewer=ctx.viewer),
    "output": lambda ctx, opts: output_column(str(opts.get("label", "Response")), viewer=ctx.viewer),
    "template": lambda ctx, opts: template_column(route=ctx.route),
    "user": lambda ctx, opts: user_column(),
    "name": lambda ctx, opts: name_column(str(opts.get("label", "Name"))),
    "cost": lambda ctx, opts: cost_column(protect=ctx.protect, currency=ctx.currency, locale=ctx.locale),
    "feedback": _build_feedback,
    "enrichment": lambda ctx, opts: enrichment_column(str(opts["kind"])),
}


def build_column(entry: ColumnEntry, ctx: ColumnContext) -> ColumnSpec:
    builder = COLUMN_BUILDERS.get(entry.column)
    if builder is None:
        raise ValueError(f"unknown column: {entry.column!r} (available: {', '.join(sorted(COLUMN_BUILDERS))})")
    if entry.column == "enrichment" and not entry.options.get("kind"):
        raise ValueError("enrichment column requires a 'kind'")
    return builder(ctx, entry.options)


def build_columns(entries: Sequence[ColumnEntry], ctx: ColumnContext) -> List[ColumnSpec]:
    return [build_column(e, ctx) for e in entries]
