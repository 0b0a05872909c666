from __future__ import annotations

import dataclasses
import math
from datetime import datetime, timezone

import pytest
from babel.dates import format_time
from rich.text import Text

from tracegrid.core.column import ColumnSpec
from tracegrid.core.visual import Badge, BadgeGroup, WithTooltip
from tracegrid.modules.analytics import SessionAnalytics
from tracegrid.modules.columns import (
    HAS_TAGS_EVENT,
    compare_costs,
    cost_column,
    duration_column,
    enrichment_column,
    feedback_column,
    input_column,
    name_column,
    output_column,
    status_column,
    tags_column,
    template_column,
    time_column,
    user_column,
)
from tracegrid.modules.enrichment import PII_CLEAR, PII_WARNING
from tracegrid.modules.feedback import AggregatedFeedbackColumn, SimpleFeedbackColumn
from tracegrid.modules.viewers import Avatar, Link, MaskingPolicy

from conftest import StubSource, make_record

UTC = timezone.utc


# --------- time ---------


def test_time_column_sorts_by_instant_not_string():
    col = time_column("created_at")
    key = col.sort_key()
    early = "2026-10-17T10:00:00+02:00"  # 08:00 UTC
    late = "2026-10-17T09:00:00Z"
    assert sorted([late, early], key=key) == [early, late]


def test_time_column_accepts_camel_case_field_and_renders_time_today():
    now = datetime(2026, 10, 17, 20, 0, tzinfo=UTC)
    col = time_column("createdAt", locale="en_US", tz=UTC, clock=lambda: now)
    row = make_record(createdAt="2026-10-17T12:00:00Z")
    assert col.id == "createdAt"
    assert col.header == "Time"
    assert col.size == 80
    assert col.render_cell(row) == format_time(
        datetime(2026, 10, 17, 12, tzinfo=UTC), format="medium", tzinfo=UTC, locale="en_US"
    )


def test_time_column_missing_timestamp_renders_empty():
    col = time_column("ended_at")
    assert col.render_cell(make_record()) is None


# --------- duration ---------


def test_duration_is_derived_from_timestamps():
    row = make_record(createdAt="2026-10-17T12:00:00.000Z", endedAt="2026-10-17T12:00:01.500Z")
    col = duration_column()
    assert col.value(row) == 1500.0
    assert col.render_cell(row) == "1.50s"
    assert duration_column("full").render_cell(row) == "1s"


def test_duration_without_end_is_nan_and_renders_empty():
    row = make_record(endedAt=None)
    for unit in ("s", "full"):
        col = duration_column(unit)
        assert math.isnan(col.value(row))
        assert col.render_cell(row) is None


def test_duration_with_malformed_end_is_nan():
    row = make_record(endedAt="yesterday-ish")
    assert math.isnan(duration_column().value(row))


def test_duration_nan_sorts_lowest_without_raising():
    col = duration_column()
    values = [1200.0, math.nan, 300.0]
    out = sorted(values, key=col.sort_key())
    assert math.isnan(out[0])
    assert out[1:] == [300.0, 1200.0]


def test_duration_rejects_unknown_unit():
    with pytest.raises(ValueError):
        duration_column("minutes")


# --------- status / name ---------


def test_status_badge_colors():
    col = status_column()
    ok = col.render_cell(make_record(status="success"))
    bad = col.render_cell(make_record(status="error"))
    other = col.render_cell(make_record(status="started"))
    assert ok.color == "green"
    assert bad.color == "red"
    assert other.color == "red"
    assert isinstance(ok.label, Text)
    assert ok.label.plain == "success"


def test_status_text_goes_through_redaction_wrapper():
    seen = []

    def protect(text):
        seen.append(text)
        return Text("***")

    badge = status_column(protect=protect).render_cell(make_record(status="error"))
    assert seen == ["error"]
    assert badge.label.plain == "***"

    masked = status_column(protect=MaskingPolicy(enabled=True)).render_cell(make_record(status="error"))
    assert masked.label.plain == "<redacted>"


def test_status_absent_renders_empty():
    assert status_column().render_cell(make_record(status=None)) is None


def test_name_column_falls_back_to_type_and_colors_by_status():
    col = name_column()
    badge = col.render_cell(make_record(name=None, type="llm-call", status="error"))
    assert isinstance(badge, Badge)
    assert badge.label == "llm-call"
    assert badge.color == "red"

    badge = col.render_cell(make_record(name="Greeting", status="success"))
    assert badge.label == "Greeting"
    assert badge.color == "green"


def test_name_column_neutral_for_other_or_absent_status():
    col = name_column()
    assert col.render_cell(make_record(name="x", status="started")).color == "grey50"
    assert col.render_cell(make_record(name="x", status=None)).color == "grey50"
    assert col.min_size == 30


# --------- tags ---------


def test_tags_render_badges_and_signal_once():
    analytics = SessionAnalytics()
    col = tags_column(analytics=analytics)

    group = col.render_cell(make_record(tags=["prod", "beta"]))
    assert isinstance(group, BadgeGroup)
    assert group.labels == ("prod", "beta")
    assert analytics.has_fired(HAS_TAGS_EVENT)

    col.render_cell(make_record(id="run-2", tags=["prod"]))
    # already observed this session
    assert analytics.track_once(HAS_TAGS_EVENT) is False


def test_tags_absent_or_empty_render_nothing_and_do_not_signal():
    analytics = SessionAnalytics()
    col = tags_column(analytics=analytics)
    assert col.render_cell(make_record(tags=None)) is None
    assert col.render_cell(make_record(tags=[])) is None
    assert not analytics.has_fired(HAS_TAGS_EVENT)


def test_tags_signal_counts_once_per_session():
    calls = []

    class CountingSink:
        def __init__(self):
            self.inner = SessionAnalytics()

        def track_once(self, event):
            fired = self.inner.track_once(event)
            if fired:
                calls.append(event)
            return fired

    col = tags_column(analytics=CountingSink())
    for i in range(5):
        col.render_cell(make_record(id=f"run-{i}", tags=["a"]))
    assert calls == [HAS_TAGS_EVENT]


# --------- payloads ---------


def test_input_and_output_are_not_sortable():
    assert input_column().sortable is False
    assert output_column().sortable is False
    assert input_column().size == 200


def test_input_column_uses_compact_viewer():
    calls = []

    def viewer(payload, error=None, compact=False):
        calls.append((payload, error, compact))
        return "viewed"

    row = make_record(input=[{"role": "user", "content": "hi"}])
    assert input_column(viewer=viewer).render_cell(row) == "viewed"
    assert calls == [([{"role": "user", "content": "hi"}], None, True)]


def test_output_column_forwards_error():
    calls = []

    def viewer(payload, error=None, compact=False):
        calls.append((payload, error, compact))
        return "viewed"

    row = make_record(output=None, error={"message": "boom"})
    output_column(viewer=viewer).render_cell(row)
    assert calls == [(None, {"message": "boom"}, True)]


def test_output_column_default_viewer_marks_errors():
    row = make_record(output=None, error={"message": "rate limited"})
    text = output_column().render_cell(row)
    assert text.plain == "Error: rate limited"
    assert "red" in str(text.style)


# --------- template / user ---------


def test_template_column_links_to_template():
    col = template_column()
    link = col.render_cell(make_record(templateVersionId="tv-9", templateSlug="welcome"))
    assert link == Link(label="welcome", href="/prompts/tv-9")
    assert col.sortable is False


def test_template_column_without_template_renders_nothing():
    assert template_column().render_cell(make_record()) is None


def test_template_column_custom_route():
    col = template_column(route=lambda tid: f"https://app.example/t/{tid}")
    link = col.render_cell(make_record(templateVersionId="tv-1"))
    assert link.href == "https://app.example/t/tv-1"
    assert link.label == "tv-1"


def test_user_column():
    col = user_column()
    avatar = col.render_cell(make_record(user={"id": "u1", "props": {"name": "Ada Lovelace"}}))
    assert isinstance(avatar, Avatar)
    assert avatar.to_text().plain.endswith("Ada Lovelace")
    assert avatar.user.initials == "AL"
    assert col.render_cell(make_record(user=None)) is None
    assert col.render_cell(make_record(user={"name": "no id"})) is None
    assert col.size == 120


# --------- cost ---------


def test_cost_comparator_orders_none_lowest():
    col = cost_column()
    out = sorted([None, 5, 2, None], key=col.sort_key())
    assert out == [None, None, 2, 5]


def test_cost_comparator_is_subtraction_for_numbers():
    assert compare_costs(5, 2) == 3
    assert compare_costs(2, 5) == -3
    assert compare_costs(None, 1) < 0
    assert compare_costs(1, None) > 0
    assert compare_costs(None, None) == 0


def test_cost_cell_formats_and_protects():
    col = cost_column(locale="en_US")
    assert col.render_cell(make_record(cost=0.0042)).plain == "$0.0042"
    assert col.render_cell(make_record(cost=None)) is None

    masked = cost_column(protect=MaskingPolicy(enabled=True), locale="en_US")
    assert masked.render_cell(make_record(cost=1.5)).plain == "<redacted>"


# --------- feedback ---------


def test_feedback_column_selects_variant():
    assert isinstance(feedback_column(), SimpleFeedbackColumn)
    agg = feedback_column(True, source=StubSource())
    assert isinstance(agg, AggregatedFeedbackColumn)
    assert agg.performs_io is True
    assert feedback_column().performs_io is False


def test_aggregated_variant_requires_source():
    with pytest.raises(ValueError):
        feedback_column(True)


# --------- enrichment ---------


def test_enrichment_column_header_and_id():
    col = enrichment_column("sentiment")
    assert col.id == "enrichment-sentiment"
    assert col.header == "Sentiment ✨"
    assert col.sortable is False


def test_enrichment_column_absent_kind_renders_nothing():
    col = enrichment_column("pii")
    assert col.render_cell(make_record()) is None
    assert col.render_cell(make_record(metadata={"enrichment": {"sentiment": 0.9}})) is None


def test_enrichment_column_keyed_none_is_rendered():
    col = enrichment_column("pii")
    cell = col.render_cell(make_record(metadata={"enrichment": {"pii": None}}))
    assert isinstance(cell, WithTooltip)
    assert cell.visual == PII_CLEAR


def test_enrichment_column_delegates_to_renderer():
    col = enrichment_column("pii")
    cell = col.render_cell(make_record(metadata={"enrichment": {"pii": "soft"}}))
    assert cell.visual == PII_WARNING
    assert cell.tooltip is None

    cell = enrichment_column("sentiment").render_cell(make_record(metadata={"enrichment": {"sentiment": -0.9}}))
    assert cell.tooltip == "Sentiment: negative"


# --------- contract ---------


def test_descriptors_are_immutable():
    col = name_column()
    with pytest.raises(dataclasses.FrozenInstanceError):
        col.header = "Other"  # type: ignore[misc]
    renamed = dataclasses.replace(col, header="Label")
    assert renamed.header == "Label"
    assert col.header == "Name"


def test_failing_cell_renders_empty():
    def boom(row):
        raise KeyError("nope")

    col = ColumnSpec(id="x", header="X", accessor=boom, cell=lambda v, r: v)
    assert col.render_cell(make_record()) is None
    assert col.sort_value(make_record()) is None

    col = ColumnSpec(id="y", header="Y", field="name", cell=lambda v, r: 1 / 0)
    assert col.render_cell(make_record(name="a")) is None


def test_default_property_lookup_uses_id():
    col = ColumnSpec(id="type", header="Type", cell=lambda v, r: v)
    assert col.render_cell(make_record(type="chain")) == "chain"
