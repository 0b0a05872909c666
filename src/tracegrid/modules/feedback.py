from __future__ import annotations

import logging
from concurrent import futures
from concurrent.futures import Executor, Future
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Sequence, Tuple

from rich.text import Text

from tracegrid.core.column import ColumnSpec
from tracegrid.core.logger import get_logger, log_event
from tracegrid.core.state.models import Record
from tracegrid.core.visual import Inline

logger = get_logger("feedback")

_THUMBS = {"up": "👍", "down": "👎"}
_COMMENT_WIDTH = 40


class RelatedRecordsSource(Protocol):
    def fetch_related(self, record_id: str) -> Sequence[Record]: ...


@dataclass(frozen=True)
class FeedbackView:
    data: Mapping[str, Any]
    inherited: bool = False

    def _parts(self):
        for key, value in self.data.items():
            if value is None or value == "":
                continue
            if key == "thumbs":
                yield _THUMBS.get(str(value), str(value))
            elif key == "rating":
                yield f"{value}★"
            elif key == "emoji":
                yield str(value)
            elif key == "retried":
                if value:
                    yield "🔄"
            elif key == "comment":
                comment = str(value)
                if len(comment) > _COMMENT_WIDTH:
                    comment = comment[: _COMMENT_WIDTH - 1] + "…"
                yield f"💬 {comment}"
            else:
                yield f"{key}: {value}"

    def to_text(self) -> Text:
        body = " ".join(self._parts())
        if self.inherited:
            return Text(f"↳ {body}", style="dim")
        return Text(body)

    def __rich__(self) -> Text:
        return self.to_text()


@dataclass(frozen=True)
class FeedbackGroup:
    views: Tuple[FeedbackView, ...] = ()

    def to_text(self) -> Text:
        return Inline(self.views, sep="  ").to_text()

    def __rich__(self) -> Text:
        return self.to_text()


def simple_feedback(row: Record) -> Optional[FeedbackView]:
    """Own feedback, else the parent's flagged as inherited, else nothing."""
    if row.feedback:
        return FeedbackView(row.feedback)
    if row.parent_feedback:
        return FeedbackView(row.parent_feedback, inherited=True)
    return None


def _error_of(future: Future) -> Optional[BaseException]:
    if future.cancelled():
        return futures.CancelledError()
    return future.exception()


def _group(views: Sequence[FeedbackView]) -> Optional[FeedbackGroup]:
    return FeedbackGroup(tuple(views)) if views else None


class FeedbackAggregation:
    """
    Feedback of one row and its related records.

    Until the related read resolves only the row's own feedback is shown.
    Once resolved: own feedback first, then related records in fetch order.
    A failed read falls back to simple_feedback().
    """

    def __init__(self, row: Record, future: Future) -> None:
        self.row = row
        self._future = future
        future.add_done_callback(self._log_failure)

    def _log_failure(self, future: Future) -> None:
        exc = _error_of(future)
        if exc is not None:
            log_event(
                logger,
                {"event": "feedback.related_failed", "record_id": self.row.id, "error": repr(exc)},
                level=logging.WARNING,
            )

    def done(self) -> bool:
        return self._future.done()

    def failed(self) -> bool:
        return self._future.done() and _error_of(self._future) is not None

    def _own(self) -> list:
        return [FeedbackView(self.row.feedback)] if self.row.feedback else []

    def current(self) -> Any:
        if not self._future.done():
            return _group(self._own())
        if _error_of(self._future) is not None:
            fallback = simple_feedback(self.row)
            return _group([fallback] if fallback else [])

        views = self._own()
        for related in self._future.result() or ():
            if related.id == self.row.id or not related.feedback:
                continue
            views.append(FeedbackView(related.feedback))
        return _group(views)

    def wait(self, timeout: Optional[float] = None) -> Any:
        futures.wait([self._future], timeout=timeout)
        return self.current()


def _fetch_inline(source: RelatedRecordsSource, record_id: str) -> Future:
    future: Future = Future()
    try:
        future.set_result(list(source.fetch_related(record_id)))
    except Exception as exc:  # noqa: BLE001
        future.set_exception(exc)
    return future


def _render_passthrough(value: Any, row: Record) -> Any:
    return value


def _render_aggregation(value: Any, row: Record) -> Any:
    if isinstance(value, FeedbackAggregation):
        return value.current()
    return value


@dataclass(frozen=True)
class SimpleFeedbackColumn(ColumnSpec):
    """Feedback of the row itself; pure."""

    def value(self, row: Record) -> Optional[FeedbackView]:
        return simple_feedback(row)


@dataclass(frozen=True)
class AggregatedFeedbackColumn(ColumnSpec):
    """
    Feedback of the row and its related records. value() issues a read
    through ``source``. With an ``executor`` the read runs in the background
    and value() returns at once; without one the read runs inline and
    value() blocks until it completes.
    """

    source: Optional[RelatedRecordsSource] = None
    executor: Optional[Executor] = None

    def __post_init__(self) -> None:
        if self.source is None:
            raise ValueError("aggregated feedback column requires a related-records source")

    def value(self, row: Record) -> FeedbackAggregation:
        if self.executor is not None:
            try:
                future = self.executor.submit(self.source.fetch_related, row.id)
            except RuntimeError as exc:
                # executor already shut down
                future = Future()
                future.set_exception(exc)
        else:
            future = _fetch_inline(self.source, row.id)
        return FeedbackAggregation(row, future)


def simple_feedback_column(label: str = "Feedback") -> SimpleFeedbackColumn:
    return SimpleFeedbackColumn(
        id="feedback",
        header=label,
        size=100,
        cell=_render_passthrough,
        sortable=False,
    )


def aggregated_feedback_column(
    source: RelatedRecordsSource,
    executor: Optional[Executor] = None,
    label: str = "Feedback",
) -> AggregatedFeedbackColumn:
    return AggregatedFeedbackColumn(
        id="feedback",
        header=label,
        size=100,
        cell=_render_aggregation,
        sortable=False,
        performs_io=True,
        source=source,
        executor=executor,
    )
