from __future__ import annotations

from typing import Any, Dict, List, Sequence

from tracegrid.core.state.models import Record


def make_record(**fields: Any) -> Record:
    data: Dict[str, Any] = {
        "id": "run-1",
        "createdAt": "2026-10-17T12:00:00Z",
        "status": "success",
        "type": "llm",
    }
    data.update(fields)
    return Record.from_dict(data)


class StubSource:
    """Related-records source returning canned rows (or raising)."""

    def __init__(self, related: Sequence[Record] = (), error: Exception | None = None) -> None:
        self.related = list(related)
        self.error = error
        self.calls: List[str] = []

    def fetch_related(self, record_id: str) -> Sequence[Record]:
        self.calls.append(record_id)
        if self.error is not None:
            raise self.error
        return self.related


