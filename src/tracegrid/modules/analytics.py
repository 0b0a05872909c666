from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol, Set

from tracegrid.core.logger import get_logger, log_event


class AnalyticsSink(Protocol):
    def track_once(self, event: str) -> bool: ...


class SessionAnalytics:
    """
    Feature-usage signals for one viewing session.

    Starts empty, remembers each event key the first time it fires and
    ignores it afterwards. reset() marks a session boundary.
    """

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._fired: Set[str] = set()
        self._lock = threading.Lock()
        self._logger = logger or get_logger("analytics")

    def track_once(self, event: str) -> bool:
        with self._lock:
            if event in self._fired:
                return False
            self._fired.add(event)
        log_event(self._logger, {"event": "analytics.track", "name": event})
        return True

    def has_fired(self, event: str) -> bool:
        with self._lock:
            return event in self._fired

    def reset(self) -> None:
        with self._lock:
            self._fired.clear()


_default = SessionAnalytics()


def default_analytics() -> SessionAnalytics:
    """Process-wide session sink used when a column is built without one."""
    return _default
