"""Structured loader events.

The loader reports what it did (cache hits, fallbacks, per-file failures)
through an EventSink handed to it at construction. Emission is
fire-and-forget: a failing sink is logged and never interrupts a load.

Usage::

    sink = MemoryEventSink()
    repo = TemplateRepository(config, events=sink)
    await repo.load_steps()
    [e.action for e in sink.events]   # ["remote_loaded"]
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections import deque
from typing import Any, Protocol

logger = logging.getLogger("template_repository.events")

# Actions logged above DEBUG by LoggingEventSink.
_WARNING_ACTIONS: frozenset[str] = frozenset({
    "remote_failed", "remote_item_failed", "mirror_write_failed", "stale_discarded",
    "mirror_write_skipped",
})
_INFO_ACTIONS: frozenset[str] = frozenset({
    "remote_loaded", "mirror_fallback", "bundled_fallback", "local_loaded",
    "reconfigured", "refreshed",
})

_MESSAGES: dict[str, str] = {
    "cache_hit": "Serving cached {kind}",
    "in_flight_skip": "Fetch already in flight, serving current {kind}",
    "remote_loaded": "Loaded {kind} from GitHub",
    "remote_item_failed": "Failed to fetch {kind} item",
    "remote_failed": "Failed to load {kind} from GitHub",
    "mirror_fallback": "Using cached {kind} from previous fetch",
    "bundled_fallback": "Falling back to bundled {kind}",
    "local_loaded": "Loaded bundled {kind} (local source)",
    "mirror_write_failed": "Failed to save {kind} to cache",
    "stale_discarded": "Discarding {kind} fetched under a superseded configuration",
    "mirror_write_skipped": "Not caching {kind} fetched under a superseded configuration",
}


@dataclasses.dataclass(frozen=True)
class LoaderEvent:
    """One thing the loader did.

    Fields
    ------
    action:     e.g. "cache_hit", "in_flight_skip", "remote_loaded",
                "remote_item_failed", "remote_failed", "mirror_fallback",
                "bundled_fallback", "local_loaded", "mirror_write_failed",
                "stale_discarded", "mirror_write_skipped", "reconfigured",
                "refreshed".
    kind:       "steps" / "workflows", or None for loader-wide events.
    timestamp:  Unix time of emission.
    detail:     Small JSON-serialisable payload (counts, paths, error text).
    """

    action: str
    kind: str | None = None
    timestamp: float = dataclasses.field(default_factory=time.time)
    detail: dict[str, Any] = dataclasses.field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


class EventSink(Protocol):
    def emit(self, event: LoaderEvent) -> None: ...


class LoggingEventSink:
    """Default sink: one log line per event."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def emit(self, event: LoaderEvent) -> None:
        if event.action in _WARNING_ACTIONS:
            level = logging.WARNING
        elif event.action in _INFO_ACTIONS:
            level = logging.INFO
        else:
            level = logging.DEBUG
        template = _MESSAGES.get(event.action)
        text = template.format(kind=event.kind) if template else event.action
        if event.detail:
            self._log.log(level, "[TemplateRepository] %s: %s", text, event.detail)
        else:
            self._log.log(level, "[TemplateRepository] %s", text)


class MemoryEventSink:
    """Keeps the most recent events in memory (tests, status pages)."""

    def __init__(self, maxlen: int = 500) -> None:
        self._events: deque[LoaderEvent] = deque(maxlen=maxlen)

    def emit(self, event: LoaderEvent) -> None:
        self._events.append(event)

    @property
    def events(self) -> list[LoaderEvent]:
        return list(self._events)

    def actions(self, kind: str | None = None) -> list[str]:
        return [e.action for e in self._events if kind is None or e.kind == kind]

    def clear(self) -> None:
        self._events.clear()


def safe_emit(sink: EventSink, event: LoaderEvent) -> None:
    """Emit without ever raising into the caller."""
    try:
        sink.emit(event)
    except Exception as exc:
        logger.warning("[TemplateRepository] event sink failed on %s: %s", event.action, exc)
