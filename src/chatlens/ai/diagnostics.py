"""Pipeline diagnostics: observer interface for recovery and failure events.

The analyzer never prints. Every degraded path (repair stage needed,
structural fallback, validation fallback, failed persistence, provider
retry or failure) is reported as a ``PipelineEvent`` to an injected
``PipelineObserver``. Two observers ship with the package:

- ``LoggingObserver``: one structured log line per event (the default)
- ``CountingObserver``: thread-safe counters plus a bounded event history

Events carry metadata only. No prompt, conversation or response content is
ever recorded.

Example:
    >>> observer = CountingObserver()
    >>> analyzer = ConversationAnalyzer(observer=observer)
    >>> analyzer.analyze_chat(...)
    >>> observer.summary()["structural_fallback"]
    0
"""

from __future__ import annotations

import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Kinds of pipeline events."""

    REPAIR_STAGE = "repair_stage"
    STRUCTURAL_FALLBACK = "structural_fallback"
    VALIDATION_FALLBACK = "validation_fallback"
    PERSISTENCE_FAILURE = "persistence_failure"
    PROVIDER_RETRY = "provider_retry"
    PROVIDER_FAILURE = "provider_failure"


@dataclass
class PipelineEvent:
    """A single diagnostic event.

    Attributes:
        kind: What happened.
        provider: Provider involved, if any.
        model: Model involved, if any.
        detail: Short description (stage name, error type ...).
        data: Extra metadata (counts, attempt numbers).
        timestamp: When the event was recorded (UTC).
    """

    kind: EventKind
    provider: str | None = None
    model: str | None = None
    detail: str | None = None
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "kind": self.kind.value,
            "provider": self.provider,
            "model": self.model,
            "detail": self.detail,
            "data": dict(self.data),
            "timestamp": self.timestamp.isoformat(),
        }


class PipelineObserver:
    """Receives pipeline events. The base implementation ignores them."""

    def record(self, event: PipelineEvent) -> None:
        """Handle one event. Implementations must not raise."""


class LoggingObserver(PipelineObserver):
    """Writes each event as a structured log line."""

    LEVELS: dict[EventKind, int] = {
        EventKind.REPAIR_STAGE: logging.INFO,
        EventKind.STRUCTURAL_FALLBACK: logging.WARNING,
        EventKind.VALIDATION_FALLBACK: logging.WARNING,
        EventKind.PERSISTENCE_FAILURE: logging.ERROR,
        EventKind.PROVIDER_RETRY: logging.WARNING,
        EventKind.PROVIDER_FAILURE: logging.ERROR,
    }

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log or logger

    def record(self, event: PipelineEvent) -> None:
        level = self.LEVELS.get(event.kind, logging.INFO)
        self._logger.log(
            level,
            f"Pipeline event {event.kind.value}: {event.detail or '-'}",
            extra={"pipeline_event": event.to_dict()},
        )


class CountingObserver(PipelineObserver):
    """Counts events by kind and keeps the most recent ones.

    Safe to share across concurrent analyses.

    Attributes:
        max_events: How many recent events to retain.
    """

    def __init__(self, max_events: int = 100, forward_to: PipelineObserver | None = None) -> None:
        self.max_events = max_events
        self._counts: Counter[str] = Counter()
        self._events: deque[PipelineEvent] = deque(maxlen=max_events)
        self._forward_to = forward_to
        self._lock = threading.Lock()

    def record(self, event: PipelineEvent) -> None:
        with self._lock:
            self._counts[event.kind.value] += 1
            self._events.append(event)
        if self._forward_to is not None:
            self._forward_to.record(event)

    def count(self, kind: EventKind | str) -> int:
        key = kind.value if isinstance(kind, EventKind) else kind
        with self._lock:
            return self._counts[key]

    @property
    def events(self) -> list[PipelineEvent]:
        with self._lock:
            return list(self._events)

    def summary(self) -> dict[str, int]:
        """Counts for every event kind, zero-filled."""
        with self._lock:
            return {kind.value: self._counts[kind.value] for kind in EventKind}

    def reset(self) -> None:
        with self._lock:
            self._counts.clear()
            self._events.clear()
