"""Structured pipeline events and the sinks that receive them."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# ---- event kinds ----

KEYWORD_SCRAPED = "keyword_scraped"
KEYWORD_FAILED = "keyword_failed"
BATCH_STARTED = "batch_started"
BATCH_COMPLETED = "batch_completed"
TITLE_BATCH_STARTED = "title_batch_started"
TITLE_BATCH_COMPLETED = "title_batch_completed"
TITLE_BATCH_FAILED = "title_batch_failed"
ATTEMPT_FAILED = "attempt_failed"
TITLE_REJECTED = "title_rejected"
DETAIL_ACCEPTED = "detail_accepted"
DETAIL_REJECTED = "detail_rejected"
DETAIL_FAILED = "detail_failed"
STAGE_ENDED = "stage_ended"
RUN_SUMMARY = "run_summary"

_WARNING_KINDS = frozenset({KEYWORD_FAILED, TITLE_BATCH_FAILED, ATTEMPT_FAILED, DETAIL_FAILED})


@dataclass(frozen=True)
class PipelineEvent:
    kind: str
    site: str = ""
    data: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]


@runtime_checkable
class EventSink(Protocol):
    def emit(self, event: PipelineEvent) -> None:
        ...


class LoggingEventSink:
    """Default sink: one log line per event, warnings for failures."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def emit(self, event: PipelineEvent) -> None:
        level = logging.WARNING if event.kind in _WARNING_KINDS else logging.INFO
        details = " ".join(f"{k}={v!r}" for k, v in event.data.items())
        self._log.log(level, "[%s] %s %s", event.site or "-", event.kind, details)


class RecordingEventSink:
    """Keeps every event in memory."""

    def __init__(self) -> None:
        self.events: list[PipelineEvent] = []

    def emit(self, event: PipelineEvent) -> None:
        self.events.append(event)

    def of_kind(self, kind: str) -> list[PipelineEvent]:
        return [e for e in self.events if e.kind == kind]

    def kinds(self) -> list[str]:
        return [e.kind for e in self.events]


class FanOutEventSink:
    def __init__(self, *sinks: EventSink) -> None:
        self._sinks = sinks

    def emit(self, event: PipelineEvent) -> None:
        for sink in self._sinks:
            sink.emit(event)
