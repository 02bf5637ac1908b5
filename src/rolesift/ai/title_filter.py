"""Title triage: cheap batched pass that flags obviously irrelevant listings."""

from __future__ import annotations

import asyncio
import json
import logging
import math
from dataclasses import asdict
from typing import Any, Sequence

from rolesift.ai.providers import JsonCompleter
from rolesift.ai.retry import RetryPolicy, Sleep, call_with_fallback
from rolesift.events import (
    TITLE_BATCH_COMPLETED,
    TITLE_BATCH_FAILED,
    TITLE_BATCH_STARTED,
    EventSink,
    LoggingEventSink,
    PipelineEvent,
)
from rolesift.exceptions import RetryExhaustedError, TitleFilterError
from rolesift.models import TitleEntry, TitleFilterResult
from rolesift.settings import AppSettings

logger = logging.getLogger(__name__)

DEFAULT_REASON = "Marked irrelevant."

PASS_THROUGH = "pass_through"
ABORT = "abort"


def merge_title_response(parsed: dict[str, Any], result: TitleFilterResult) -> None:
    """Fold one batch reply into *result*. Entries with a blank id are ignored."""
    for entry in parsed.get("remove") or []:
        if not isinstance(entry, dict):
            continue
        job_id = str(entry.get("job_id") or "").strip()
        if not job_id:
            continue
        reason = entry.get("reason")
        reason = reason.strip() if isinstance(reason, str) and reason.strip() else DEFAULT_REASON
        result.removal_set.add(job_id)
        result.reasons[job_id] = reason

    for job_id in parsed.get("removeJobIds") or []:
        if isinstance(job_id, str) and job_id.strip():
            result.removal_set.add(job_id.strip())
            result.reasons.setdefault(job_id.strip(), DEFAULT_REASON)


class TitleFilter:
    """Batches entries and asks the model chain which ones to drop."""

    def __init__(
        self,
        gateway: JsonCompleter,
        policy: RetryPolicy,
        prompt: str,
        batch_size: int,
        failure_policy: str = PASS_THROUGH,
        *,
        site: str = "",
        sink: EventSink | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if failure_policy not in (PASS_THROUGH, ABORT):
            raise ValueError(f"unknown title failure policy {failure_policy!r}")
        self._gateway = gateway
        self._policy = policy
        self._prompt = prompt
        self._batch_size = batch_size
        self._failure_policy = failure_policy
        self._site = site
        self._sink = sink or LoggingEventSink()
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        gateway: JsonCompleter,
        *,
        site: str = "",
        sink: EventSink | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> "TitleFilter":
        ai = settings.ai
        return cls(
            gateway,
            RetryPolicy.build(ai.title_models, ai.title_max_attempts, ai.retry_delay_seconds),
            ai.title_prompt,
            ai.title_batch_size,
            ai.title_failure_policy,
            site=site,
            sink=sink,
            sleep=sleep,
        )

    async def filter_titles(self, entries: Sequence[TitleEntry]) -> TitleFilterResult:
        result = TitleFilterResult()
        if not entries:
            return result

        total = math.ceil(len(entries) / self._batch_size)
        failed = 0
        for index in range(total):
            batch = entries[index * self._batch_size : (index + 1) * self._batch_size]
            number = index + 1
            self._emit(TITLE_BATCH_STARTED, batch=number, of=total, size=len(batch))
            user_content = json.dumps([asdict(e) for e in batch], indent=2)

            async def _ask(spec):
                return await self._gateway.complete_json(spec, self._prompt, user_content)

            try:
                parsed = await call_with_fallback(
                    self._policy,
                    _ask,
                    label=f"title batch {number}/{total}",
                    site=self._site,
                    sink=self._sink,
                    sleep=self._sleep,
                )
            except RetryExhaustedError as exc:
                failed += 1
                self._emit(TITLE_BATCH_FAILED, batch=number, of=total, size=len(batch), error=str(exc))
                if self._failure_policy == ABORT:
                    raise TitleFilterError(f"Title batch {number}/{total} failed: {exc}") from exc
                logger.warning(
                    "Title batch %d/%d failed; %d job(s) pass through unfiltered.",
                    number,
                    total,
                    len(batch),
                )
                continue

            before = len(result.removal_set)
            merge_title_response(parsed, result)
            self._emit(
                TITLE_BATCH_COMPLETED,
                batch=number,
                of=total,
                removed=len(result.removal_set) - before,
            )

        if failed:
            logger.warning(
                "Title filtering finished with %d failed batch(es); some jobs were not filtered.",
                failed,
            )
        return result

    def _emit(self, kind: str, **data: Any) -> None:
        self._sink.emit(PipelineEvent(kind, self._site, data))
