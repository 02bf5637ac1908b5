"""Detail evaluation: one accept/reject decision per candidate from its full description."""

from __future__ import annotations

import asyncio
import logging

from rolesift.ai.providers import JsonCompleter
from rolesift.ai.retry import RetryPolicy, Sleep, call_with_fallback
from rolesift.events import EventSink
from rolesift.models import DetailPayload, DetailVerdict
from rolesift.settings import AppSettings, ModelSpec, SiteSettings

logger = logging.getLogger(__name__)


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "yes", "accept", "accepted"}
    return bool(value)


def render_payload(payload: DetailPayload) -> str:
    return (
        f"Title: {payload.title}\n"
        f"Company: {payload.company}\n"
        f"Location: {payload.location}\n"
        f"URL: {payload.url}\n"
        f"Description:\n{payload.description}"
    )


class DetailEvaluator:
    """Asks the detail model chain for a verdict.

    Exhausting every attempt raises :class:`RetryExhaustedError`; it is never
    turned into a rejection here.
    """

    def __init__(
        self,
        gateway: JsonCompleter,
        policy: RetryPolicy,
        prompt: str,
        *,
        site: str = "",
        sink: EventSink | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._gateway = gateway
        self._policy = policy
        self._prompt = prompt
        self._site = site
        self._sink = sink
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls,
        settings: AppSettings,
        site: SiteSettings,
        gateway: JsonCompleter,
        *,
        sink: EventSink | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> "DetailEvaluator":
        ai = settings.ai
        return cls(
            gateway,
            RetryPolicy.build(ai.detail_models, ai.detail_max_attempts, ai.retry_delay_seconds),
            settings.detail_prompt_for(site),
            site=site.key,
            sink=sink,
            sleep=sleep,
        )

    async def evaluate(self, payload: DetailPayload) -> DetailVerdict:
        user_content = render_payload(payload)

        async def _ask(spec: ModelSpec) -> DetailVerdict:
            parsed = await self._gateway.complete_json(spec, self._prompt, user_content)
            reasoning = parsed.get("reasoning")
            return DetailVerdict(
                accepted=_as_bool(parsed.get("accepted")),
                reasoning=reasoning if isinstance(reasoning, str) else "",
            )

        return await call_with_fallback(
            self._policy,
            _ask,
            label=f"detail evaluation of {payload.url}",
            site=self._site,
            sink=self._sink,
            sleep=self._sleep,
        )
