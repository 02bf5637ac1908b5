"""One retry/fallback loop shared by both AI stages."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, TypeVar

from rolesift.events import ATTEMPT_FAILED, EventSink, PipelineEvent
from rolesift.exceptions import ConfigurationError, RetryExhaustedError
from rolesift.settings import ModelSpec

logger = logging.getLogger(__name__)

T = TypeVar("T")
Sleep = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt *k* (1-based) uses ``models[min(k - 1, len - 1)]`` and is
    followed, on failure, by a wait of ``k * base_delay`` seconds."""

    models: tuple[ModelSpec, ...]
    max_attempts: int
    base_delay: float = 0.0

    def __post_init__(self) -> None:
        if not self.models:
            raise ConfigurationError("A retry policy needs at least one model.")
        if self.max_attempts <= 0:
            raise ConfigurationError("max_attempts must be positive.")

    @classmethod
    def build(cls, models: Sequence[ModelSpec], max_attempts: int, base_delay: float) -> "RetryPolicy":
        return cls(tuple(models), max_attempts, base_delay)

    def model_for(self, attempt: int) -> ModelSpec:
        return self.models[min(attempt - 1, len(self.models) - 1)]

    def delay_for(self, attempt: int) -> float:
        return attempt * self.base_delay


async def call_with_fallback(
    policy: RetryPolicy,
    call: Callable[[ModelSpec], Awaitable[T]],
    *,
    label: str,
    site: str = "",
    sink: EventSink | None = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run *call* down the policy's model chain until one attempt succeeds.

    Raises :class:`RetryExhaustedError` chained to the last failure.
    """
    last_error: Exception | None = None
    for attempt in range(1, policy.max_attempts + 1):
        spec = policy.model_for(attempt)
        logger.debug("%s: attempt %d/%d using %s.", label, attempt, policy.max_attempts, spec)
        try:
            return await call(spec)
        except ConfigurationError:
            raise
        except Exception as exc:
            last_error = exc
            logger.warning(
                "%s: attempt %d/%d with %s failed: %s",
                label,
                attempt,
                policy.max_attempts,
                spec,
                exc,
            )
            if sink is not None:
                sink.emit(
                    PipelineEvent(
                        ATTEMPT_FAILED,
                        site,
                        {"label": label, "attempt": attempt, "model": str(spec), "error": str(exc)},
                    )
                )
            if attempt < policy.max_attempts:
                await sleep(policy.delay_for(attempt))

    raise RetryExhaustedError(label, policy.max_attempts, last_error) from last_error
