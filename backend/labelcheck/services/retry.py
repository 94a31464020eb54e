"""Rate-limit fallback and backoff for model calls.

A call walks the model list in priority order; a rate-limited model hands
over to the next one. When every model is rate-limited the loop sleeps
(initial delay, doubling, capped) and walks the list again, up to
``max_retries`` times, after which it raises ``CapacityError``.

All retry state lives in ``BackoffState``, created per call, and the sleep
function is part of ``RetryPolicy`` so tests can run the loop on a fake clock.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Sequence, TypeVar

from ..config import Settings
from .errors import CapacityError, ContentPolicyError, RateLimitedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry ceiling, delay growth, and the clock used to wait."""
    max_retries: int = 6
    initial_delay: float = 1.0
    max_delay: float = 16.0
    content_policy_delay: float = 0.3
    sleep: SleepFn = asyncio.sleep

    @classmethod
    def from_settings(cls, settings: Settings, sleep: SleepFn = asyncio.sleep) -> "RetryPolicy":
        return cls(
            max_retries=settings.rate_limit_max_retries,
            initial_delay=settings.rate_limit_initial_delay_seconds,
            max_delay=settings.rate_limit_max_delay_seconds,
            content_policy_delay=settings.content_policy_retry_delay_seconds,
            sleep=sleep,
        )


@dataclass
class BackoffState:
    """Counters for one call's backoff loop."""
    policy: RetryPolicy
    retries: int = 0
    next_delay: float = field(init=False)

    def __post_init__(self):
        self.next_delay = self.policy.initial_delay

    @property
    def exhausted(self) -> bool:
        return self.retries >= self.policy.max_retries

    def advance(self) -> float:
        """Consume one retry; return the delay to wait before it."""
        delay = min(self.next_delay, self.policy.max_delay)
        self.retries += 1
        self.next_delay = min(self.next_delay * 2, self.policy.max_delay)
        return delay


async def call_with_fallback(
    models: Sequence[str],
    call: Callable[[str], Awaitable[T]],
    policy: RetryPolicy,
    label: str = "model call",
) -> T:
    """Run ``call(model)`` over the fallback list until one is not rate-limited."""
    if not models:
        raise ValueError("At least one model is required")

    state = BackoffState(policy)
    while True:
        for model in models:
            try:
                return await call(model)
            except RateLimitedError:
                logger.warning(f"[{label}] model '{model}' rate limited, trying next model")

        if state.exhausted:
            logger.error(f"[{label}] all models rate limited after {state.retries} retries")
            raise CapacityError("All models are at capacity. Please try again shortly.")

        delay = state.advance()
        logger.info(
            f"[{label}] all models rate limited, backing off {delay:.1f}s "
            f"(retry {state.retries}/{policy.max_retries})"
        )
        await policy.sleep(delay)


async def call_with_content_policy_retry(
    call: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    label: str = "model call",
) -> T:
    """Retry once, same model, after a short fixed delay on a content-policy rejection."""
    try:
        return await call()
    except ContentPolicyError:
        logger.info(f"[{label}] content policy rejection, retrying once")
        await policy.sleep(policy.content_policy_delay)
        return await call()
