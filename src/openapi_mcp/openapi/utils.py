"""Retry utilities for OpenAPI requests."""

import asyncio
import logging
import random
import time
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import tenacity

from ..constants import (
    DEFAULT_BASE_DELAY_MS,
    DEFAULT_JITTER_RATIO,
    DEFAULT_MAX_DELAY_MS,
    DEFAULT_MAX_RETRIES,
    DEFAULT_RESPECT_RETRY_AFTER,
)
from .models import RetryConfig, RetryPolicy

logger = logging.getLogger(__name__)

TOO_MANY_REQUESTS = 429

_FIELDS = {
    "max_retries": DEFAULT_MAX_RETRIES,
    "base_delay_ms": DEFAULT_BASE_DELAY_MS,
    "max_delay_ms": DEFAULT_MAX_DELAY_MS,
    "jitter_ratio": DEFAULT_JITTER_RATIO,
    "respect_retry_after": DEFAULT_RESPECT_RETRY_AFTER,
}


def resolve_retry_policy(
    call: Optional[RetryConfig] = None, api: Optional[RetryConfig] = None
) -> RetryPolicy:
    """Resolve the retry policy of one call.

    Each field comes from the call override, then the API default, then the
    global default. Resolved values are clamped: retries are never negative,
    delays are at least 1 ms and jitter stays within [0, 1].

    Args:
        call: Per-call override
        api: API default

    Returns:
        The resolved policy
    """
    values: Dict[str, Any] = {}
    for field, default in _FIELDS.items():
        value = None
        for layer in (call, api):
            if layer is not None and getattr(layer, field) is not None:
                value = getattr(layer, field)
                break
        values[field] = default if value is None else value

    return RetryPolicy(
        max_retries=max(0, int(values["max_retries"])),
        base_delay_ms=max(1, int(values["base_delay_ms"])),
        max_delay_ms=max(1, int(values["max_delay_ms"])),
        jitter_ratio=min(1.0, max(0.0, float(values["jitter_ratio"]))),
        respect_retry_after=bool(values["respect_retry_after"]),
    )


def parse_retry_after_ms(value: Optional[str], now_ms: float) -> Optional[float]:
    """Parse a Retry-After header value into a delay.

    Args:
        value: Header value, either whole seconds or an HTTP date
        now_ms: Current time in milliseconds since the epoch

    Returns:
        Delay in milliseconds, or None when the value is missing, invalid,
        zero or in the past
    """
    if not value:
        return None

    trimmed = value.strip()
    if trimmed.isdigit():
        seconds = int(trimmed)
        return seconds * 1000 if seconds > 0 else None

    try:
        when = parsedate_to_datetime(trimmed)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)

    delta_ms = when.timestamp() * 1000 - now_ms
    return delta_ms if delta_ms > 0 else None


class RetryHandler:
    """Handler for retrying 429 responses with exponential backoff.

    Only responses with status 429 are retried; exceptions propagate from the
    first attempt that raises them. When the retry budget is exhausted the
    last 429 response is returned as-is.

    Args:
        policy: Resolved retry policy
        sleep: Awaitable sleep taking seconds
        rand: Source of uniform random numbers in [0, 1)
        clock: Returns the current time in seconds since the epoch
    """

    def __init__(
        self,
        policy: RetryPolicy,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rand: Callable[[], float] = random.random,
        clock: Callable[[], float] = time.time,
    ):
        self.policy = policy
        self._sleep = sleep
        self._rand = rand
        self._clock = clock

    def should_retry(self, response: httpx.Response) -> bool:
        return response.status_code == TOO_MANY_REQUESTS

    def compute_delay_ms(self, retry_after: Optional[str], retry_index: int) -> float:
        """Calculate the delay before the next attempt.

        Args:
            retry_after: Retry-After header of the 429 response
            retry_index: Number of retries already made (0-based)

        Returns:
            Delay in milliseconds, within [0, max_delay_ms]
        """
        policy = self.policy
        if policy.respect_retry_after:
            retry_after_ms = parse_retry_after_ms(retry_after, self._clock() * 1000)
            if retry_after_ms is not None:
                return min(retry_after_ms, policy.max_delay_ms)

        capped = min(policy.base_delay_ms * (2**retry_index), policy.max_delay_ms)
        if policy.jitter_ratio == 0:
            return capped

        jittered = capped * (1 + (self._rand() * 2 - 1) * policy.jitter_ratio)
        return max(0.0, min(float(policy.max_delay_ms), jittered))

    def _wait(self, retry_state: tenacity.RetryCallState) -> float:
        response = retry_state.outcome.result()
        delay_ms = self.compute_delay_ms(
            response.headers.get("retry-after"), retry_state.attempt_number - 1
        )
        return delay_ms / 1000

    def _before_sleep(self, retry_state: tenacity.RetryCallState) -> None:
        logger.info(
            f"Received 429, retrying in {retry_state.upcoming_sleep:.3f}s "
            f"(retry {retry_state.attempt_number}/{self.policy.max_retries})"
        )

    def tenacity_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for a tenacity retrying controller."""
        return {
            "stop": tenacity.stop_after_attempt(self.policy.max_retries + 1),
            "retry": tenacity.retry_if_result(self.should_retry),
            "wait": self._wait,
            "sleep": self._sleep,
            "before_sleep": self._before_sleep,
            "retry_error_callback": lambda retry_state: retry_state.outcome.result(),
            "reraise": True,
        }

    async def run(self, attempt: Callable[[], Awaitable[httpx.Response]]) -> httpx.Response:
        """Run ``attempt`` until it returns a non-429 response or the budget is spent.

        Args:
            attempt: Coroutine function performing one HTTP attempt

        Returns:
            The final response
        """
        retrying = tenacity.AsyncRetrying(**self.tenacity_kwargs())
        return await retrying(attempt)
