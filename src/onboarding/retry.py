"""
Bounded retry combinator.

Both candidate-sourcing loops (fetch-with-photos and radius expansion) are
"try up to N times, wait a little between tries, stop as soon as the result
is good enough". This wraps tenacity so they share one definition of that.

Give-up rule: when attempts run out, the last successful result is returned
even if it isn't good enough. An exception only escapes if every attempt
raised.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    backoff_seconds: float = 0.0


async def retry_until(
    attempt: Callable[[int], Awaitable[T]],
    *,
    policy: RetryPolicy,
    done: Callable[[T], bool],
    retry_on: tuple[type[BaseException], ...] = (),
    before_retry: Callable[[int, T | None], None] | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: str = "attempt",
) -> T:
    """
    Call `attempt(n)` for n = 1..max_attempts until `done(result)`.

    Args:
        attempt: Async callable taking the 1-based attempt number
        policy: Max attempts and fixed backoff between them
        done: Early-exit predicate on a successful result
        retry_on: Exception types that count as a failed attempt (others propagate)
        before_retry: Hook run before each retry with the attempt number just
            finished and its result (None if it raised)
        sleep: Sleep function (injectable for tests)
        label: Name used in log lines

    Returns:
        The first result satisfying `done`, else the last successful result.

    Raises:
        The last `retry_on` exception if no attempt succeeded.
    """
    last_good: list[T] = []

    async def _call(retry_state_holder: list[int]) -> T:
        retry_state_holder[0] += 1
        result = await attempt(retry_state_holder[0])
        last_good[:] = [result]
        return result

    def _before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            logger.warning(f"{label} {retry_state.attempt_number} failed: {outcome.exception()}")
            result = None
        else:
            result = outcome.result() if outcome is not None else None
            logger.debug(f"{label} {retry_state.attempt_number} not done, retrying")
        if before_retry is not None:
            before_retry(retry_state.attempt_number, result)

    def _give_up(retry_state: RetryCallState) -> T:
        outcome = retry_state.outcome
        if last_good:
            return last_good[0]
        # Every attempt raised
        raise outcome.exception()

    condition = retry_if_result(lambda r: not done(r))
    if retry_on:
        condition = condition | retry_if_exception_type(retry_on)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_fixed(policy.backoff_seconds),
        retry=condition,
        before_sleep=_before_sleep,
        retry_error_callback=_give_up,
        sleep=sleep,
    )
    return await retrying(_call, [0])
