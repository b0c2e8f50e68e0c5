from __future__ import annotations

import time
from typing import Any, Callable, List, Optional, Tuple, Type

from .errors import SessionError
from .models import AttemptRecord, RetryOutcome


class RetryPolicy:
    """Bounded fixed-delay retry.

    An item gets max_retries + 1 attempts in total, separated by a constant
    delay. Unlike exponential backoff the delay does not grow, which keeps
    total run time predictable against a rate-limited source."""

    def __init__(self, max_retries: int = 0, delay_seconds: float = 3.0) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if delay_seconds < 0:
            raise ValueError("delay_seconds must be >= 0")
        self._max_retries = max_retries
        self._delay = delay_seconds

    @property
    def max_retries(self) -> int:
        return self._max_retries

    @property
    def max_attempts(self) -> int:
        return self._max_retries + 1

    def get_sleep(self, attempt: int, error_type: Optional[str] = None) -> float:
        """Delay in seconds before the attempt following `attempt`."""
        return self._delay


def describe(exc: BaseException) -> str:
    message = str(exc)
    return f"{type(exc).__name__}: {message}" if message else type(exc).__name__


def retry_call(
    operation: Callable[[int], Any],
    policy: RetryPolicy,
    item_id: str = "",
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    give_up_on: Tuple[Type[BaseException], ...] = (SessionError,),
    on_failure: Optional[Callable[[AttemptRecord], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> RetryOutcome:
    """Run `operation(attempt)` until it succeeds or attempts are exhausted.

    `operation` is responsible for releasing its own per-attempt resources
    before raising. Exceptions in `give_up_on` and exceptions outside
    `retry_on` propagate to the caller unchanged.
    """
    attempts: List[AttemptRecord] = []
    for attempt in range(policy.max_attempts):
        try:
            value = operation(attempt)
        except give_up_on:
            raise
        except retry_on as exc:
            record = AttemptRecord(item_id=item_id, attempt=attempt, success=False, reason=describe(exc))
            attempts.append(record)
            if on_failure:
                on_failure(record)
            if attempt + 1 < policy.max_attempts:
                sleep(policy.get_sleep(attempt, type(exc).__name__))
            continue

        attempts.append(AttemptRecord(item_id=item_id, attempt=attempt, success=True))
        return RetryOutcome(success=True, value=value, attempts=tuple(attempts))

    return RetryOutcome(
        success=False,
        value=None,
        attempts=tuple(attempts),
        reason=attempts[-1].reason,
    )
