from collections.abc import Callable
import time
from typing import TypeVar


T = TypeVar("T")


class RetryExhaustedError(RuntimeError):
    pass


def run_with_retries(
    fn: Callable[[], T],
    *,
    max_retries: int,
    backoff_seconds: float,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_attempt_failure: Callable[[int, Exception], None] | None = None,
) -> T:
    last_error: Exception | None = None

    for attempt in range(1, max_retries + 2):
        try:
            return fn()
        except retry_on as exc:
            last_error = exc
            if on_attempt_failure:
                on_attempt_failure(attempt, exc)
            if attempt > max_retries:
                break
            time.sleep(backoff_seconds * attempt)

    raise RetryExhaustedError(str(last_error)) from last_error
