from __future__ import annotations

import logging
import sqlite3
from collections.abc import Callable
from typing import Any, TypeVar

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_STORE_ERRORS: tuple[type[BaseException], ...] = (sqlite3.OperationalError,)


def run_with_retry(
    operation: Callable[..., T],
    *args: Any,
    attempts: int = 3,
    delay_seconds: float = 0.5,
    retryable: tuple[type[BaseException], ...] = RETRYABLE_STORE_ERRORS,
    **kwargs: Any,
) -> T:
    """Run an idempotent mutation, retrying transient store errors a bounded number of times."""
    retrying = Retrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay_seconds),
        retry=retry_if_exception_type(retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return retrying(operation, *args, **kwargs)
