"""Backoff policy for reaching the database at start-up.

Only infrastructure start-up is retried. Engine operations are never
retried automatically; their failures go straight back to the caller.
"""

from __future__ import annotations

import logging
from typing import Callable

import sqlalchemy.exc
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

CONNECTION_ERRORS = (
    sqlalchemy.exc.OperationalError,
    sqlalchemy.exc.InterfaceError,
    ConnectionError,
    TimeoutError,
    OSError,
)


def retry_on_database_error(max_attempts: int = 3) -> Callable:
    """Retry a coroutine on database connection errors.

    Handles connection refusals, drops and timeouts while the database is
    still coming up.

    Args:
        max_attempts: Maximum number of attempts, including the first

    Returns:
        Decorator applying the retry policy
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
        retry=retry_if_exception_type(CONNECTION_ERRORS),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
