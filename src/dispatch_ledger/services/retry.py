"""Automatic retry of storage operations that failed with ``PersistenceError``."""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from ..exceptions import PersistenceError

T = TypeVar("T")

logger = logging.getLogger(__name__)


def retry_persistence(
    operation: Callable[[], T],
    *,
    max_retries: int,
    backoff_seconds: float,
    description: str = "storage operation",
) -> T:
    """Run ``operation``, retrying on ``PersistenceError``.

    Only atomic, idempotency-guarded operations may be wrapped: a failed attempt
    leaves nothing behind and a replay of a committed attempt is rejected by the
    operation's own guard.
    """
    attempt = 0
    while True:
        try:
            return operation()
        except PersistenceError as exc:
            attempt += 1
            if attempt > max_retries:
                logger.error(f"{description} failed after {max_retries} retries: {exc}")
                raise
            wait_time = backoff_seconds * attempt
            logger.warning(
                f"{description} failed, retrying in {wait_time:.1f}s (attempt {attempt}/{max_retries}): {exc}"
            )
            time.sleep(wait_time)
