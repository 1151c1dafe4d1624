# price_aggregator/services/retry.py

"""Bounded retry with linear backoff for source fetches."""

import asyncio
import logging
from collections.abc import Callable

from price_aggregator.models.product import RawRecord

logger = logging.getLogger("price_aggregator.retry")


async def with_retry(
    op: Callable[[], list[RawRecord]],
    max_attempts: int = 3,
    base_delay: float = 1.0,
    timeout: float | None = None,
    label: str = "source",
) -> list[RawRecord]:
    """Run a blocking fetch in a worker thread, retrying on failure.

    After failed attempt *n* the call waits ``base_delay * n`` seconds.
    A timeout counts as a failed attempt.  When every attempt fails the
    error is logged and an empty list is returned instead of raising.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    for attempt in range(1, max_attempts + 1):
        try:
            call = asyncio.to_thread(op)
            if timeout is not None:
                records = await asyncio.wait_for(call, timeout)
            else:
                records = await call
            return list(records or [])
        except Exception as exc:
            logger.warning(
                "[%s] Attempt %d/%d failed: %s",
                label,
                attempt,
                max_attempts,
                str(exc) or type(exc).__name__,
            )
            if attempt == max_attempts:
                logger.error(
                    "[%s] Final attempt failed, continuing without its data",
                    label,
                    exc_info=exc,
                )
                return []
            await asyncio.sleep(base_delay * attempt)
    return []
