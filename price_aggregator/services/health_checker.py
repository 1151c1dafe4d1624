# price_aggregator/services/health_checker.py

"""Source connectivity health checker."""

import asyncio
import logging
import time
from dataclasses import dataclass

from price_aggregator.config.settings import Settings
from price_aggregator.sources.base_source import BaseSource

logger = logging.getLogger("price_aggregator.health")


@dataclass
class HealthResult:
    """Result of a single source health check."""

    source_id: str
    status: str  # "ok", "slow", "down"
    latency_ms: float
    record_count: int
    message: str


def probe_source(source: BaseSource) -> HealthResult:
    """Call a source's fetch once and classify the outcome."""
    start = time.monotonic()
    try:
        records = source.fetch()
    except Exception as exc:
        elapsed_ms = (time.monotonic() - start) * 1000
        return HealthResult(
            source_id=source.source_name,
            status="down",
            latency_ms=elapsed_ms,
            record_count=0,
            message=str(exc)[:80],
        )

    elapsed_ms = (time.monotonic() - start) * 1000
    if elapsed_ms > Settings.SLOW_SOURCE_MS:
        return HealthResult(
            source_id=source.source_name,
            status="slow",
            latency_ms=elapsed_ms,
            record_count=len(records),
            message="High latency",
        )

    return HealthResult(
        source_id=source.source_name,
        status="ok",
        latency_ms=elapsed_ms,
        record_count=len(records),
        message="",
    )


class HealthChecker:
    """Runs concurrent health probes against all sources."""

    def __init__(self, sources: list[BaseSource]) -> None:
        self.sources = sources

    async def check_all(self) -> list[HealthResult]:
        """Probe every source concurrently, results in source order."""
        tasks = [
            asyncio.to_thread(probe_source, src)
            for src in self.sources
        ]
        results: list[HealthResult] = list(
            await asyncio.gather(*tasks)
        )
        for r in results:
            logger.info(
                "Health check %s: %s (%.0fms) %s",
                r.source_id,
                r.status,
                r.latency_ms,
                r.message,
            )
        return results
