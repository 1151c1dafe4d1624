# price_aggregator/services/aggregator.py

"""One aggregation cycle: fetch, normalise, reconcile."""

import asyncio
import importlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from price_aggregator.config.settings import Settings
from price_aggregator.filters.normalizer import ProductNormalizer
from price_aggregator.models.product import RawRecord
from price_aggregator.services.notifier import PriceUpdateChannel
from price_aggregator.services.reconciler import (
    Reconciler,
    ReconcileResult,
)
from price_aggregator.services.retry import with_retry
from price_aggregator.sources.base_source import BaseSource
from price_aggregator.storage.catalog_store import CatalogStore

logger = logging.getLogger("price_aggregator.aggregator")


@dataclass
class CycleResult:
    """Summary of a single aggregation cycle."""

    fetched_count: int = 0
    normalized_count: int = 0
    dropped_count: int = 0
    source_counts: dict[str, int] = field(
        default_factory=lambda: dict[str, int]()
    )
    reconcile: ReconcileResult | None = None
    duration_s: float = 0.0

    @property
    def persisted(self) -> bool:
        return self.reconcile is not None


def _load_source_class(dotted_path: str) -> type[Any]:
    """Dynamically import a source class from its dotted module path."""
    module_path, class_name = dotted_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    cls: type[Any] = getattr(module, class_name)
    return cls


def build_sources(
    configs: list[dict[str, Any]] | None = None,
) -> list[BaseSource]:
    """Instantiate the configured sources, in registry order."""
    sources: list[BaseSource] = []
    for cfg in configs or Settings.AVAILABLE_SOURCES:
        source_cls = _load_source_class(cfg["source"])
        sources.append(source_cls(**cfg.get("options", {})))
    return sources


class AggregationService:
    """Runs the fetch → normalise → reconcile pipeline once per call."""

    def __init__(
        self,
        sources: list[BaseSource] | None = None,
        store: CatalogStore | None = None,
        channel: PriceUpdateChannel | None = None,
        max_attempts: int | None = None,
        base_delay: float | None = None,
        source_timeout: float | None = None,
    ) -> None:
        self.settings = Settings()
        self.sources = (
            sources if sources is not None else build_sources()
        )
        self.store = store or CatalogStore()
        self.reconciler = Reconciler(self.store, channel)
        self.max_attempts = (
            max_attempts
            if max_attempts is not None
            else self.settings.MAX_ATTEMPTS
        )
        self.base_delay = (
            base_delay
            if base_delay is not None
            else self.settings.BASE_DELAY_MS / 1000
        )
        self.source_timeout = (
            source_timeout
            if source_timeout is not None
            else self.settings.SOURCE_TIMEOUT
        )

    @property
    def channel(self) -> PriceUpdateChannel:
        return self.reconciler.channel

    async def fetch_all(
        self,
    ) -> tuple[list[RawRecord], dict[str, int]]:
        """Fetch every source concurrently.

        Records are concatenated in source order regardless of which
        fetch finishes first.  Returns the records and a per-source
        record count.
        """
        tasks = [
            with_retry(
                src.fetch,
                max_attempts=self.max_attempts,
                base_delay=self.base_delay,
                timeout=self.source_timeout,
                label=src.source_name,
            )
            for src in self.sources
        ]
        batches = await asyncio.gather(
            *tasks, return_exceptions=True
        )

        records: list[RawRecord] = []
        counts: dict[str, int] = {}
        for src, batch in zip(self.sources, batches):
            if isinstance(batch, BaseException):
                logger.error(
                    "[%s] Fetch crashed outside the retry wrapper: %s",
                    src.source_name,
                    batch,
                    exc_info=batch,
                )
                counts[src.source_name] = 0
                continue
            counts[src.source_name] = len(batch)
            records.extend(batch)
        return records, counts

    async def aggregate_data(self) -> CycleResult:
        """Fetch, normalise and persist product data.

        Raises ``PersistenceError`` if the catalog transaction fails;
        nothing from the cycle is committed in that case.
        """
        start = time.monotonic()
        result = CycleResult()
        logger.info(
            "Fetching data from %d sources...", len(self.sources)
        )

        records, result.source_counts = await self.fetch_all()
        result.fetched_count = len(records)
        if not records:
            logger.warning("No valid product data received.")
            result.duration_s = time.monotonic() - start
            return result

        products, result.dropped_count = ProductNormalizer.normalize(
            records
        )
        result.normalized_count = len(products)
        if not products:
            logger.warning("No valid products after normalization.")
            result.duration_s = time.monotonic() - start
            return result

        result.reconcile = await asyncio.to_thread(
            self.reconciler.reconcile, products
        )
        result.duration_s = time.monotonic() - start
        logger.info(
            "Successfully aggregated %d products in %.2fs",
            result.normalized_count,
            result.duration_s,
        )
        return result
