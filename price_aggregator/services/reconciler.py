# price_aggregator/services/reconciler.py

"""Reconcile fresh product batches against the persisted catalog."""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal

from price_aggregator.models.price_change import (
    PriceChange,
    PriceHistoryEntry,
)
from price_aggregator.models.product import (
    CanonicalProduct,
    PersistedProduct,
)
from price_aggregator.services.notifier import PriceUpdateChannel
from price_aggregator.storage.catalog_store import CatalogStore

logger = logging.getLogger("price_aggregator.reconciler")


@dataclass
class ReconcileResult:
    """Outcome of one committed reconcile."""

    inserted: int = 0
    updated: int = 0
    history_written: int = 0
    changes: list[PriceChange] = field(
        default_factory=lambda: list[PriceChange]()
    )


class Reconciler:
    """Diffs batches against the catalog and commits them atomically."""

    def __init__(
        self,
        store: CatalogStore,
        channel: PriceUpdateChannel | None = None,
    ) -> None:
        self._store = store
        self.channel = channel or PriceUpdateChannel()

    def _publish(self, changes: list[PriceChange]) -> None:
        for change in changes:
            self.channel.publish(change)

    def reconcile(
        self,
        batch: list[CanonicalProduct],
        fetched_at: datetime | None = None,
    ) -> ReconcileResult:
        """Upsert *batch* and record every superseded price.

        History inserts and product upserts share one transaction, so a
        ``PersistenceError`` leaves neither visible.  Price changes are
        published only after the commit.
        """
        if not batch:
            return ReconcileResult()

        now = fetched_at or datetime.now(timezone.utc)

        # Last write wins for ids repeated within the batch
        latest: dict[int, CanonicalProduct] = {}
        for product in batch:
            latest[product.id] = product
        duplicates = len(batch) - len(latest)
        if duplicates:
            logger.warning(
                "Batch contained %d duplicate ids, keeping the last "
                "occurrence of each",
                duplicates,
            )

        existing = self._store.get_prices(latest.keys())

        staged: list[PriceHistoryEntry] = []
        changes: list[PriceChange] = []
        for product_id, old_price in existing.items():
            product = latest[product_id]
            if product.price == old_price:
                continue
            staged.append(PriceHistoryEntry(
                product_id=product_id,
                price=old_price,
                recorded_at=now,
            ))
            changes.append(PriceChange(
                product_id=product_id,
                name=product.name,
                old_price=old_price,
                new_price=product.price,
                timestamp=now,
            ))

        rows = [
            PersistedProduct.from_canonical(p, now)
            for p in latest.values()
        ]
        self._store.apply_batch(staged, rows)

        result = ReconcileResult(
            inserted=len(latest) - len(existing),
            updated=len(existing),
            history_written=len(staged),
            changes=changes,
        )
        logger.info(
            "Reconciled %d products: %d new, %d updated, "
            "%d price changes",
            len(latest),
            result.inserted,
            result.updated,
            result.history_written,
        )
        self._publish(changes)
        return result

    def update_product_price(
        self,
        product_id: int,
        new_price: Decimal,
    ) -> PersistedProduct | None:
        """Change a single product's price and record the old one."""
        if new_price < 0:
            raise ValueError("price must be >= 0")

        existing = self._store.get_product(product_id)
        if existing is None:
            logger.warning("Product ID %d not found.", product_id)
            return None

        if existing.price == new_price:
            logger.info(
                "No price change detected for product %d.",
                product_id,
            )
            return existing

        logger.info(
            "Updating price for product %d from %s to %s",
            product_id,
            existing.price,
            new_price,
        )
        now = datetime.now(timezone.utc)
        self._store.apply_price_change(
            PriceHistoryEntry(
                product_id=product_id,
                price=existing.price,
                recorded_at=now,
            ),
            new_price,
        )
        self._publish([
            PriceChange(
                product_id=product_id,
                name=existing.name,
                old_price=existing.price,
                new_price=new_price,
                timestamp=now,
            )
        ])
        return self._store.get_product(product_id)
