# tests/test_reconciler.py

"""Tests for batch reconciliation and price history capture."""

import tempfile
import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

from price_aggregator.errors import PersistenceError
from price_aggregator.models.price_change import PriceChange
from price_aggregator.models.product import CanonicalProduct
from price_aggregator.services.notifier import PriceUpdateChannel
from price_aggregator.services.reconciler import Reconciler
from price_aggregator.storage.catalog_store import CatalogStore

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def _product(
    product_id: int,
    price: str,
    name: str = "Product",
) -> CanonicalProduct:
    return CanonicalProduct(
        id=product_id,
        name=name,
        description="Desc",
        price=Decimal(price),
        currency="USD",
        availability=True,
        source_name="Provider 1",
        observed_at=T0,
    )


class TestReconcile(unittest.TestCase):
    """Reconciler.reconcile against a real SQLite store."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.store = CatalogStore(
            db_path=Path(self.tmp_dir) / "catalog.db"
        )
        self.channel = PriceUpdateChannel()
        self.events: list[PriceChange] = []
        self.channel.subscribe(self.events.append)
        self.reconciler = Reconciler(self.store, self.channel)

    def tearDown(self) -> None:
        self.store.close()

    def test_first_sighting_has_no_history(self) -> None:
        """New products are inserted without history."""
        result = self.reconciler.reconcile(
            [_product(1, "100"), _product(5, "50")]
        )
        self.assertEqual(result.inserted, 2)
        self.assertEqual(result.history_written, 0)
        self.assertEqual(self.store.count_products(), 2)
        self.assertEqual(self.store.get_price_history(1), [])
        self.assertEqual(self.events, [])

    def test_price_change_records_old_price(self) -> None:
        """A changed price stores the superseded value."""
        self.reconciler.reconcile([_product(1, "100")])
        result = self.reconciler.reconcile([_product(1, "120")])

        self.assertEqual(result.history_written, 1)
        history = self.store.get_price_history(1)
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].product_id, 1)
        self.assertEqual(history[0].price, Decimal("100"))
        product = self.store.get_product(1)
        assert product is not None
        self.assertEqual(product.price, Decimal("120"))

    def test_identical_rerun_writes_no_history(self) -> None:
        """Only true changes are recorded."""
        self.reconciler.reconcile([_product(1, "100")])
        self.reconciler.reconcile([_product(1, "120")])
        result = self.reconciler.reconcile([_product(1, "120")])
        self.assertEqual(result.history_written, 0)
        self.assertEqual(self.store.count_history(), 1)

    def test_decimal_scale_is_not_a_change(self) -> None:
        """100 and 100.00 are the same price."""
        self.reconciler.reconcile([_product(1, "100")])
        result = self.reconciler.reconcile([_product(1, "100.00")])
        self.assertEqual(result.history_written, 0)

    def test_unchanged_price_refreshes_last_fetched(self) -> None:
        """last_fetched_at moves forward even without a change."""
        self.reconciler.reconcile([_product(1, "100")], fetched_at=T0)
        later = T0 + timedelta(minutes=5)
        self.reconciler.reconcile(
            [_product(1, "100")], fetched_at=later
        )
        product = self.store.get_product(1)
        assert product is not None
        self.assertEqual(product.last_fetched_at, later)

    def test_history_tracks_each_superseded_price(self) -> None:
        """Successive changes record each price just before it changed."""
        for price in ("10", "11", "12"):
            self.reconciler.reconcile([_product(1, price)])
        history = self.store.get_price_history(1)
        self.assertEqual(
            [h.price for h in history],
            [Decimal("10"), Decimal("11")],
        )

    def test_duplicate_ids_last_wins(self) -> None:
        """Within one batch the last occurrence of an id wins."""
        self.reconciler.reconcile([_product(1, "100")])
        with self.assertLogs(
            "price_aggregator.reconciler", level="WARNING"
        ):
            result = self.reconciler.reconcile([
                _product(1, "110", name="first"),
                _product(1, "130", name="last"),
            ])
        self.assertEqual(result.history_written, 1)
        product = self.store.get_product(1)
        assert product is not None
        self.assertEqual(product.price, Decimal("130"))
        self.assertEqual(product.name, "last")

    def test_empty_batch_is_noop(self) -> None:
        """No store calls for an empty batch."""
        store = MagicMock()
        result = Reconciler(store).reconcile([])
        self.assertEqual(result.inserted, 0)
        self.assertEqual(store.mock_calls, [])

    def test_publishes_changes_after_commit(self) -> None:
        """A price change event carries old and new prices."""
        self.reconciler.reconcile([_product(1, "100", name="Widget")])
        self.reconciler.reconcile([_product(1, "90", name="Widget")])
        self.assertEqual(len(self.events), 1)
        event = self.events[0]
        self.assertEqual(event.product_id, 1)
        self.assertEqual(event.name, "Widget")
        self.assertEqual(event.old_price, Decimal("100"))
        self.assertEqual(event.new_price, Decimal("90"))

    def test_failed_transaction_is_all_or_nothing(self) -> None:
        """No rows or history from a failed cycle are visible."""
        self.reconciler.reconcile([_product(1, "100")])
        with self.assertRaises(PersistenceError):
            self.reconciler.reconcile(
                [_product(1, "120"), _product(2, "-1")]
            )
        self.assertEqual(self.store.count_history(), 0)
        self.assertIsNone(self.store.get_product(2))
        product = self.store.get_product(1)
        assert product is not None
        self.assertEqual(product.price, Decimal("100"))
        self.assertEqual(self.events, [])

    def test_single_bulk_read(self) -> None:
        """Persisted prices are loaded with one call for all ids."""
        store = MagicMock()
        store.get_prices.return_value = {}
        Reconciler(store).reconcile(
            [_product(1, "1"), _product(2, "2"), _product(3, "3")]
        )
        store.get_prices.assert_called_once()
        self.assertEqual(
            list(store.get_prices.call_args.args[0]), [1, 2, 3]
        )
        store.apply_batch.assert_called_once()


class TestUpdateProductPrice(unittest.TestCase):
    """Single-item price updates."""

    def setUp(self) -> None:
        self.tmp_dir = tempfile.mkdtemp()
        self.store = CatalogStore(
            db_path=Path(self.tmp_dir) / "catalog.db"
        )
        self.events: list[PriceChange] = []
        self.reconciler = Reconciler(self.store)
        self.reconciler.channel.subscribe(self.events.append)
        self.reconciler.reconcile([_product(1, "100", name="Widget")])

    def tearDown(self) -> None:
        self.store.close()

    def test_unknown_product(self) -> None:
        """Unknown ids return None and write nothing."""
        self.assertIsNone(
            self.reconciler.update_product_price(42, Decimal("1"))
        )
        self.assertEqual(self.store.count_history(), 0)

    def test_same_price_no_history(self) -> None:
        """An identical price is a no-op."""
        product = self.reconciler.update_product_price(
            1, Decimal("100.00")
        )
        assert product is not None
        self.assertEqual(self.store.count_history(), 0)
        self.assertEqual(self.events, [])

    def test_changed_price(self) -> None:
        """A new price is stored, the old one archived and published."""
        product = self.reconciler.update_product_price(
            1, Decimal("75")
        )
        assert product is not None
        self.assertEqual(product.price, Decimal("75"))
        history = self.store.get_price_history(1)
        self.assertEqual(history[0].price, Decimal("100"))
        self.assertEqual(len(self.events), 1)
        self.assertEqual(self.events[0].new_price, Decimal("75"))

    def test_negative_price_rejected(self) -> None:
        """Negative prices are refused before touching the store."""
        with self.assertRaises(ValueError):
            self.reconciler.update_product_price(1, Decimal("-1"))


if __name__ == "__main__":
    unittest.main()
