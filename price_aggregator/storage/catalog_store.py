# price_aggregator/storage/catalog_store.py

"""SQLite-backed product catalog with an append-only price history."""

import logging
import sqlite3
from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any

from price_aggregator.config.settings import Settings
from price_aggregator.errors import PersistenceError
from price_aggregator.models.price_change import (
    PriceChange,
    PriceHistoryEntry,
)
from price_aggregator.models.product import PersistedProduct

logger = logging.getLogger("price_aggregator.catalog")

# Prices are stored as decimal strings to keep them exact.
_SCHEMA = """\
CREATE TABLE IF NOT EXISTS products (
    id              INTEGER PRIMARY KEY,
    name            TEXT    NOT NULL,
    description     TEXT    NOT NULL,
    price           TEXT    NOT NULL
                    CHECK (CAST(price AS REAL) >= 0),
    currency        TEXT    NOT NULL DEFAULT 'USD',
    availability    INTEGER NOT NULL DEFAULT 0,
    provider        TEXT    NOT NULL,
    last_updated    TEXT    NOT NULL,
    last_fetched_at TEXT    NOT NULL
);

CREATE TABLE IF NOT EXISTS price_history (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    product_id  INTEGER NOT NULL REFERENCES products(id),
    price       TEXT    NOT NULL,
    recorded_at TEXT    NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_history_product_date
    ON price_history(product_id, recorded_at);
"""

_PRODUCT_COLUMNS = (
    "id, name, description, price, currency, availability, "
    "provider, last_updated, last_fetched_at"
)

_UPSERT_PRODUCT = (
    f"INSERT INTO products ({_PRODUCT_COLUMNS}) "
    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?) "
    "ON CONFLICT(id) DO UPDATE SET "
    "name=excluded.name, "
    "description=excluded.description, "
    "price=excluded.price, "
    "currency=excluded.currency, "
    "availability=excluded.availability, "
    "provider=excluded.provider, "
    "last_updated=excluded.last_updated, "
    "last_fetched_at=excluded.last_fetched_at"
)

_INSERT_HISTORY = (
    "INSERT INTO price_history (product_id, price, recorded_at) "
    "VALUES (?, ?, ?)"
)


def _row_to_product(row: tuple) -> PersistedProduct:
    return PersistedProduct(
        id=row[0],
        name=row[1],
        description=row[2],
        price=Decimal(row[3]),
        currency=row[4],
        availability=bool(row[5]),
        source_name=row[6],
        observed_at=datetime.fromisoformat(row[7]),
        last_fetched_at=datetime.fromisoformat(row[8]),
    )


# Driver errors plus out-of-range integers, which sqlite3 rejects with
# OverflowError while binding parameters.
_STORE_ERRORS = (sqlite3.Error, OverflowError)


class CatalogStore:
    """SQLite store for catalog rows and their superseded prices.

    Every write method runs as a single transaction: either all of its
    statements become visible or none do and ``PersistenceError`` is
    raised.  Reads raise ``PersistenceError`` as well, so callers never
    see a raw driver error.
    """

    def __init__(self, db_path: Path | None = None) -> None:
        path = db_path or Settings.CATALOG_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(
            str(path), check_same_thread=False,
        )
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA foreign_keys=ON")
        self._conn.executescript(_SCHEMA)
        logger.debug("CatalogStore opened at %s", path)

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()

    def _query(
        self,
        sql: str,
        params: Sequence[Any] = (),
        what: str = "catalog",
    ) -> list[tuple]:
        try:
            return self._conn.execute(sql, params).fetchall()
        except _STORE_ERRORS as exc:
            logger.error("Failed to read %s: %s", what, exc)
            raise PersistenceError(
                f"Failed to read {what}: {exc}"
            ) from exc

    # ── Reconcile support ───────────────────────────────

    def get_prices(self, ids: Iterable[int]) -> dict[int, Decimal]:
        """Bulk-read the persisted price for each known id."""
        id_list = list(ids)
        if not id_list:
            return {}
        placeholders = ", ".join("?" for _ in id_list)
        rows = self._query(
            f"SELECT id, price FROM products "
            f"WHERE id IN ({placeholders})",
            id_list,
            what="catalog prices",
        )
        return {row[0]: Decimal(row[1]) for row in rows}

    def apply_batch(
        self,
        history: list[PriceHistoryEntry],
        products: list[PersistedProduct],
    ) -> None:
        """Insert history entries, then upsert products, atomically."""
        try:
            with self._conn:
                if history:
                    self._conn.executemany(
                        _INSERT_HISTORY,
                        [
                            (
                                h.product_id,
                                str(h.price),
                                h.recorded_at.isoformat(),
                            )
                            for h in history
                        ],
                    )
                self._conn.executemany(
                    _UPSERT_PRODUCT,
                    [
                        (
                            p.id,
                            p.name,
                            p.description,
                            str(p.price),
                            p.currency,
                            int(p.availability),
                            p.source_name,
                            p.observed_at.isoformat(),
                            p.last_fetched_at.isoformat(),
                        )
                        for p in products
                    ],
                )
        except _STORE_ERRORS as exc:
            logger.error(
                "Catalog transaction rolled back: %s", exc,
            )
            raise PersistenceError(
                f"Catalog transaction failed: {exc}"
            ) from exc
        logger.info(
            "Committed %d products and %d history entries",
            len(products),
            len(history),
        )

    def apply_price_change(
        self,
        entry: PriceHistoryEntry,
        new_price: Decimal,
    ) -> None:
        """Record the old price and set the new one, atomically."""
        try:
            with self._conn:
                self._conn.execute(
                    _INSERT_HISTORY,
                    (
                        entry.product_id,
                        str(entry.price),
                        entry.recorded_at.isoformat(),
                    ),
                )
                self._conn.execute(
                    "UPDATE products SET price = ? WHERE id = ?",
                    (str(new_price), entry.product_id),
                )
        except _STORE_ERRORS as exc:
            logger.error(
                "Price update for product %s rolled back: %s",
                entry.product_id,
                exc,
            )
            raise PersistenceError(
                f"Price update failed: {exc}"
            ) from exc

    # ── Querying ─────────────────────────────────────────

    def get_product(self, product_id: int) -> PersistedProduct | None:
        """Return one catalog row, or None if the id is unknown."""
        rows = self._query(
            f"SELECT {_PRODUCT_COLUMNS} FROM products WHERE id = ?",
            (product_id,),
            what=f"product {product_id}",
        )
        return _row_to_product(rows[0]) if rows else None

    def list_products(
        self,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[PersistedProduct]:
        """Return catalog rows ordered by id."""
        rows = self._query(
            f"SELECT {_PRODUCT_COLUMNS} FROM products "
            "ORDER BY id LIMIT ? OFFSET ?",
            (-1 if limit is None else limit, offset),
        )
        return [_row_to_product(r) for r in rows]

    def count_products(self) -> int:
        """Return the number of catalog rows."""
        rows = self._query("SELECT COUNT(*) FROM products")
        return int(rows[0][0])

    def count_history(self) -> int:
        """Return the number of price history entries."""
        rows = self._query(
            "SELECT COUNT(*) FROM price_history",
            what="price history",
        )
        return int(rows[0][0])

    def get_price_history(
        self, product_id: int,
    ) -> list[PriceHistoryEntry]:
        """Return a product's superseded prices, oldest first."""
        rows = self._query(
            "SELECT product_id, price, recorded_at "
            "FROM price_history WHERE product_id = ? "
            "ORDER BY recorded_at ASC, id ASC",
            (product_id,),
            what="price history",
        )
        return [
            PriceHistoryEntry(
                product_id=r[0],
                price=Decimal(r[1]),
                recorded_at=datetime.fromisoformat(r[2]),
            )
            for r in rows
        ]

    def get_latest_changes(self, limit: int = 5) -> list[PriceChange]:
        """Return the most recent price changes, newest first.

        ``new_price`` is the product's current catalog price.
        """
        rows = self._query(
            "SELECT h.product_id, p.name, h.price, p.price, "
            "       h.recorded_at "
            "FROM price_history h "
            "JOIN products p ON p.id = h.product_id "
            "ORDER BY h.recorded_at DESC, h.id DESC LIMIT ?",
            (limit,),
            what="price changes",
        )
        return [
            PriceChange(
                product_id=r[0],
                name=r[1],
                old_price=Decimal(r[2]),
                new_price=Decimal(r[3]),
                timestamp=datetime.fromisoformat(r[4]),
            )
            for r in rows
        ]
