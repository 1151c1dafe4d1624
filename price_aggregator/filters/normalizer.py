# price_aggregator/filters/normalizer.py

"""Normalisation of raw source records into the canonical schema."""

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

from price_aggregator.models.product import CanonicalProduct, RawRecord

logger = logging.getLogger("price_aggregator.filters")

DEFAULT_NAME = "Unknown"
DEFAULT_DESCRIPTION = "No description"
DEFAULT_PROVIDER = "Unknown"
DEFAULT_CURRENCY = "USD"

# SQLite INTEGER PRIMARY KEY range
MIN_ID = -(2**63)
MAX_ID = 2**63 - 1

_TRUE_STRINGS = frozenset({"true", "1", "yes"})


class ProductNormalizer:
    """Map loosely typed source records onto ``CanonicalProduct``."""

    @staticmethod
    def _coerce_id(value: Any) -> int | None:
        if isinstance(value, int):
            return value
        if isinstance(value, float):
            return int(value) if value.is_integer() else None
        try:
            return int(str(value).strip())
        except ValueError:
            return None

    @staticmethod
    def _parse_id(value: Any) -> int | None:
        """Return an integer id, or None when the id is unusable.

        Missing, falsy, non-integer and out-of-range ids are unusable;
        the catalog key is a signed 64-bit SQLite INTEGER.
        """
        if not value or isinstance(value, bool):
            return None
        product_id = ProductNormalizer._coerce_id(value)
        if product_id is None or not MIN_ID <= product_id <= MAX_ID:
            return None
        return product_id

    @staticmethod
    def _parse_price(value: Any) -> Decimal:
        """Coerce a price to a non-negative Decimal (0 when unusable)."""
        if value is None:
            return Decimal(0)
        try:
            price = Decimal(str(value).strip())
        except InvalidOperation:
            logger.warning("Unparseable price %r, using 0", value)
            return Decimal(0)
        if not price.is_finite() or price < 0:
            logger.warning("Invalid price %r, using 0", value)
            return Decimal(0)
        return price

    @staticmethod
    def _parse_availability(value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_STRINGS
        return bool(value)

    @staticmethod
    def _parse_timestamp(value: Any, now: datetime) -> datetime:
        """Parse an ISO-8601 string, epoch millis or datetime into UTC.

        Missing or unparseable values fall back to *now*.
        """
        if value is None or value == "":
            return now
        parsed: datetime | None = None
        if isinstance(value, datetime):
            parsed = value
        elif isinstance(value, (int, float)) and not isinstance(
            value, bool
        ):
            try:
                parsed = datetime.fromtimestamp(
                    value / 1000, tz=timezone.utc
                )
            except (OverflowError, OSError, ValueError):
                parsed = None
        elif isinstance(value, str):
            text = value.strip()
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(text)
            except ValueError:
                parsed = None

        if parsed is None:
            logger.debug("Unparseable timestamp %r, using now", value)
            return now
        if parsed.tzinfo is None:
            return parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)

    @staticmethod
    def normalize_record(
        record: RawRecord,
        now: datetime,
    ) -> CanonicalProduct | None:
        """Normalise one record; None when it has no usable id."""
        product_id = ProductNormalizer._parse_id(record.get("id"))
        if product_id is None:
            return None

        observed = record.get("lastUpdated")
        if observed is None:
            observed = record.get("observedAt")

        def text(key: str, default: str) -> str:
            value = record.get(key)
            return default if value is None else str(value)

        return CanonicalProduct(
            id=product_id,
            name=text("name", DEFAULT_NAME),
            description=text("description", DEFAULT_DESCRIPTION),
            price=ProductNormalizer._parse_price(record.get("price")),
            currency=text("currency", DEFAULT_CURRENCY),
            availability=ProductNormalizer._parse_availability(
                record.get("availability")
            ),
            source_name=text("provider", DEFAULT_PROVIDER),
            observed_at=ProductNormalizer._parse_timestamp(
                observed, now
            ),
        )

    @staticmethod
    def normalize(
        records: list[RawRecord],
        now: datetime | None = None,
    ) -> tuple[list[CanonicalProduct], int]:
        """Normalise a batch, dropping records without an identifier.

        Output order follows input order.  Returns the canonical
        products and the count of dropped records.
        """
        current = now or datetime.now(timezone.utc)
        products: list[CanonicalProduct] = []
        dropped = 0

        for record in records:
            product = ProductNormalizer.normalize_record(
                record, current
            )
            if product is None:
                logger.debug(
                    "Dropped record without identifier "
                    "(provider=%s, name=%s)",
                    record.get("provider"),
                    record.get("name"),
                )
                dropped += 1
                continue
            products.append(product)

        if dropped:
            logger.info(
                "Normalisation dropped %d records without an id",
                dropped,
            )

        return products, dropped
