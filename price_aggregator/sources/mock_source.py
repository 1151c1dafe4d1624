# price_aggregator/sources/mock_source.py

"""Simulated product provider with drifting prices."""

import random
import time
from datetime import datetime, timezone
from typing import Any

from price_aggregator.errors import SourceError
from price_aggregator.models.product import RawRecord
from price_aggregator.sources.base_source import BaseSource

PRICE_VARIATION = 0.1  # ±10% around the base price
AVAILABILITY_RATE = 0.8
NETWORK_DELAY = 1.0  # seconds

# Id offsets for catalog items that ship without an id
_PROVIDER_OFFSETS: dict[str, int] = {
    "Provider 1": 1,
    "Provider 2": 100,
    "Provider 3": 200,
}
_DEFAULT_OFFSET = 300

PROVIDER_CATALOGS: dict[str, list[dict[str, Any]]] = {
    "Provider 1": [
        {
            "id": 1,
            "name": "Product 1",
            "description": "Description for Product 1",
            "base_price": 10.99,
            "currency": "USD",
        },
        {
            "id": 2,
            "name": "Product 2",
            "description": "Description for Product 2",
            "base_price": 20.99,
            "currency": "USD",
        },
    ],
    "Provider 2": [
        {
            "id": 3,
            "name": "Product A",
            "description": "Description for Product A",
            "base_price": 15.99,
            "currency": "EUR",
        },
        {
            "id": 4,
            "name": "Product B",
            "description": "Description for Product B",
            "base_price": 25.99,
            "currency": "EUR",
        },
    ],
    "Provider 3": [
        {
            "id": 5,
            "name": "Software X",
            "description": "Popular software package",
            "base_price": 49.99,
            "currency": "USD",
        },
        {
            "id": 6,
            "name": "E-Book Y",
            "description": "Bestselling digital book",
            "base_price": 14.99,
            "currency": "USD",
        },
    ],
}


class MockSource(BaseSource):
    """Provider stand-in that returns its catalog with randomised prices."""

    def __init__(
        self,
        provider: str,
        catalog: list[dict[str, Any]] | None = None,
        delay: float = NETWORK_DELAY,
        failure_rate: float = 0.0,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(provider)
        if catalog is None:
            catalog = PROVIDER_CATALOGS.get(provider, [])
        self.catalog = catalog
        self.delay = delay
        self.failure_rate = failure_rate
        self._rng = rng or random.Random()

    def _generate_id(self, index: int) -> int:
        """Derive a stable id for a catalog item that has none."""
        offset = _PROVIDER_OFFSETS.get(
            self.source_name, _DEFAULT_OFFSET
        )
        return index + offset

    def _vary_price(self, base_price: float) -> float:
        """Return a price within ±5% either side of *base_price*."""
        variation = base_price * PRICE_VARIATION
        jitter = self._rng.random() * variation - variation / 2
        return round(base_price + jitter, 2)

    def fetch(self) -> list[RawRecord]:
        """Simulate a network call and return the provider's listings."""
        time.sleep(self.delay)
        if self.failure_rate and self._rng.random() < self.failure_rate:
            raise SourceError(
                self.source_name, "Simulated provider outage"
            )

        now = datetime.now(timezone.utc).isoformat()
        records: list[RawRecord] = []
        for index, item in enumerate(self.catalog):
            item_id = item.get("id")
            records.append({
                "id": (
                    item_id
                    if item_id is not None
                    else self._generate_id(index)
                ),
                "name": item.get("name"),
                "description": item.get("description"),
                "price": self._vary_price(item["base_price"]),
                "currency": item.get("currency", "USD"),
                "availability": (
                    self._rng.random() < AVAILABILITY_RATE
                ),
                "lastUpdated": now,
                "provider": item.get("provider", self.source_name),
            })
        self.logger.debug(
            "[%s] Generated %d records",
            self.source_name,
            len(records),
        )
        return records
