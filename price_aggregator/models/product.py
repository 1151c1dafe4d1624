# price_aggregator/models/product.py

"""Product data models for inter-module data flow."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

# Source-native record: any field may be missing or loosely typed.
RawRecord = dict[str, Any]


@dataclass(frozen=True)
class CanonicalProduct:
    """A normalised product observation from one source in one cycle."""

    id: int
    name: str
    description: str
    price: Decimal
    currency: str
    availability: bool
    source_name: str
    observed_at: datetime


@dataclass
class PersistedProduct:
    """A catalog row as stored by the catalog store."""

    id: int
    name: str
    description: str
    price: Decimal
    currency: str
    availability: bool
    source_name: str
    observed_at: datetime
    last_fetched_at: datetime

    @classmethod
    def from_canonical(
        cls,
        product: CanonicalProduct,
        fetched_at: datetime,
    ) -> "PersistedProduct":
        """Build the row to upsert for a freshly fetched product."""
        return cls(
            id=product.id,
            name=product.name,
            description=product.description,
            price=product.price,
            currency=product.currency,
            availability=product.availability,
            source_name=product.source_name,
            observed_at=product.observed_at,
            last_fetched_at=fetched_at,
        )
