# price_aggregator/models/price_change.py

"""Price history and live-update models."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class PriceHistoryEntry:
    """A superseded price: the value a product had before it changed."""

    product_id: int
    price: Decimal
    recorded_at: datetime


@dataclass(frozen=True)
class PriceChange:
    """Live-update event published after a committed price change."""

    product_id: int
    name: str
    old_price: Decimal
    new_price: Decimal
    timestamp: datetime
