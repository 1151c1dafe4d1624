# price_aggregator/sources/base_source.py

"""Abstract base class for all product sources."""

import logging
from abc import ABC, abstractmethod

from price_aggregator.config.settings import Settings
from price_aggregator.models.product import RawRecord


class BaseSource(ABC):
    """Abstract base class for all product sources.

    A source is one independent failure domain: ``fetch`` either returns
    the records it could get or raises ``SourceError``.  It never touches
    the catalog.
    """

    def __init__(self, source_name: str) -> None:
        self.source_name = source_name
        self.logger = logging.getLogger(
            f"price_aggregator.sources.{source_name}"
        )
        self.settings = Settings()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.source_name!r})"

    @abstractmethod
    def fetch(self) -> list[RawRecord]:
        """Return the source's current product listings."""
        ...
