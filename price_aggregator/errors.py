# price_aggregator/errors.py

"""Exception taxonomy for the aggregation pipeline."""


class AggregatorError(Exception):
    """Base class for pipeline errors."""


class SourceError(AggregatorError):
    """A source could not deliver records (timeout, bad payload, outage).

    Retryable.  Absorbed by the retry wrapper once attempts run out.
    """

    def __init__(self, source_name: str, message: str) -> None:
        super().__init__(f"[{source_name}] {message}")
        self.source_name = source_name


class PersistenceError(AggregatorError):
    """A catalog store transaction failed and was rolled back."""
