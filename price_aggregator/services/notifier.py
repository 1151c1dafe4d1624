# price_aggregator/services/notifier.py

"""Outbound live-update channel for committed price changes."""

import logging
import threading
from collections.abc import Callable

from price_aggregator.models.price_change import PriceChange

logger = logging.getLogger("price_aggregator.notifier")

PriceChangeCallback = Callable[[PriceChange], None]


class PriceUpdateChannel:
    """Callback registry that fans price changes out to subscribers.

    Callbacks run synchronously on the publishing thread, which is the
    reconcile worker thread during a cycle.  A subscriber that needs the
    event loop should hand the event over with
    ``loop.call_soon_threadsafe``.
    """

    def __init__(self) -> None:
        self._subscribers: list[PriceChangeCallback] = []
        self._lock = threading.Lock()

    def subscribe(
        self, callback: PriceChangeCallback,
    ) -> Callable[[], None]:
        """Register *callback*; returns a function that unsubscribes it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, change: PriceChange) -> int:
        """Deliver *change* to every subscriber.

        Returns the number of subscribers that handled it without
        raising.
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for callback in subscribers:
            try:
                callback(change)
                delivered += 1
            except Exception:
                logger.error(
                    "Subscriber %r failed for product %d",
                    callback,
                    change.product_id,
                    exc_info=True,
                )
        return delivered
