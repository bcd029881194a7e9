"""
Event bus for payment domain events.

Synchronous in-process pub/sub. Handlers execute immediately in the same
thread as the payment that published. Handler errors are logged but never
propagate: the status change has already been written.
"""

import logging
from typing import Callable, Dict, List

from core.events import PaymentEvent

logger = logging.getLogger(__name__)


class EventBus:
    """
    In-process event bus for payment domain events.

    Subscribe by event class name (string), publish by event instance.
    A subscription to a base class name ('PaymentEvent') receives every
    subclass too. Handlers for the concrete class run first, then those of
    its bases, each in subscription order.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Callable]] = {}

    def subscribe(self, event_type: str, callback: Callable):
        """
        Subscribe to events of a specific type.

        Args:
            event_type: Name of event class to subscribe to (e.g. 'PaymentRefunded')
            callback: Function to call when event is published
        """
        self._subscribers.setdefault(event_type, []).append(callback)

    def unsubscribe(self, event_type: str, callback: Callable) -> bool:
        """Remove a subscription. Returns False if it was not registered."""
        callbacks = self._subscribers.get(event_type, [])
        if callback not in callbacks:
            return False
        callbacks.remove(callback)
        return True

    def publish(self, event: PaymentEvent):
        """
        Publish an event to all subscribers of its type and base types.

        Args:
            event: PaymentEvent instance to publish
        """
        event_type = event.__class__.__name__

        for cls in event.__class__.__mro__:
            for callback in self._subscribers.get(cls.__name__, []):
                try:
                    callback(event)
                except Exception:
                    logger.exception(
                        "Handler %s failed for %s (event_id=%s, payment_id=%s)",
                        getattr(callback, "__name__", repr(callback)),
                        event_type,
                        event.event_id,
                        event.payment_id,
                    )
