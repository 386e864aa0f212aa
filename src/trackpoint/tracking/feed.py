"""Change notification feeds.

A feed tells a tracking session that its record changed; it carries no
payload, the session re-fetches. Any push transport (websocket, SSE,
long-poll, database triggers) can sit behind ``ChangeFeed``.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Callable

logger = logging.getLogger(__name__)

Unsubscribe = Callable[[], None]


class ChangeFeed(ABC):
    """Source of "record changed" notifications."""

    @abstractmethod
    def subscribe(self, record_id: str, callback: Callable[[], None]) -> Unsubscribe:
        """Call ``callback`` whenever ``record_id`` changes.

        Returns a function that removes the subscription. Calling it more
        than once is harmless.
        """
        pass


class InMemoryChangeFeed(ChangeFeed):
    """In-process feed fed by ``publish``."""

    def __init__(self):
        self._subscribers: dict[str, list[Callable[[], None]]] = defaultdict(list)

    def subscribe(self, record_id: str, callback: Callable[[], None]) -> Unsubscribe:
        self._subscribers[record_id].append(callback)

        def unsubscribe() -> None:
            callbacks = self._subscribers.get(record_id)
            if callbacks and callback in callbacks:
                callbacks.remove(callback)
                if not callbacks:
                    del self._subscribers[record_id]

        return unsubscribe

    def publish(self, record_id: str) -> int:
        """Notify subscribers of ``record_id``. Returns how many were notified."""
        callbacks = list(self._subscribers.get(record_id, ()))
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Change callback for %s failed", record_id)
        return len(callbacks)

    def subscriber_count(self, record_id: str) -> int:
        return len(self._subscribers.get(record_id, ()))
