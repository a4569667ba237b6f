"""
StatusChangePublisher -- in-process "status changed" notifications.

Responsibility:
    Lets outer layers (mail notifications, dashboards, cache busting)
    subscribe to committed status changes without the mutation service
    knowing about them.

Architecture position:
    Kernel > Services.  Invoked by StatusMutationService only after the
    transaction has committed.

Invariants enforced:
    - A subscriber failure is logged and swallowed; it never propagates to
      the caller and never undoes the committed change.
    - Subscribers run synchronously, in subscription order.
"""

from __future__ import annotations

import threading
from collections.abc import Callable

from invoicing_kernel.domain.dtos import StatusChangedEvent
from invoicing_kernel.logging_config import get_logger

logger = get_logger("services.notifications")

StatusChangeSubscriber = Callable[[StatusChangedEvent], None]


class StatusChangePublisher:
    """Fan-out point for StatusChangedEvent."""

    def __init__(self) -> None:
        self._subscribers: list[StatusChangeSubscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, subscriber: StatusChangeSubscriber) -> Callable[[], None]:
        """Register ``subscriber``; returns a callable that unsubscribes it."""
        with self._lock:
            self._subscribers.append(subscriber)

        def _unsubscribe() -> None:
            with self._lock:
                if subscriber in self._subscribers:
                    self._subscribers.remove(subscriber)

        return _unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: StatusChangedEvent) -> int:
        """
        Deliver ``event`` to every subscriber.

        Returns the number of subscribers that handled it without error.
        """
        with self._lock:
            subscribers = list(self._subscribers)

        delivered = 0
        for subscriber in subscribers:
            try:
                subscriber(event)
                delivered += 1
            except Exception as e:  # noqa: BLE001
                logger.warning(
                    "status_change_subscriber_failed",
                    extra={
                        "subscriber": getattr(subscriber, "__qualname__", repr(subscriber)),
                        "entity_type": event.kind.value,
                        "entity_id": event.entity_id,
                        "error": str(e),
                    },
                )
        return delivered
