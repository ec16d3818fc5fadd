"""In-process publish/subscribe for out-of-band events.

The authorization controller learns about deep links that bypass its
browser session through this channel: the deep-link relay posts an
:data:`AUTH_CALLBACK` notification carrying ``{"url": ...}``, and the
controller holds exactly one subscription to it while an authorization is
pending.

Observers are called synchronously, in subscription order, on the thread
that posts. Components that receive events on other threads marshal them
onto the event loop before posting (see :mod:`haonboard.deeplink`).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable

logger = logging.getLogger(__name__)

AUTH_CALLBACK = "AuthCallback"
"""Posted when the platform hands a callback URL to the application."""


@dataclass(frozen=True)
class Notification:
    """A posted event.

    Attributes:
        name: Event name, e.g. :data:`AUTH_CALLBACK`.
        user_info: Event payload.
    """

    name: str
    user_info: dict[str, Any] = field(default_factory=dict)


Observer = Callable[[Notification], None]


class Subscription:
    """Handle returned by :meth:`NotificationCenter.subscribe`.

    Cancelling is idempotent.
    """

    def __init__(self, center: NotificationCenter, name: str, observer: Observer) -> None:
        self._center = center
        self.name = name
        self.observer = observer
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop receiving notifications."""
        if self._active:
            self._active = False
            self._center._remove(self)


class NotificationCenter:
    """Named-event dispatcher.

    Example::

        center = NotificationCenter()
        sub = center.subscribe(AUTH_CALLBACK, lambda n: print(n.user_info["url"]))
        center.post(AUTH_CALLBACK, url="homeassistant://auth-callback?code=abc")
        sub.cancel()
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._observers: dict[str, list[Subscription]] = {}

    def subscribe(self, name: str, observer: Observer) -> Subscription:
        """Register *observer* for notifications called *name*."""
        subscription = Subscription(self, name, observer)
        with self._lock:
            self._observers.setdefault(name, []).append(subscription)
        return subscription

    def post(self, name: str, **user_info: Any) -> int:
        """Deliver a notification to every current observer of *name*.

        The observer list is snapshotted first, so observers may cancel
        their own subscription while being called. An observer that raises
        is logged and does not stop delivery to the others.

        Returns:
            The number of observers called.
        """
        notification = Notification(name=name, user_info=dict(user_info))
        with self._lock:
            subscriptions = list(self._observers.get(name, ()))
        delivered = 0
        for subscription in subscriptions:
            if not subscription.active:
                continue
            delivered += 1
            try:
                subscription.observer(notification)
            except Exception:
                logger.exception("Observer of %s failed", name)
        return delivered

    def observer_count(self, name: str) -> int:
        """Number of active subscriptions for *name*."""
        with self._lock:
            return len(self._observers.get(name, ()))

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            observers = self._observers.get(subscription.name)
            if observers and subscription in observers:
                observers.remove(subscription)
                if not observers:
                    del self._observers[subscription.name]


_default_center = NotificationCenter()


def default_center() -> NotificationCenter:
    """Return the process-wide :class:`NotificationCenter`."""
    return _default_center
