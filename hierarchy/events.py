"""Change notifications shared between coordinators.

A CategoryEventBus is created once by the application and handed to every
coordinator. After a successful write a coordinator publishes a
CategoriesChanged event; the others react by scheduling a debounced refresh.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from logger import get_logger

logger = get_logger("events")


@dataclass(frozen=True)
class CategoriesChanged:
    """Notification that the backing category store changed.

    Attributes:
        source: Identifier of the publishing coordinator, if any.
        reason: Short name of the operation, e.g. "create" or "reorder".
        category_ids: Categories touched by the operation, when known.
        timestamp: When the change was published.
    """

    source: Optional[str] = None
    reason: str = "external"
    category_ids: Tuple[str, ...] = ()
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


Listener = Callable[[CategoriesChanged], None]


class Subscription:
    """Handle that detaches its listener when closed."""

    def __init__(self, bus: "CategoryEventBus", listener: Listener):
        self._bus = bus
        self._listener = listener
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Detach the listener. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._bus.unsubscribe(self._listener)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *_) -> None:
        self.close()


class CategoryEventBus:
    """Thread-safe publish/subscribe channel for category changes."""

    def __init__(self):
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()

    def subscribe(self, listener: Listener) -> Subscription:
        """Register listener for future events."""
        with self._lock:
            self._listeners.append(listener)
        return Subscription(self, listener)

    def unsubscribe(self, listener: Listener) -> None:
        """Remove listener if it is registered."""
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def publish(self, event: CategoriesChanged) -> None:
        """Deliver event to every listener.

        A listener that raises is logged and does not stop delivery to the
        others.
        """
        with self._lock:
            listeners = list(self._listeners)

        logger.debug(
            f"Publishing categories change ({event.reason}) to {len(listeners)} listener(s)"
        )
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Category change listener raised an exception")

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)


class DebouncedCall:
    """Run a callback once, delay seconds after the last trigger.

    Triggers arriving while a call is pending restart the delay, so a burst
    of notifications results in a single call.
    """

    def __init__(self, callback: Callable[[], object], delay: float):
        self._callback = callback
        self._delay = delay
        self._timer: Optional[threading.Timer] = None
        self._running = False
        self._idle = threading.Event()
        self._idle.set()
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._timer is not None

    def trigger(self) -> None:
        """Schedule the callback, restarting any pending delay."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._delay, self._fire)
            self._timer.daemon = True
            self._timer.start()
            self._idle.clear()

    def flush(self) -> bool:
        """Run a pending call immediately on the calling thread.

        Returns:
            True if a call was pending and has now run, False otherwise.
        """
        with self._lock:
            timer = self._timer
            self._timer = None
            if timer is None:
                return False
            self._running = True
        timer.cancel()
        self._run()
        return True

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until no call is scheduled or running.

        Returns:
            False if the timeout expired first.
        """
        return self._idle.wait(timeout)

    def cancel(self) -> None:
        """Drop any pending call without running it."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._settle()

    def _fire(self) -> None:
        with self._lock:
            if self._timer is None or threading.current_thread() is not self._timer:
                return
            self._timer = None
            self._running = True
        self._run()

    def _run(self) -> None:
        try:
            self._callback()
        finally:
            with self._lock:
                self._running = False
                self._settle()

    def _settle(self) -> None:
        # Caller holds self._lock
        if self._timer is None and not self._running:
            self._idle.set()
