"""Change notification channel between the poller and its consumers."""

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ChangeNotifier:
    """
    Payload-less "something in the tree changed" signal.

    One producer (the poller), any number of subscribers. Listeners are
    called synchronously from the producer's thread, so anything that must
    run elsewhere (a UI event loop) should hand off from the callback.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def emit(self) -> None:
        """Call every listener; a failing listener does not stop the rest."""
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("change listener %r failed", listener)

    def clear(self) -> None:
        with self._lock:
            self._listeners.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._listeners)
