"""Cancellable delayed callbacks used for auto-advance."""
import threading

from vocab_tutor.config import settings


class ThreadingScheduler:
    """Runs callbacks on daemon ``threading.Timer`` threads."""

    def call_later(self, delay: float, callback) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


class AutoAdvanceTimer:
    """At most one pending callback; scheduling again replaces it.

    ``cancel`` releases the pending handle and may be called on any exit
    path, any number of times. A callback that fires after it was cancelled
    or replaced is dropped.
    """

    def __init__(self, scheduler=None, delay: float = settings.AUTO_ADVANCE_SECONDS):
        self.delay = delay
        self._scheduler = scheduler or ThreadingScheduler()
        self._lock = threading.Lock()
        self._handle = None
        self._token = None
        self._settled = threading.Event()
        self._settled.set()

    @property
    def pending(self) -> bool:
        return self._token is not None

    def schedule(self, callback) -> None:
        self.cancel()
        token = object()
        with self._lock:
            self._token = token
            self._settled.clear()
        handle = self._scheduler.call_later(self.delay, lambda: self._fire(token, callback))
        with self._lock:
            if self._token is token:
                self._handle = handle

    def _fire(self, token, callback) -> None:
        with self._lock:
            if token is not self._token:
                return
            self._token = None
            self._handle = None
        try:
            callback()
        finally:
            self._settled.set()

    def cancel(self) -> None:
        with self._lock:
            handle, self._handle, self._token = self._handle, None, None
        if handle is not None:
            handle.cancel()
        self._settled.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the pending callback has run or been cancelled."""
        return self._settled.wait(timeout)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.cancel()
