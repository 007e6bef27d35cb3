import time
import threading


class RateLimiter:
    """Thread-safe minimum-interval limiter for upstream API calls.

    Shared by every request a client issues, whichever thread issues it
    (scheduler, request handler or background re-sync).
    """

    def __init__(self, min_interval: float = 0.5):
        self.min_interval = min_interval
        self._last_request_time = 0.0
        self._lock = threading.Lock()

    def wait(self):
        if self.min_interval <= 0:
            return
        with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_request_time
            if elapsed < self.min_interval:
                time.sleep(self.min_interval - elapsed)
            self._last_request_time = time.monotonic()


_shared_limiters = {}
_registry_lock = threading.Lock()


def get_shared_limiter(base_url: str, min_interval: float = 0.5) -> RateLimiter:
    """Get or create the process-wide limiter for an API base URL."""
    with _registry_lock:
        limiter = _shared_limiters.get(base_url)
        if limiter is None:
            limiter = RateLimiter(min_interval)
            _shared_limiters[base_url] = limiter
        else:
            limiter.min_interval = min_interval
        return limiter
