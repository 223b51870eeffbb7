import time
from threading import Lock
from typing import Any, Callable, Mapping, Optional


class RateLimiter:
    """Thread-safe limiter fed by registry response headers.

    Honours ``Retry-After`` and the GitHub-style ``X-RateLimit-*`` pair; a
    minimum interval spaces out consecutive requests to the same host.
    """

    def __init__(self, min_interval: float = 0.0, clock: Callable[[], float] = time.time) -> None:
        self._lock = Lock()
        self._clock = clock
        self._next_ts = 0.0
        self.min_interval = max(0.0, float(min_interval))
        self.last_remaining: Optional[int] = None
        self.last_reset_epoch: Optional[float] = None
        self.last_wait: float = 0.0

    def wait_time(self) -> float:
        with self._lock:
            return max(0.0, self._next_ts - self._clock())

    def acquire(self, cancelled: Optional[Callable[[], bool]] = None) -> bool:
        """Block until a request may go out; False when cancelled while waiting."""
        while True:
            with self._lock:
                now = self._clock()
                wait = self._next_ts - now
                if wait <= 0:
                    self._next_ts = now + self.min_interval
                    return True
            if cancelled is not None and cancelled():
                return False
            time.sleep(min(wait, 0.5))

    def update(self, headers: Mapping[str, Any]) -> None:
        remaining = _header(headers, "X-RateLimit-Remaining")
        reset = _header(headers, "X-RateLimit-Reset")
        retry_after = _header(headers, "Retry-After")
        with self._lock:
            now = self._clock()
            if retry_after:
                try:
                    self._next_ts = max(self._next_ts, now + float(retry_after))
                except ValueError:
                    pass
            if remaining is not None:
                try:
                    rem = int(remaining)
                except ValueError:
                    rem = None
                if rem is not None:
                    self.last_remaining = rem
                    if rem <= 1:
                        reset_ts = _to_float(reset)
                        if reset_ts is not None and reset_ts > now:
                            self._next_ts = max(self._next_ts, reset_ts)
                            self.last_reset_epoch = reset_ts
                        else:
                            self._next_ts = max(self._next_ts, now + 60)
            if reset and self.last_reset_epoch is None:
                self.last_reset_epoch = _to_float(reset)
            self.last_wait = max(0.0, self._next_ts - now)


def _header(headers: Mapping[str, Any], name: str) -> Optional[str]:
    value = headers.get(name)
    if value is None:
        value = headers.get(name.lower())
    return value


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None
