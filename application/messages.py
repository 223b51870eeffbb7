"""Messages posted by worker threads to the interactive loop.

Workers never touch dashboard state. They post one of the message types below
into a ``MessageChannel`` and the main loop applies them in drain order.
Search messages carry the session generation, job messages carry the job id.
"""

import queue
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Tuple, Union

from core import DiscoverResult


class Cancelled(RuntimeError):
    """Raised by workers at a safe point once their token was cancelled."""


class CancelToken:
    """Cooperative cancellation flag, optionally chained to a parent token."""

    def __init__(self, parent: Optional["CancelToken"] = None):
        self._event = threading.Event()
        self._parent = parent

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def cancel(self) -> None:
        self._event.set()

    def child(self) -> "CancelToken":
        return CancelToken(parent=self)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Cancelled("cancelled")


@dataclass(frozen=True)
class AdapterStarted:
    generation: int
    adapter_id: str
    at: float = field(default_factory=time.monotonic)


@dataclass(frozen=True)
class AdapterResult:
    generation: int
    adapter_id: str
    results: Tuple[DiscoverResult, ...] = ()
    error: Optional[str] = None
    at: float = field(default_factory=time.monotonic)

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class JobStarted:
    job_id: int


@dataclass(frozen=True)
class JobProgress:
    job_id: int
    line: str


@dataclass(frozen=True)
class JobFinished:
    job_id: int
    error: Optional[str] = None
    result: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None


Message = Union[AdapterStarted, AdapterResult, JobStarted, JobProgress, JobFinished]


class MessageChannel:
    """Thread-safe single-consumer queue with an optional wake-up hook.

    ``post`` may be called from any thread. ``drain`` is called by the main
    loop only.
    """

    def __init__(self, wakeup: Optional[Callable[[], None]] = None):
        self._queue: "queue.Queue[Message]" = queue.Queue()
        self._wakeup = wakeup

    def set_wakeup(self, wakeup: Optional[Callable[[], None]]) -> None:
        self._wakeup = wakeup

    def post(self, message: Message) -> None:
        self._queue.put(message)
        wakeup = self._wakeup
        if wakeup is not None:
            try:
                wakeup()
            except RuntimeError:
                # loop already closed; the message is drained on the next tick if any
                pass

    def drain(self, limit: Optional[int] = None) -> List[Message]:
        drained: List[Message] = []
        while limit is None or len(drained) < limit:
            try:
                drained.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return drained

    def pending(self) -> int:
        return self._queue.qsize()
