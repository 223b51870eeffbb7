"""Background job coordinator.

Jobs run on daemon worker threads and report back only through the message
channel (``JobStarted`` / ``JobProgress`` / ``JobFinished``). All bookkeeping
(queue, in-flight set, busy targets) is mutated on the main loop: in
``enqueue``/``cancel`` and in ``handle`` when a message is drained.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional, Set

from .messages import Cancelled, CancelToken, JobFinished, JobProgress, JobStarted, Message, MessageChannel

logger = logging.getLogger("hoard.jobs")

DEFAULT_MAX_IN_FLIGHT = 4
CANCELLED_REASON = "cancelled"


class JobRejected(RuntimeError):
    """The target entry already has an active job."""

    def __init__(self, target: str, active_job: int):
        super().__init__(f"'{target}' is busy (job #{active_job})")
        self.target = target
        self.active_job = active_job


class JobKind(Enum):
    INSTALL = "install"
    UNINSTALL = "uninstall"
    UPDATE = "update"
    AI_QUERY = "ai"
    README_FETCH = "readme"
    LOOKUP = "lookup"


class JobStatus(Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED)


class JobContext:
    """Handed to job work functions on the worker thread."""

    def __init__(self, job_id: int, token: CancelToken, channel: MessageChannel):
        self.job_id = job_id
        self.token = token
        self._channel = channel

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def raise_if_cancelled(self) -> None:
        self.token.raise_if_cancelled()

    def progress(self, line: str) -> None:
        self._channel.post(JobProgress(self.job_id, line))

    def post(self, message: Message) -> None:
        self._channel.post(message)


@dataclass
class BackgroundJob:
    kind: JobKind
    work: Callable[[JobContext], Any]
    target: Optional[str] = None
    label: str = ""
    terminate_on_cancel: bool = False
    token: Optional[CancelToken] = None
    payload: Any = None
    id: int = 0
    status: JobStatus = JobStatus.QUEUED
    error: Optional[str] = None
    result: Any = None
    last_line: str = ""
    queued_at: float = field(default_factory=time.monotonic)
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @property
    def description(self) -> str:
        if self.label:
            return self.label
        return f"{self.kind.value} {self.target}" if self.target else self.kind.value


@dataclass(frozen=True)
class JobHandle:
    id: int
    kind: JobKind
    target: Optional[str]
    token: CancelToken


def thread_spawner(fn: Callable[[], None], name: str) -> None:
    threading.Thread(target=fn, name=name, daemon=True).start()


class JobCoordinator:
    def __init__(
        self,
        channel: MessageChannel,
        max_in_flight: int = DEFAULT_MAX_IN_FLIGHT,
        spawn: Optional[Callable[[Callable[[], None], str], None]] = None,
    ):
        self.channel = channel
        self.max_in_flight = max(1, int(max_in_flight))
        self._spawn = spawn or thread_spawner
        self._jobs: Dict[int, BackgroundJob] = {}
        self._queue: Deque[int] = deque()
        self._running: Set[int] = set()
        self._targets: Dict[str, int] = {}
        self._next_id = 1

    # --------------------------------------------------------------- queries
    def get(self, job_id: int) -> Optional[BackgroundJob]:
        return self._jobs.get(job_id)

    def jobs(self) -> List[BackgroundJob]:
        return sorted(self._jobs.values(), key=lambda job: job.id)

    def active_for(self, target: str) -> Optional[BackgroundJob]:
        job_id = self._targets.get(target)
        return self._jobs.get(job_id) if job_id is not None else None

    def is_busy(self, target: str) -> bool:
        return target in self._targets

    @property
    def running_count(self) -> int:
        return len(self._running)

    @property
    def queued_count(self) -> int:
        return len(self._queue)

    # --------------------------------------------------------------- enqueue
    def enqueue(self, job: BackgroundJob) -> JobHandle:
        if job.target is not None and job.target in self._targets:
            raise JobRejected(job.target, self._targets[job.target])
        job.id = self._next_id
        self._next_id += 1
        job.status = JobStatus.QUEUED
        if job.token is None:
            job.token = CancelToken()
        self._jobs[job.id] = job
        if job.target is not None:
            self._targets[job.target] = job.id
        self._queue.append(job.id)
        logger.debug("queued job #%s %s", job.id, job.description)
        self._pump()
        return JobHandle(job.id, job.kind, job.target, job.token)

    def _pump(self) -> None:
        while self._queue and len(self._running) < self.max_in_flight:
            job = self._jobs[self._queue.popleft()]
            self._start(job)

    def _start(self, job: BackgroundJob) -> None:
        job.status = JobStatus.RUNNING
        job.started_at = time.monotonic()
        self._running.add(job.id)
        self._spawn(lambda: self._execute(job.id, job.work, job.token), f"hoard-job-{job.id}")

    def _execute(self, job_id: int, work: Callable[[JobContext], Any], token: CancelToken) -> None:
        """Worker-thread body. Touches nothing but the channel."""
        self.channel.post(JobStarted(job_id))
        ctx = JobContext(job_id, token, self.channel)
        try:
            token.raise_if_cancelled()
            result = work(ctx)
        except Cancelled:
            self.channel.post(JobFinished(job_id, error=CANCELLED_REASON))
        except Exception as exc:  # job failures become a status, never a crash
            logger.warning("job #%s failed: %s", job_id, exc)
            self.channel.post(JobFinished(job_id, error=str(exc) or exc.__class__.__name__))
        else:
            self.channel.post(JobFinished(job_id, result=result))

    # ---------------------------------------------------------------- cancel
    def cancel(self, job_id: int) -> bool:
        job = self._jobs.get(job_id)
        if job is None or job.status.terminal:
            return False
        assert job.token is not None
        job.token.cancel()
        if job.status is JobStatus.QUEUED:
            try:
                self._queue.remove(job_id)
            except ValueError:
                pass
            job.status = JobStatus.FAILED
            job.error = CANCELLED_REASON
            self.channel.post(JobFinished(job_id, error=CANCELLED_REASON))
        logger.debug("cancel requested for job #%s", job_id)
        return True

    def cancel_where(self, predicate: Callable[[BackgroundJob], bool]) -> int:
        count = 0
        for job in self.jobs():
            if predicate(job) and self.cancel(job.id):
                count += 1
        return count

    def cancel_all(self) -> int:
        return self.cancel_where(lambda job: True)

    # ---------------------------------------------------------------- handle
    def handle(self, message: Message) -> Optional[BackgroundJob]:
        """Apply a drained job message; returns the job it concerns, if known."""
        if isinstance(message, JobStarted):
            return self._jobs.get(message.job_id)
        if isinstance(message, JobProgress):
            job = self._jobs.get(message.job_id)
            if job is not None:
                job.last_line = message.line
            return job
        if isinstance(message, JobFinished):
            return self._finish(message)
        return None

    def _finish(self, message: JobFinished) -> Optional[BackgroundJob]:
        job = self._jobs.pop(message.job_id, None)
        if job is None:
            return None
        self._running.discard(job.id)
        if job.target is not None and self._targets.get(job.target) == job.id:
            del self._targets[job.target]
        job.finished_at = time.monotonic()
        if message.error is None:
            job.status = JobStatus.SUCCEEDED
            job.result = message.result
        else:
            job.status = JobStatus.FAILED
            job.error = message.error
        self._pump()
        return job


__all__ = [
    "BackgroundJob",
    "JobContext",
    "JobCoordinator",
    "JobHandle",
    "JobKind",
    "JobRejected",
    "JobStatus",
    "CANCELLED_REASON",
    "DEFAULT_MAX_IN_FLIGHT",
]
