"""Discover search: fan-out to every enabled source, streaming merge, history.

Each submitted query becomes a ``SearchSession`` with a fresh generation. One
lookup job per source runs on the job coordinator and posts
``AdapterStarted`` / ``AdapterResult`` messages tagged with that generation.
``accept`` applies them on the main loop; anything tagged with an older
generation, or arriving after a cancel, is dropped.
"""

import logging
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from core import DiscoverResult, SortKey, merge_results, sort_results

from .jobs import BackgroundJob, JobContext, JobCoordinator, JobKind
from .messages import AdapterResult, AdapterStarted, Cancelled, CancelToken
from .ports import HistoryStore, SourceAdapter, StoreError

logger = logging.getLogger("hoard.discover")

AI_ADAPTER_ID = "ai"
DEFAULT_HISTORY_SIZE = 50


class AdapterState(Enum):
    PENDING = "pending"
    IN_FLIGHT = "in-flight"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class AdapterStatus:
    state: AdapterState = AdapterState.PENDING
    count: int = 0
    reason: str = ""
    started_at: Optional[float] = None
    finished_at: Optional[float] = None

    @property
    def terminal(self) -> bool:
        return self.state in (AdapterState.DONE, AdapterState.FAILED)

    def elapsed(self, now: float) -> float:
        if self.started_at is None:
            return 0.0
        end = self.finished_at if self.finished_at is not None else now
        return max(0.0, end - self.started_at)

    def badge(self) -> str:
        if self.state is AdapterState.DONE:
            return f"done({self.count})"
        if self.state is AdapterState.FAILED:
            return f"failed: {self.reason}"
        return self.state.value


@dataclass(frozen=True)
class SearchSessionHandle:
    generation: int
    query: str


@dataclass
class SearchSession:
    query: str
    generation: int
    adapters: Tuple[str, ...]
    token: CancelToken
    statuses: Dict[str, AdapterStatus] = field(default_factory=dict)
    results: List[DiscoverResult] = field(default_factory=list)
    job_ids: Dict[str, int] = field(default_factory=dict)
    sort_key: SortKey = SortKey.STARS
    cancelled: bool = False
    retired: bool = False
    created_at: float = field(default_factory=time.monotonic)

    @property
    def handle(self) -> SearchSessionHandle:
        return SearchSessionHandle(self.generation, self.query)

    @property
    def complete(self) -> bool:
        return all(status.terminal for status in self.statuses.values())

    def sorted_results(self, key: Optional[SortKey] = None) -> List[DiscoverResult]:
        return sort_results(self.results, key or self.sort_key)

    def done_count(self) -> int:
        return sum(1 for status in self.statuses.values() if status.terminal)


class SearchHistory:
    """Most-recent-first query history with no duplicate-adjacent entries."""

    def __init__(self, capacity: int = DEFAULT_HISTORY_SIZE, store: Optional[HistoryStore] = None):
        self.capacity = max(1, int(capacity))
        self._store = store
        self._entries: List[str] = []

    def load(self) -> None:
        if self._store is None:
            return
        try:
            recent = self._store.recent(self.capacity)
        except StoreError as exc:
            logger.warning("search history unavailable: %s", exc)
            return
        self._entries = []
        for query in recent:
            if query and (not self._entries or self._entries[-1] != query):
                self._entries.append(query)
        del self._entries[self.capacity :]

    def push(self, query: str) -> bool:
        query = (query or "").strip()
        if not query:
            return False
        if self._entries and self._entries[0] == query:
            return False
        self._entries.insert(0, query)
        del self._entries[self.capacity :]
        if self._store is not None:
            try:
                self._store.append(query)
            except StoreError as exc:
                logger.warning("failed to persist search history: %s", exc)
        return True

    def entries(self) -> List[str]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> str:
        return self._entries[index]


class DiscoveryAggregator:
    def __init__(
        self,
        jobs: JobCoordinator,
        adapters: Mapping[str, SourceAdapter],
        history: Optional[SearchHistory] = None,
        ai_adapter: Optional[SourceAdapter] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.jobs = jobs
        self.adapters = dict(adapters)
        self.ai_adapter = ai_adapter
        self.history = history or SearchHistory()
        self.clock = clock
        self.generation = 0
        self.session: Optional[SearchSession] = None

    def adapter_ids(self) -> List[str]:
        return list(self.adapters)

    def label_for(self, adapter_id: str) -> str:
        if adapter_id == AI_ADAPTER_ID and self.ai_adapter is not None:
            return self.ai_adapter.label
        adapter = self.adapters.get(adapter_id)
        return adapter.label if adapter is not None else adapter_id

    # ---------------------------------------------------------------- submit
    def submit(
        self,
        query: str,
        enabled_adapters: Optional[Iterable[str]] = None,
        include_ai: bool = False,
    ) -> SearchSessionHandle:
        query = (query or "").strip()
        self._retire()
        self.generation += 1
        wanted = list(enabled_adapters) if enabled_adapters is not None else list(self.adapters)
        ids = [adapter_id for adapter_id in wanted if adapter_id in self.adapters]
        unknown = [adapter_id for adapter_id in wanted if adapter_id not in self.adapters]
        if include_ai and self.ai_adapter is not None:
            ids.append(AI_ADAPTER_ID)
        session = SearchSession(
            query=query,
            generation=self.generation,
            adapters=tuple(ids),
            token=CancelToken(),
            statuses={adapter_id: AdapterStatus() for adapter_id in ids},
        )
        self.session = session
        if unknown:
            logger.warning("ignoring unknown sources: %s", ", ".join(unknown))
        logger.info("search #%s %r over %s", session.generation, query, ", ".join(ids) or "no sources")
        for adapter_id in ids:
            adapter = self.ai_adapter if adapter_id == AI_ADAPTER_ID else self.adapters[adapter_id]
            kind = JobKind.AI_QUERY if adapter_id == AI_ADAPTER_ID else JobKind.LOOKUP
            job = BackgroundJob(
                kind=kind,
                work=self._lookup_work(adapter, adapter_id, query, session.generation),
                label=f"{self.label_for(adapter_id)}: {query}",
                token=session.token.child(),
                payload=session.generation,
            )
            handle = self.jobs.enqueue(job)
            session.job_ids[adapter_id] = handle.id
        return session.handle

    @staticmethod
    def _lookup_work(adapter: SourceAdapter, adapter_id: str, query: str, generation: int):
        def work(ctx: JobContext) -> int:
            ctx.post(AdapterStarted(generation, adapter_id))
            try:
                results = list(adapter.search(query, ctx.token))
            except Cancelled:
                raise
            except Exception as exc:  # adapter failures are per-source status, never fatal
                reason = str(exc) or exc.__class__.__name__
                logger.warning("source %s failed for %r: %s", adapter_id, query, reason)
                ctx.post(AdapterResult(generation, adapter_id, error=reason))
                return 0
            ctx.post(AdapterResult(generation, adapter_id, tuple(results)))
            return len(results)

        return work

    # ---------------------------------------------------------------- accept
    def accept(self, message) -> bool:
        """Apply a lookup message; True when the visible session changed."""
        if not isinstance(message, (AdapterStarted, AdapterResult)):
            return False
        session = self.session
        if session is None or message.generation != session.generation:
            logger.debug("dropping stale %s from %s (generation %s)", type(message).__name__, message.adapter_id, message.generation)
            return False
        if session.cancelled or session.retired:
            return False
        status = session.statuses.get(message.adapter_id)
        if status is None:
            return False
        if isinstance(message, AdapterStarted):
            if status.state is not AdapterState.PENDING:
                return False
            session.statuses[message.adapter_id] = replace(status, state=AdapterState.IN_FLIGHT, started_at=message.at)
            return True
        if status.terminal:
            return False
        started = status.started_at if status.started_at is not None else message.at
        if message.ok:
            session.results = merge_results(session.results, message.results)
            session.statuses[message.adapter_id] = AdapterStatus(
                AdapterState.DONE, len(message.results), "", started, message.at
            )
        else:
            session.statuses[message.adapter_id] = AdapterStatus(
                AdapterState.FAILED, 0, message.error or "failed", started, message.at
            )
        if session.complete:
            logger.info("search #%s complete: %s results", session.generation, len(session.results))
        return True

    # -------------------------------------------------------------- teardown
    def cancel(self, handle: Optional[SearchSessionHandle] = None) -> bool:
        session = self.session
        if session is None or session.cancelled or session.retired:
            return False
        if handle is not None and handle.generation != session.generation:
            return False
        session.cancelled = True
        session.token.cancel()
        for job_id in session.job_ids.values():
            self.jobs.cancel(job_id)
        now = self.clock()
        for adapter_id, status in session.statuses.items():
            if not status.terminal:
                session.statuses[adapter_id] = replace(
                    status, state=AdapterState.FAILED, reason="cancelled", finished_at=now
                )
        logger.info("search #%s cancelled", session.generation)
        return True

    def _retire(self) -> None:
        session = self.session
        if session is None or session.retired:
            return
        if not session.complete:
            self.cancel(session.handle)
        session.retired = True
        self.history.push(session.query)

    def close(self) -> None:
        """Retire the current session (tab teardown)."""
        self._retire()

    def resort(self, key: SortKey) -> None:
        if self.session is not None:
            self.session.sort_key = key

    def results(self) -> List[DiscoverResult]:
        if self.session is None:
            return []
        return self.session.sorted_results()

    def progress(self) -> List[Tuple[str, AdapterStatus]]:
        if self.session is None:
            return []
        return [(adapter_id, self.session.statuses[adapter_id]) for adapter_id in self.session.adapters]


__all__ = [
    "AI_ADAPTER_ID",
    "AdapterState",
    "AdapterStatus",
    "DiscoveryAggregator",
    "SearchHistory",
    "SearchSession",
    "SearchSessionHandle",
]
