from typing import Callable, List, Optional, Protocol, Sequence

from core import Bundle, DiscoverResult, Mutation, ToolEntry


class StoreError(RuntimeError):
    """Inventory store is unreadable or a mutation could not be persisted."""


class AdapterError(RuntimeError):
    """A discover source failed; the message is shown as the adapter's status."""


class ProcessError(RuntimeError):
    """Package-manager command could not be started or exited non-zero."""

    def __init__(self, message: str, returncode: Optional[int] = None, output: str = ""):
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class CancelSignal(Protocol):
    @property
    def cancelled(self) -> bool:
        ...

    def raise_if_cancelled(self) -> None:
        ...


class ToolStore(Protocol):
    def snapshot_tools(self) -> List[ToolEntry]:
        ...

    def snapshot_bundles(self) -> List[Bundle]:
        ...

    def apply_mutation(self, command: Mutation) -> None:
        ...

    def record_usage(self, name: str, count: int = 1, when: Optional[float] = None) -> None:
        ...


class SourceAdapter(Protocol):
    adapter_id: str
    label: str

    def search(self, query: str, token: CancelSignal) -> List[DiscoverResult]:
        ...


class AIAdapter(SourceAdapter, Protocol):
    provider: str


class ProcessRunner(Protocol):
    def run(
        self,
        argv: Sequence[str],
        token: CancelSignal,
        on_line: Optional[Callable[[str], None]] = None,
        terminate_on_cancel: bool = False,
    ) -> str:
        ...


class HistoryStore(Protocol):
    def append(self, query: str) -> None:
        ...

    def recent(self, n: int) -> List[str]:
        ...


class ReadmeFetcher(Protocol):
    def fetch(self, url: str, token: CancelSignal) -> str:
        ...
