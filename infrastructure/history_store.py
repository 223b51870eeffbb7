import logging
import os
import threading
from pathlib import Path
from typing import List

import yaml

from application.ports import HistoryStore, StoreError

logger = logging.getLogger("hoard.store")


class YamlHistoryStore(HistoryStore):
    """Discover queries, most recent first, capped at ``capacity``."""

    def __init__(self, path: Path, capacity: int = 50):
        self.path = Path(path).expanduser()
        self.capacity = max(1, int(capacity))
        self._lock = threading.Lock()

    def _read(self) -> List[str]:
        if not self.path.exists():
            return []
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or []
        except (OSError, yaml.YAMLError) as exc:
            raise StoreError(f"cannot read search history {self.path}: {exc}") from exc
        if isinstance(data, dict):
            data = data.get("queries") or []
        if not isinstance(data, list):
            return []
        return [str(item) for item in data if str(item).strip()]

    def append(self, query: str) -> None:
        query = (query or "").strip()
        if not query:
            return
        with self._lock:
            entries = self._read()
            if entries and entries[0] == query:
                return
            entries.insert(0, query)
            del entries[self.capacity :]
            tmp = self.path.with_suffix(self.path.suffix + ".tmp")
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp.write_text(yaml.safe_dump({"queries": entries}, allow_unicode=True), encoding="utf-8")
                os.replace(tmp, self.path)
            except OSError as exc:
                raise StoreError(f"cannot write search history {self.path}: {exc}") from exc

    def recent(self, n: int) -> List[str]:
        with self._lock:
            return self._read()[: max(0, int(n))]
