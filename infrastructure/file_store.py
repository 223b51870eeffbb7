import logging
import os
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from core import (
    Bundle,
    DeleteBundle,
    Mutation,
    RemoveTool,
    SaveBundle,
    SetFavorite,
    SetInstalled,
    SetLabels,
    ToolEntry,
    TrackTool,
)
from application.ports import StoreError, ToolStore

logger = logging.getLogger("hoard.store")


def normalize_labels(labels) -> tuple:
    seen = []
    for label in labels or ():
        value = str(label).strip()
        if value and value not in seen:
            seen.append(value)
    return tuple(seen)


class YamlToolStore(ToolStore):
    """Inventory kept in one YAML document: ``tools`` and ``bundles`` lists.

    Every call re-reads the file so edits made by other hoard processes are
    picked up; writes go through a temp file and ``os.replace``.
    """

    def __init__(self, path: Path, clock=time.time):
        self.path = Path(path).expanduser()
        self.clock = clock
        self._lock = threading.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {"tools": [], "bundles": []}
        try:
            data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        except OSError as exc:
            raise StoreError(f"cannot read {self.path}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise StoreError(f"corrupt inventory {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"corrupt inventory {self.path}: expected a mapping")
        data.setdefault("tools", [])
        data.setdefault("bundles", [])
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(yaml.safe_dump(data, allow_unicode=True, sort_keys=False), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as exc:
            raise StoreError(f"cannot write {self.path}: {exc}") from exc

    def _tools(self, data: Dict[str, Any]) -> List[ToolEntry]:
        tools = []
        for raw in data.get("tools") or []:
            if not isinstance(raw, dict):
                continue
            try:
                entry = ToolEntry.from_dict(raw)
            except (TypeError, ValueError) as exc:
                logger.warning("skipping malformed tool entry %r: %s", raw, exc)
                continue
            if entry.name:
                tools.append(entry)
        return tools

    def snapshot_tools(self) -> List[ToolEntry]:
        with self._lock:
            return self._tools(self._read())

    def snapshot_bundles(self) -> List[Bundle]:
        with self._lock:
            data = self._read()
        bundles = []
        for raw in data.get("bundles") or []:
            if isinstance(raw, dict):
                bundle = Bundle.from_dict(raw)
                if bundle.name:
                    bundles.append(bundle)
        return bundles

    def _write_bundles(self, change) -> None:
        with self._lock:
            data = self._read()
            raw = [b for b in data.get("bundles") or [] if isinstance(b, dict)]
            data["bundles"] = change(raw)
            self._write(data)

    def _save_bundle(self, bundle: Bundle) -> None:
        if not bundle.name:
            raise StoreError("bundle without a name")
        self._write_bundles(lambda raw: [b for b in raw if b.get("name") != bundle.name] + [bundle.to_dict()])

    def _delete_bundle(self, name: str) -> None:
        def change(raw):
            kept = [b for b in raw if b.get("name") != name]
            if len(kept) == len(raw):
                raise StoreError(f"unknown bundle: {name}")
            return kept

        self._write_bundles(change)

    def _update(self, name: str, change) -> None:
        with self._lock:
            data = self._read()
            tools = self._tools(data)
            for idx, entry in enumerate(tools):
                if entry.name == name:
                    tools[idx] = change(entry)
                    break
            else:
                raise StoreError(f"unknown tool: {name}")
            data["tools"] = [entry.to_dict() for entry in tools]
            self._write(data)

    def apply_mutation(self, command: Mutation) -> None:
        now = self.clock()
        if isinstance(command, TrackTool):
            self._track(command.entry, now)
        elif isinstance(command, SetInstalled):
            self._update(
                command.name,
                lambda e: replace(
                    e,
                    installed=command.installed,
                    version=command.version or (e.version if command.installed else ""),
                    updated_at=now,
                ),
            )
        elif isinstance(command, SetLabels):
            self._update(command.name, lambda e: replace(e, labels=normalize_labels(command.labels), updated_at=now))
        elif isinstance(command, SetFavorite):
            self._update(command.name, lambda e: replace(e, favorite=command.favorite))
        elif isinstance(command, RemoveTool):
            with self._lock:
                data = self._read()
                tools = self._tools(data)
                kept = [entry for entry in tools if entry.name != command.name]
                if len(kept) == len(tools):
                    raise StoreError(f"unknown tool: {command.name}")
                data["tools"] = [entry.to_dict() for entry in kept]
                self._write(data)
        elif isinstance(command, SaveBundle):
            self._save_bundle(command.bundle)
        elif isinstance(command, DeleteBundle):
            self._delete_bundle(command.name)
        else:
            raise StoreError(f"unsupported mutation: {command!r}")
        logger.debug("applied %s", command)

    def _track(self, entry: ToolEntry, now: float) -> None:
        if not entry.name:
            raise StoreError("tool entry without a name")
        with self._lock:
            data = self._read()
            tools = self._tools(data)
            incoming = replace(entry, labels=normalize_labels(entry.labels), updated_at=now)
            for idx, existing in enumerate(tools):
                if existing.name == entry.name:
                    # usage and user annotations survive a re-track
                    tools[idx] = replace(
                        incoming,
                        use_count=existing.use_count,
                        last_used=existing.last_used,
                        labels=incoming.labels or existing.labels,
                        favorite=incoming.favorite or existing.favorite,
                    )
                    break
            else:
                tools.append(incoming)
            data["tools"] = [tool.to_dict() for tool in tools]
            self._write(data)

    def record_usage(self, name: str, count: int = 1, when: Optional[float] = None) -> None:
        stamp = self.clock() if when is None else when
        self._update(
            name,
            lambda e: replace(e, use_count=e.use_count + max(0, int(count)), last_used=max(e.last_used, stamp)),
        )
