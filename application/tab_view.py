"""Per-tab projection: filter, sort, cursor, scroll and selection.

A ``TabViewModel`` holds the entries the session handed it (tools, bundles
or discover results) and recomputes its ordered rows only when the filter,
the sort key or the entries change. Cursor and selection are tracked by entry
id so they survive re-ordering.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Set, Tuple

from core import DiscoverResult, SortKey, Tab, TabFilter, ToolEntry, default_sort_for, fuzzy, sort_cycle_for

from .undo_log import FilterChanged, SelectionChanged, SortChanged

NAME_BONUS = 10


@dataclass(frozen=True)
class TabViewState:
    """Comparable copy of everything undo/redo can touch."""

    filter: TabFilter
    sort_key: SortKey
    selection: FrozenSet[str]
    cursor_id: Optional[str]


def _name(item: Any) -> str:
    return str(getattr(item, "name", "") or "")


def _search_fields(item: Any) -> List[str]:
    fields = [getattr(item, "description", "") or ""]
    if isinstance(item, ToolEntry):
        fields.append(item.category)
        fields.extend(item.labels)
    tools = getattr(item, "tools", None)
    if tools:
        fields.append(" ".join(tools))
    return [f for f in fields if f]


def _source_rank(item: Any) -> Tuple[int, str]:
    if isinstance(item, DiscoverResult):
        origin = item.primary_origin
        return (origin.order if origin else 99, "")
    source = getattr(item, "source", None)
    return (0, getattr(source, "value", "") or "")


def _matches_source(item: Any, source: str) -> bool:
    token = source.lower()
    if isinstance(item, ToolEntry):
        return item.source.value == token
    if isinstance(item, DiscoverResult):
        return any(o.source_id == token or o.label.lower() == token for o in item.origins)
    return True


_SORT_FUNCS: Dict[SortKey, Callable[[Any], Any]] = {
    SortKey.NAME: lambda item: 0,
    SortKey.USAGE: lambda item: -int(getattr(item, "use_count", 0) or 0),
    SortKey.RECENT: lambda item: -float(getattr(item, "last_used", 0.0) or 0.0),
    SortKey.STARS: lambda item: -int(getattr(item, "stars", 0) or 0),
    SortKey.SOURCE: _source_rank,
}


def sort_key_func(key: SortKey) -> Callable[[Any], Tuple[Any, str]]:
    primary = _SORT_FUNCS[key]
    return lambda item: (primary(item), _name(item).lower())


def best_score(query: str, item: Any) -> Optional[int]:
    """Best fuzzy score over name (with a bonus), description and category."""
    best = None
    name_score = fuzzy.score(query, _name(item))
    if name_score is not None:
        best = name_score + NAME_BONUS
    for text in _search_fields(item):
        value = fuzzy.score(query, text)
        if value is not None and (best is None or value > best):
            best = value
    return best


class TabViewModel:
    def __init__(self, tab: Tab, items: Sequence[Any] = (), sort_key: Optional[SortKey] = None):
        self.tab = tab
        self.filter = TabFilter()
        self.sort_key = sort_key or default_sort_for(tab)
        self.scroll = 0
        self.cursor: Optional[int] = None
        self.anchor_id: Optional[str] = None
        self._items: List[Any] = list(items)
        self._ids: Set[str] = {item.id for item in self._items}
        self._selection: Set[str] = set()
        self._rows: List[Any] = []
        self.projections = 0
        self._project()
        self._clamp_cursor(None, 0)

    # ------------------------------------------------------------------ access
    @property
    def items(self) -> Tuple[Any, ...]:
        return tuple(self._items)

    @property
    def rows(self) -> Tuple[Any, ...]:
        return tuple(self._rows)

    @property
    def selection(self) -> FrozenSet[str]:
        return frozenset(self._selection)

    def __len__(self) -> int:
        return len(self._rows)

    def current(self) -> Optional[Any]:
        if self.cursor is None:
            return None
        return self._rows[self.cursor]

    def current_id(self) -> Optional[str]:
        item = self.current()
        return item.id if item is not None else None

    def index_of(self, entry_id: Optional[str]) -> Optional[int]:
        if entry_id is None:
            return None
        for idx, item in enumerate(self._rows):
            if item.id == entry_id:
                return idx
        return None

    def is_selected(self, entry_id: str) -> bool:
        return entry_id in self._selection

    def selected_items(self) -> List[Any]:
        return [item for item in self._items if item.id in self._selection]

    def get(self, entry_id: str) -> Optional[Any]:
        for item in self._items:
            if item.id == entry_id:
                return item
        return None

    def state(self) -> TabViewState:
        return TabViewState(self.filter, self.sort_key, self.selection, self.current_id())

    # -------------------------------------------------------------- projection
    def _project(self) -> None:
        self.projections += 1
        flt = self.filter
        candidates = self._items
        if flt.source:
            candidates = [item for item in candidates if _matches_source(item, flt.source)]
        if flt.favorites_only:
            candidates = [item for item in candidates if not isinstance(item, ToolEntry) or item.favorite]
        order = sort_key_func(self.sort_key)
        if flt.query:
            scored = []
            for item in candidates:
                value = best_score(flt.query, item)
                if value is not None:
                    scored.append((value, item))
            scored.sort(key=lambda pair: (-pair[0], order(pair[1])))
            self._rows = [item for _, item in scored]
        else:
            self._rows = sorted(candidates, key=order)

    def _clamp_cursor(self, keep_id: Optional[str], fallback: int) -> None:
        if not self._rows:
            self.cursor = None
            self.scroll = 0
            return
        idx = self.index_of(keep_id)
        if idx is None:
            idx = max(0, min(fallback, len(self._rows) - 1))
        self.cursor = idx

    def _reproject(self) -> None:
        keep = self.current_id()
        fallback = self.cursor or 0
        self._project()
        self._clamp_cursor(keep, fallback)

    # ----------------------------------------------------------------- filter
    def restore_filter(self, value: TabFilter) -> None:
        if value == self.filter:
            return
        self.filter = value
        self._reproject()

    def set_filter(self, value: TabFilter) -> Optional[FilterChanged]:
        if value == self.filter:
            return None
        before, cursor_before = self.filter, self.current_id()
        self.restore_filter(value)
        return FilterChanged(self.tab, before, value, cursor_before, self.current_id())

    # ------------------------------------------------------------------- sort
    def restore_sort(self, key: SortKey) -> None:
        if key == self.sort_key:
            return
        self.sort_key = key
        self._reproject()

    def set_sort(self, key: SortKey) -> Optional[SortChanged]:
        if key == self.sort_key:
            return None
        before, cursor_before = self.sort_key, self.current_id()
        self.restore_sort(key)
        return SortChanged(self.tab, before, key, cursor_before, self.current_id())

    def cycle_sort(self) -> Optional[SortChanged]:
        cycle = sort_cycle_for(self.tab)
        try:
            idx = cycle.index(self.sort_key)
        except ValueError:
            idx = -1
        return self.set_sort(cycle[(idx + 1) % len(cycle)])

    # ----------------------------------------------------------------- cursor
    def move_cursor(self, delta: int) -> None:
        if not self._rows:
            self.cursor = None
            return
        current = self.cursor if self.cursor is not None else 0
        self.cursor = max(0, min(current + delta, len(self._rows) - 1))

    def move_to(self, index: int) -> None:
        if not self._rows:
            self.cursor = None
            return
        if index < 0:
            index = len(self._rows) + index
        self.cursor = max(0, min(index, len(self._rows) - 1))

    def focus(self, entry_id: Optional[str]) -> bool:
        idx = self.index_of(entry_id)
        if idx is None:
            return False
        self.cursor = idx
        return True

    def ensure_visible(self, height: int) -> None:
        height = max(1, height)
        if self.cursor is None:
            self.scroll = 0
            return
        if self.cursor < self.scroll:
            self.scroll = self.cursor
        elif self.cursor >= self.scroll + height:
            self.scroll = self.cursor - height + 1
        self.scroll = max(0, min(self.scroll, max(0, len(self._rows) - height)))

    # -------------------------------------------------------------- selection
    def restore_selection(self, ids: FrozenSet[str]) -> None:
        self._selection = {entry_id for entry_id in ids if entry_id in self._ids}

    def _selection_action(self, before: FrozenSet[str]) -> Optional[SelectionChanged]:
        after = self.selection
        if after == before:
            return None
        cursor = self.current_id()
        return SelectionChanged(self.tab, before, after, cursor, cursor)

    def toggle_selection(self, entry_id: Optional[str] = None) -> Optional[SelectionChanged]:
        entry_id = entry_id if entry_id is not None else self.current_id()
        if entry_id is None or entry_id not in self._ids:
            return None
        before = self.selection
        if entry_id in self._selection:
            self._selection.discard(entry_id)
        else:
            self._selection.add(entry_id)
        self.anchor_id = entry_id
        return self._selection_action(before)

    def select_range(self, anchor_id: Optional[str], entry_id: Optional[str] = None) -> Optional[SelectionChanged]:
        """Select every visible row between the anchor and ``entry_id`` inclusive."""
        entry_id = entry_id if entry_id is not None else self.current_id()
        start = self.index_of(anchor_id)
        end = self.index_of(entry_id)
        if end is None:
            return None
        if start is None:
            start = end
        lo, hi = min(start, end), max(start, end)
        before = self.selection
        self._selection.update(item.id for item in self._rows[lo : hi + 1])
        self.anchor_id = entry_id
        return self._selection_action(before)

    def select_all(self) -> Optional[SelectionChanged]:
        before = self.selection
        self._selection.update(item.id for item in self._rows)
        return self._selection_action(before)

    def clear_selection(self) -> Optional[SelectionChanged]:
        before = self.selection
        self._selection.clear()
        self.anchor_id = None
        return self._selection_action(before)

    # ---------------------------------------------------------------- refresh
    def refresh(self, items: Sequence[Any]) -> None:
        """Replace the entries; keep cursor on the same id, prune stale selection."""
        keep = self.current_id()
        fallback = self.cursor or 0
        self._items = list(items)
        self._ids = {item.id for item in self._items}
        self._selection &= self._ids
        if self.anchor_id not in self._ids:
            self.anchor_id = None
        self._project()
        self._clamp_cursor(keep, fallback)


__all__ = ["TabViewModel", "TabViewState", "best_score", "sort_key_func", "NAME_BONUS"]
