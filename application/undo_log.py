"""Undo/redo log for local dashboard state.

Only reversible UI mutations are recorded here: selection, filter, sort, tab
switches and pending label edits. Install, uninstall and update go through a
confirmation dialog instead and are never undoable.
"""

from collections import deque
from dataclasses import dataclass, replace
from typing import Deque, FrozenSet, Optional, Protocol, Tuple, Union

from core import SortKey, Tab, TabFilter

DEFAULT_CAPACITY = 100


class TabState(Protocol):
    def restore_selection(self, ids: FrozenSet[str]) -> None:
        ...

    def restore_filter(self, value: TabFilter) -> None:
        ...

    def restore_sort(self, key: SortKey) -> None:
        ...

    def focus(self, entry_id: Optional[str]) -> bool:
        ...

    def current_id(self) -> Optional[str]:
        ...


class ActionTarget(Protocol):
    """What undo and redo act upon: the per-tab views plus session-level state."""

    def tab_view(self, tab: Tab) -> TabState:
        ...

    def restore_tab(self, tab: Tab) -> None:
        ...

    def restore_pending_labels(self, name: str, labels: Optional[Tuple[str, ...]]) -> None:
        ...


@dataclass(frozen=True)
class SelectionChanged:
    tab: Tab
    before: FrozenSet[str]
    after: FrozenSet[str]
    cursor_before: Optional[str] = None
    cursor_after: Optional[str] = None

    label = "selection"

    def apply(self, target: ActionTarget) -> None:
        view = target.tab_view(self.tab)
        view.restore_selection(self.after)
        view.focus(self.cursor_after)

    def inverse(self) -> "SelectionChanged":
        return replace(
            self,
            before=self.after,
            after=self.before,
            cursor_before=self.cursor_after,
            cursor_after=self.cursor_before,
        )


@dataclass(frozen=True)
class FilterChanged:
    tab: Tab
    before: TabFilter
    after: TabFilter
    cursor_before: Optional[str] = None
    cursor_after: Optional[str] = None

    label = "filter"

    def apply(self, target: ActionTarget) -> None:
        view = target.tab_view(self.tab)
        view.restore_filter(self.after)
        view.focus(self.cursor_after)

    def inverse(self) -> "FilterChanged":
        return replace(
            self,
            before=self.after,
            after=self.before,
            cursor_before=self.cursor_after,
            cursor_after=self.cursor_before,
        )


@dataclass(frozen=True)
class SortChanged:
    tab: Tab
    before: SortKey
    after: SortKey
    cursor_before: Optional[str] = None
    cursor_after: Optional[str] = None

    label = "sort"

    def apply(self, target: ActionTarget) -> None:
        view = target.tab_view(self.tab)
        view.restore_sort(self.after)
        view.focus(self.cursor_after)

    def inverse(self) -> "SortChanged":
        return replace(
            self,
            before=self.after,
            after=self.before,
            cursor_before=self.cursor_after,
            cursor_after=self.cursor_before,
        )


@dataclass(frozen=True)
class TabSwitched:
    before: Tab
    after: Tab

    label = "tab switch"

    def apply(self, target: ActionTarget) -> None:
        target.restore_tab(self.after)

    def inverse(self) -> "TabSwitched":
        return TabSwitched(before=self.after, after=self.before)


@dataclass(frozen=True)
class LabelEdited:
    """Pending (unsaved) label edit; ``None`` means no pending edit for the tool."""

    name: str
    before: Optional[Tuple[str, ...]]
    after: Optional[Tuple[str, ...]]

    label = "label edit"

    def apply(self, target: ActionTarget) -> None:
        target.restore_pending_labels(self.name, self.after)

    def inverse(self) -> "LabelEdited":
        return LabelEdited(name=self.name, before=self.after, after=self.before)


UndoableAction = Union[SelectionChanged, FilterChanged, SortChanged, TabSwitched, LabelEdited]


class UndoLog:
    """Two bounded stacks. Recording clears redo; undo overflow drops the oldest."""

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        self.capacity = max(1, int(capacity))
        self._undo: Deque[UndoableAction] = deque(maxlen=self.capacity)
        self._redo: Deque[UndoableAction] = deque(maxlen=self.capacity)

    def record(self, action: Optional[UndoableAction]) -> None:
        if action is None:
            return
        self._undo.append(action)
        self._redo.clear()

    def undo(self, target: ActionTarget) -> Optional[UndoableAction]:
        if not self._undo:
            return None
        action = self._undo.pop()
        if isinstance(action, SelectionChanged):
            # redo lands where the cursor was when undo was pressed
            action = replace(action, cursor_after=target.tab_view(action.tab).current_id())
        action.inverse().apply(target)
        self._redo.append(action)
        return action

    def redo(self, target: ActionTarget) -> Optional[UndoableAction]:
        if not self._redo:
            return None
        action = self._redo.pop()
        action.apply(target)
        self._undo.append(action)
        return action

    @property
    def can_undo(self) -> bool:
        return bool(self._undo)

    @property
    def can_redo(self) -> bool:
        return bool(self._redo)

    def undo_depth(self) -> int:
        return len(self._undo)

    def redo_depth(self) -> int:
        return len(self._redo)

    def peek_undo(self) -> Optional[UndoableAction]:
        return self._undo[-1] if self._undo else None

    def clear(self) -> None:
        self._undo.clear()
        self._redo.clear()


__all__ = [
    "UndoLog",
    "UndoableAction",
    "SelectionChanged",
    "FilterChanged",
    "SortChanged",
    "TabSwitched",
    "LabelEdited",
    "ActionTarget",
    "DEFAULT_CAPACITY",
]
