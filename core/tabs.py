from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple


class Tab(Enum):
    INSTALLED = ("installed", "Installed")
    AVAILABLE = ("available", "Available")
    UPDATES = ("updates", "Updates")
    BUNDLES = ("bundles", "Bundles")
    DISCOVER = ("discover", "Discover")

    @property
    def key(self) -> str:
        return self.value[0]

    @property
    def title(self) -> str:
        return self.value[1]

    @property
    def index(self) -> int:
        return list(Tab).index(self)

    @classmethod
    def from_index(cls, index: int) -> Optional["Tab"]:
        tabs = list(cls)
        if 0 <= index < len(tabs):
            return tabs[index]
        return None

    @classmethod
    def from_string(cls, value: str) -> Optional["Tab"]:
        token = (value or "").strip().lower()
        for tab in cls:
            if tab.key == token:
                return tab
        return None

    def next(self, delta: int = 1) -> "Tab":
        tabs = list(Tab)
        return tabs[(self.index + delta) % len(tabs)]


class SortKey(Enum):
    NAME = "name"
    USAGE = "usage"
    RECENT = "recent"
    STARS = "stars"
    SOURCE = "source"

    @classmethod
    def from_string(cls, value: str) -> Optional["SortKey"]:
        token = (value or "").strip().lower()
        for key in cls:
            if key.value == token:
                return key
        return None


TOOL_SORT_CYCLE: Tuple[SortKey, ...] = (SortKey.NAME, SortKey.USAGE, SortKey.RECENT)
DISCOVER_SORT_CYCLE: Tuple[SortKey, ...] = (SortKey.STARS, SortKey.NAME, SortKey.SOURCE)


def sort_cycle_for(tab: Tab) -> Tuple[SortKey, ...]:
    if tab is Tab.DISCOVER:
        return DISCOVER_SORT_CYCLE
    if tab is Tab.BUNDLES:
        return (SortKey.NAME,)
    return TOOL_SORT_CYCLE


def default_sort_for(tab: Tab) -> SortKey:
    return sort_cycle_for(tab)[0]


@dataclass(frozen=True)
class TabFilter:
    """Filter predicate of one tab: fuzzy text, source and favourites."""

    query: str = ""
    source: Optional[str] = None
    favorites_only: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.query and self.source is None and not self.favorites_only

    def with_query(self, query: str) -> "TabFilter":
        return replace(self, query=query)

    def with_source(self, source: Optional[str]) -> "TabFilter":
        return replace(self, source=(source or None))

    def toggled_favorites(self) -> "TabFilter":
        return replace(self, favorites_only=not self.favorites_only)

    def describe(self) -> str:
        parts = []
        if self.query:
            parts.append(f"/{self.query}")
        if self.source:
            parts.append(f"src:{self.source}")
        if self.favorites_only:
            parts.append("fav")
        return " ".join(parts)
