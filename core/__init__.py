from .tool import Bundle, InstallSource, ToolEntry
from .tabs import (
    DISCOVER_SORT_CYCLE,
    TOOL_SORT_CYCLE,
    SortKey,
    Tab,
    TabFilter,
    default_sort_for,
    sort_cycle_for,
)
from .mutations import (
    DeleteBundle,
    Mutation,
    RemoveTool,
    SaveBundle,
    SetFavorite,
    SetInstalled,
    SetLabels,
    TrackTool,
)
from .discover import (
    DiscoverOrigin,
    DiscoverResult,
    InstallOption,
    merge_results,
    normalize_name,
    sort_results,
)
from . import fuzzy

__all__ = [
    "Bundle",
    "InstallSource",
    "ToolEntry",
    # Tabs
    "Tab",
    "SortKey",
    "TabFilter",
    "TOOL_SORT_CYCLE",
    "DISCOVER_SORT_CYCLE",
    "sort_cycle_for",
    "default_sort_for",
    # Store commands
    "Mutation",
    "TrackTool",
    "SetInstalled",
    "SetLabels",
    "SetFavorite",
    "RemoveTool",
    "SaveBundle",
    "DeleteBundle",
    # Discover
    "DiscoverOrigin",
    "DiscoverResult",
    "InstallOption",
    "normalize_name",
    "merge_results",
    "sort_results",
    "fuzzy",
]
