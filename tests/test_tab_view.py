from core import InstallSource, SortKey, Tab, TabFilter, ToolEntry
from application.tab_view import TabViewModel, best_score


def _tools():
    return [
        ToolEntry("ripgrep", InstallSource.CARGO, installed=True, description="line search", use_count=5, last_used=30.0),
        ToolEntry("bat", InstallSource.CARGO, installed=True, description="cat clone", use_count=9, last_used=10.0, favorite=True),
        ToolEntry("httpie", InstallSource.PIP, installed=True, description="http client", use_count=1, last_used=50.0),
        ToolEntry("fd", InstallSource.CARGO, installed=True, description="find files", category="search"),
    ]


def _names(view):
    return [item.name for item in view.rows]


def test_default_sort_is_name_and_cursor_starts_at_top():
    view = TabViewModel(Tab.INSTALLED, _tools())
    assert _names(view) == ["bat", "fd", "httpie", "ripgrep"]
    assert view.cursor == 0
    assert view.current_id() == "bat"


def test_empty_list_has_no_cursor():
    view = TabViewModel(Tab.INSTALLED)
    assert view.cursor is None
    view.move_cursor(3)
    assert view.cursor is None
    assert view.toggle_selection() is None


def test_sort_keys():
    view = TabViewModel(Tab.INSTALLED, _tools())
    action = view.set_sort(SortKey.USAGE)
    assert _names(view) == ["bat", "ripgrep", "httpie", "fd"]
    assert action.before is SortKey.NAME and action.after is SortKey.USAGE
    view.set_sort(SortKey.RECENT)
    assert _names(view) == ["httpie", "ripgrep", "bat", "fd"]
    assert view.set_sort(SortKey.RECENT) is None


def test_sort_keeps_cursor_on_same_entry():
    view = TabViewModel(Tab.INSTALLED, _tools())
    view.focus("ripgrep")
    view.set_sort(SortKey.USAGE)
    assert view.current_id() == "ripgrep"
    assert view.cursor == 1


def test_cycle_sort_follows_tab_cycle():
    view = TabViewModel(Tab.INSTALLED, _tools())
    assert view.cycle_sort().after is SortKey.USAGE
    assert view.cycle_sort().after is SortKey.RECENT
    assert view.cycle_sort().after is SortKey.NAME


def test_fuzzy_filter_ranks_name_matches_first():
    view = TabViewModel(Tab.INSTALLED, _tools())
    view.set_filter(TabFilter(query="search"))
    # "fd" matches through its category, ripgrep through "line search"
    assert set(_names(view)) == {"fd", "ripgrep"}
    view.set_filter(TabFilter(query="rg"))
    assert _names(view)[0] == "ripgrep"


def test_name_bonus_applies():
    tool = ToolEntry("abc", description="zzz")
    assert best_score("abc", tool) > best_score("abc", ToolEntry("zzz", description="abc"))


def test_source_and_favourite_filters():
    view = TabViewModel(Tab.INSTALLED, _tools())
    view.set_filter(TabFilter(source="pip"))
    assert _names(view) == ["httpie"]
    view.set_filter(TabFilter(favorites_only=True))
    assert _names(view) == ["bat"]


def test_filter_clamps_cursor_when_entry_disappears():
    view = TabViewModel(Tab.INSTALLED, _tools())
    view.move_to(-1)
    assert view.current_id() == "ripgrep"
    view.set_filter(TabFilter(query="bat"))
    assert view.current_id() == "bat"
    assert view.set_filter(TabFilter(query="bat")) is None


def test_move_cursor_clamps():
    view = TabViewModel(Tab.INSTALLED, _tools())
    view.move_cursor(-5)
    assert view.cursor == 0
    view.move_cursor(50)
    assert view.cursor == 3


def test_ensure_visible_scrolls():
    view = TabViewModel(Tab.INSTALLED, _tools())
    view.move_to(3)
    view.ensure_visible(2)
    assert view.scroll == 2
    view.move_to(0)
    view.ensure_visible(2)
    assert view.scroll == 0


def test_selection_toggle_range_all_and_clear():
    view = TabViewModel(Tab.INSTALLED, _tools())
    action = view.toggle_selection("bat")
    assert action.before == frozenset() and action.after == {"bat"}
    assert view.toggle_selection("nope") is None
    view.select_range("bat", "httpie")
    assert view.selection == {"bat", "fd", "httpie"}
    view.select_all()
    assert len(view.selection) == 4
    assert view.select_all() is None
    view.clear_selection()
    assert view.selection == frozenset()


def test_refresh_prunes_selection_and_keeps_cursor():
    view = TabViewModel(Tab.INSTALLED, _tools())
    view.toggle_selection("fd")
    view.toggle_selection("httpie")
    view.focus("httpie")
    remaining = [t for t in _tools() if t.name != "fd"]
    view.refresh(remaining)
    assert view.selection == {"httpie"}
    assert view.current_id() == "httpie"
    view.refresh([t for t in remaining if t.name != "httpie"])
    assert view.selection == frozenset()
    assert view.current_id() == "ripgrep"


def test_projection_is_lazy():
    view = TabViewModel(Tab.INSTALLED, _tools())
    before = view.projections
    view.move_cursor(1)
    view.toggle_selection()
    view.ensure_visible(5)
    assert view.projections == before
    view.set_filter(TabFilter(query="b"))
    assert view.projections == before + 1
