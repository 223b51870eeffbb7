import random

from core import InstallSource, SortKey, Tab, TabFilter, ToolEntry
from application.tab_view import TabViewModel
from application.undo_log import LabelEdited, SelectionChanged, SortChanged, TabSwitched, UndoLog


class Target:
    def __init__(self, items):
        self.views = {tab: TabViewModel(tab, items if tab is Tab.INSTALLED else ()) for tab in Tab}
        self.tab = Tab.INSTALLED
        self.pending = {}

    def tab_view(self, tab):
        return self.views[tab]

    def restore_tab(self, tab):
        self.tab = tab

    def restore_pending_labels(self, name, labels):
        if labels is None:
            self.pending.pop(name, None)
        else:
            self.pending[name] = labels


def _items():
    return [
        ToolEntry(name, InstallSource.CARGO, installed=True, use_count=count, last_used=float(10 - count))
        for name, count in (("alpha", 3), ("beta", 7), ("gamma", 1), ("delta", 5), ("omega", 2))
    ]


def test_record_clears_redo():
    target = Target(_items())
    log = UndoLog()
    view = target.views[Tab.INSTALLED]
    log.record(view.toggle_selection("alpha"))
    log.undo(target)
    assert log.can_redo
    log.record(view.toggle_selection("beta"))
    assert not log.can_redo


def test_record_none_is_ignored():
    log = UndoLog()
    log.record(None)
    assert not log.can_undo


def test_overflow_drops_oldest_and_keeps_redo():
    target = Target(_items())
    view = target.views[Tab.INSTALLED]
    log = UndoLog(capacity=2)
    for name in ("alpha", "beta", "gamma"):
        log.record(view.toggle_selection(name))
    assert log.undo_depth() == 2
    log.undo(target)
    log.undo(target)
    assert log.undo(target) is None
    # the first toggle fell off the log
    assert view.selection == {"alpha"}
    assert log.redo_depth() == 2


def test_toggles_then_sort_undo_order():
    target = Target(_items())
    view = target.views[Tab.INSTALLED]
    log = UndoLog()
    for name in ("alpha", "beta", "gamma"):
        view.focus(name)
        log.record(view.toggle_selection())
    log.record(view.set_sort(SortKey.USAGE))

    undone = [log.undo(target) for _ in range(4)]
    assert isinstance(undone[0], SortChanged)
    assert [type(a) for a in undone[1:]] == [SelectionChanged] * 3
    assert [sorted(a.after - a.before)[0] for a in undone[1:]] == ["gamma", "beta", "alpha"]
    assert view.sort_key is SortKey.NAME
    assert view.selection == frozenset()


def test_tab_switch_and_label_edits_round_trip():
    target = Target(_items())
    log = UndoLog()
    log.record(TabSwitched(Tab.INSTALLED, Tab.BUNDLES))
    target.restore_tab(Tab.BUNDLES)
    log.record(LabelEdited("alpha", None, ("cli",)))
    target.restore_pending_labels("alpha", ("cli",))

    log.undo(target)
    assert "alpha" not in target.pending
    log.undo(target)
    assert target.tab is Tab.INSTALLED
    log.redo(target)
    log.redo(target)
    assert target.tab is Tab.BUNDLES
    assert target.pending == {"alpha": ("cli",)}


def test_undo_all_then_redo_all_restores_identical_state():
    rng = random.Random(7)
    for _ in range(25):
        target = Target(_items())
        view = target.views[Tab.INSTALLED]
        log = UndoLog()
        recorded = 0
        for _ in range(rng.randint(1, 12)):
            view.move_to(rng.randrange(max(1, len(view))))
            choice = rng.choice(["toggle", "filter", "sort", "all", "clear"])
            if choice == "toggle":
                action = view.toggle_selection()
            elif choice == "filter":
                action = view.set_filter(TabFilter(query=rng.choice(["", "a", "ta", "o"])))
            elif choice == "sort":
                action = view.cycle_sort()
            elif choice == "all":
                action = view.select_all()
            else:
                action = view.clear_selection()
            if action is not None:
                log.record(action)
                recorded += 1
        final = view.state()
        for _ in range(recorded):
            log.undo(target)
        for _ in range(recorded):
            log.redo(target)
        assert view.state() == final


def test_redo_returns_cursor_to_where_undo_was_pressed():
    target = Target(_items())
    view = target.views[Tab.INSTALLED]
    log = UndoLog()
    view.focus("alpha")
    log.record(view.toggle_selection())
    view.focus("gamma")
    log.undo(target)
    assert view.selection == frozenset()
    assert view.current_id() == "alpha"
    log.redo(target)
    assert view.selection == {"alpha"}
    assert view.current_id() == "gamma"
