import pytest
from prompt_toolkit.styles import Style

from application.session import AdapterProgress, Mode, Overlay, RowView, SearchProgress, StatusLine, ViewSnapshot
from core import Tab
from interface.tui_render import (
    FOOTER_ROWS,
    HEADER_ROWS,
    display_width,
    ellipsize,
    pad_display,
    render_body,
    render_footer,
    render_header,
    render_row,
    trim_display,
)
from interface.tui_themes import DEFAULT_THEME, THEMES, build_style, get_theme_palette
from util.responsive import ResponsiveLayoutManager, detail_content_width


def _snap(**overrides):
    values = dict(
        mode=Mode.NORMAL,
        tab=Tab.INSTALLED,
        tabs=tuple((tab.title, 0, tab is Tab.INSTALLED) for tab in Tab),
        rows=(),
        total_rows=0,
        scroll=0,
        width=100,
        height=20,
    )
    values.update(overrides)
    return ViewSnapshot(**values)


def _lines(formatted):
    return "".join(text for _, text in formatted).split("\n")


def test_width_helpers():
    assert display_width("日本") == 4
    assert trim_display("日本語", 5) == "日本"
    assert pad_display("ab", 4) == "ab  "
    assert ellipsize("abcdef", 4) == "abc…"
    assert ellipsize("ab", 4) == "ab  "
    assert ellipsize("ab", 0) == ""


@pytest.mark.parametrize("width", [30, 60, 100, 140])
def test_header_and_footer_fill_their_rows(width):
    snap = _snap(width=width, status=StatusLine("Refreshed"), running_jobs=1)
    header = _lines(render_header(snap))
    footer = _lines(render_footer(snap))
    assert len(header) == HEADER_ROWS
    assert len(footer) == FOOTER_ROWS
    assert all(display_width(line) == width for line in header + footer)


def test_header_shows_search_progress():
    search = SearchProgress(
        query="grep",
        generation=2,
        complete=False,
        cancelled=False,
        adapters=(
            AdapterProgress("cargo", "crates.io", "done", "done(3)", 0.4),
            AdapterProgress("npm", "npm", "failed", "failed: HTTP 500", 1.0),
        ),
        result_count=3,
    )
    text = "".join(t for _, t in render_header(_snap(tab=Tab.DISCOVER, search=search, width=160)))
    assert "'grep' 3 results" in text
    assert "crates.io done(3)" in text
    assert "failed: HTTP 500" in text


def test_row_highlights_fuzzy_matches():
    layout = ResponsiveLayoutManager.select_layout(100)
    widths = layout.calculate_widths(100)
    row = RowView(id="ripgrep", name="ripgrep", installed=True, cursor=True)
    fragments = render_row(row, layout.columns, widths, "rg")
    matched = [text for style, text in fragments if "class:match" in style]
    assert matched == ["r", "g"]
    assert all("class:cursor" in style for style, _ in fragments)


def test_row_marks_favourites_updates_and_pending_labels():
    layout = ResponsiveLayoutManager.select_layout(140)
    widths = layout.calculate_widths(140)
    row = RowView(
        id="bat",
        name="bat",
        version="0.24",
        favorite=True,
        update=True,
        labels=("cli",),
        pending_labels=True,
        badge="failed",
        badge_level="error",
    )
    fragments = render_row(row, layout.columns, widths)
    text = "".join(t for _, t in fragments)
    assert "★" in text
    assert "0.24↑" in text
    assert "#cli *" in text
    assert any("class:badge.error" in style for style, _ in fragments)


def test_body_empty_and_overlay():
    assert "nothing here" in "".join(t for _, t in render_body(_snap(), 10))
    assert "no search yet" in "".join(t for _, t in render_body(_snap(tab=Tab.DISCOVER), 10))
    snap = _snap(mode=Mode.OVERLAY, overlay=Overlay.HELP, overlay_title="Help", overlay_lines=("line one", "line two"))
    lines = _lines(render_body(snap, 10))
    assert "Help" in lines[0]
    assert "line two" in lines[2]
    assert len(lines) == 4


def test_footer_modes():
    confirm = "".join(t for _, t in render_footer(_snap(mode=Mode.CONFIRM, confirm_prompt="Install fd?")))
    assert "Install fd? [y/n]" in confirm
    choice = _snap(mode=Mode.CONFIRM, confirm_prompt="Install tool with brew install tool (2/2)", confirm_choices=2, width=140)
    assert "[tab/1-2 source, y/n]" in "".join(t for _, t in render_footer(choice))
    palette = _snap(
        mode=Mode.COMMAND,
        input_prompt=":",
        input_text="bogus",
        input_error="unknown command: bogus",
        suggestions=(("quit", "exit the application"),),
        width=140,
    )
    text = "".join(t for _, t in render_footer(palette))
    assert ":bogus" in text
    assert "unknown command: bogus" in text
    assert "quit: exit the application" in text
    normal = "".join(t for _, t in render_footer(_snap(can_undo=True, pending_edits=2, width=140)))
    assert "ctrl-z undo" in normal
    assert "2 unsaved" in normal


def test_layouts_fill_width():
    for width in (130, 100, 80, 50):
        layout = ResponsiveLayoutManager.select_layout(width)
        widths = layout.calculate_widths(width)
        assert sum(widths.values()) + len(layout.columns) - 1 == width
    assert ResponsiveLayoutManager.select_layout(50).columns == ["mark", "name", "source", "badge"]
    assert ResponsiveLayoutManager.select_layout(20).columns == ["mark", "name"]
    assert "stars" in ResponsiveLayoutManager.select_layout(130).columns


def test_detail_width_bounds():
    assert detail_content_width(60) == 56
    assert detail_content_width(100) == 94
    assert detail_content_width(400) == 160


def test_every_theme_defines_the_same_classes():
    keys = set(THEMES[DEFAULT_THEME])
    for name, palette in THEMES.items():
        assert set(palette) == keys, name
    assert isinstance(build_style("nord"), Style)
    assert get_theme_palette("no-such-theme") == THEMES[DEFAULT_THEME]


def test_themes_match_config_names():
    from config import THEME_NAMES

    assert sorted(THEMES) == sorted(THEME_NAMES)
