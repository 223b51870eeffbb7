"""Rendering of a ``ViewSnapshot`` into prompt_toolkit fragments.

Pure functions: the application calls them from its ``FormattedTextControl``
callbacks, tests call them directly.
"""
from typing import List, Tuple

from prompt_toolkit.formatted_text import FormattedText
from wcwidth import wcwidth

from application.session import Mode, RowView, ViewSnapshot
from core import Tab, fuzzy
from util.responsive import ResponsiveLayoutManager, detail_content_width

HEADER_ROWS = 3
FOOTER_ROWS = 4
SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

COLUMN_TITLES = {
    "mark": "",
    "name": "Name",
    "source": "Source",
    "version": "Version",
    "stars": "Stars",
    "badge": "Job",
    "desc": "Description",
}

Fragments = List[Tuple[str, str]]


def display_width(text: str) -> int:
    """Return visual width of text accounting for wide/narrow characters."""
    width = 0
    for ch in text:
        w = wcwidth(ch)
        if w is None:
            w = 0
        width += max(0, w)
    return width


def trim_display(text: str, width: int) -> str:
    """Trim text so visible width doesn't exceed specified width."""
    acc = []
    used = 0
    for ch in text:
        w = wcwidth(ch) or 0
        if w < 0:
            w = 0
        if used + w > width:
            break
        acc.append(ch)
        used += w
    return "".join(acc)


def pad_display(text: str, width: int) -> str:
    """Trim and pad with spaces to exact visible width."""
    trimmed = trim_display(text, width)
    trimmed_width = display_width(trimmed)
    if trimmed_width < width:
        trimmed += " " * (width - trimmed_width)
    return trimmed


def ellipsize(text: str, width: int) -> str:
    if width <= 0:
        return ""
    if display_width(text) <= width:
        return pad_display(text, width)
    return pad_display(trim_display(text, max(0, width - 1)) + "…", width)


def _line(fragments: Fragments, width: int, style: str = "class:text") -> Fragments:
    """Pad a fragment list with spaces to ``width`` and end it with a newline."""
    used = sum(display_width(text) for _, text in fragments)
    out = list(fragments)
    if used < width:
        out.append((style, " " * (width - used)))
    out.append(("", "\n"))
    return out


# ------------------------------------------------------------------- header
def _tabs_fragments(snap: ViewSnapshot) -> Fragments:
    fragments: Fragments = [("class:header", " hoard ")]
    for idx, (title, count, active) in enumerate(snap.tabs, start=1):
        style = "class:tab.active" if active else "class:tab"
        fragments.append(("class:border", "│"))
        fragments.append((style, f" {idx} {title} ({count}) "))
    return fragments


def _info_fragments(snap: ViewSnapshot, spinner: int) -> Fragments:
    fragments: Fragments = []
    if snap.tab is Tab.DISCOVER and snap.search is not None:
        search = snap.search
        frame = SPINNER_FRAMES[spinner % len(SPINNER_FRAMES)]
        marker = "✕" if search.cancelled else ("✓" if search.complete else frame)
        fragments.append(("class:text", f" {marker} '{search.query}' {search.result_count} results "))
        for adapter in search.adapters:
            if adapter.state == "done":
                style = "class:badge.ok"
            elif adapter.state == "failed":
                style = "class:badge.error"
            else:
                style = "class:badge.pending"
            fragments.append(("class:border", "·"))
            fragments.append((style, f" {adapter.label} {adapter.badge} {adapter.elapsed:.1f}s "))
    elif snap.tab is Tab.DISCOVER:
        fragments.append(("class:text.dim", " press / to search the registries"))
    else:
        fragments.append(("class:text.dim", f" filter: {snap.filter_desc or 'none'}"))
    fragments.append(("class:text.dim", f"  sort: {snap.sort_key}"))
    if snap.selected_count:
        fragments.append(("class:status.warn", f"  {snap.selected_count} selected"))
    return fragments


def render_header(snap: ViewSnapshot, spinner: int = 0) -> FormattedText:
    width = snap.width
    layout = ResponsiveLayoutManager.select_layout(width)
    widths = layout.calculate_widths(width)
    titles = " ".join(pad_display(COLUMN_TITLES[col], widths[col]) for col in layout.columns)
    fragments: Fragments = []
    fragments += _line(_clip(_tabs_fragments(snap), width), width)
    fragments += _line(_clip(_info_fragments(snap, spinner), width), width)
    fragments += _line([("class:header", trim_display(titles, width))], width)
    fragments.pop()  # no trailing newline on the last line
    return FormattedText(fragments)


def _clip(fragments: Fragments, width: int) -> Fragments:
    out: Fragments = []
    used = 0
    for style, text in fragments:
        if used >= width:
            break
        piece = trim_display(text, width - used)
        out.append((style, piece))
        used += display_width(piece)
    return out


# --------------------------------------------------------------------- rows
def _highlight(name: str, query: str, width: int, base: str) -> Fragments:
    text = ellipsize(name, width)
    positions = set(fuzzy.match_positions(query, name) or ()) if query else set()
    if not positions:
        return [(base, text)]
    return [(f"{base} class:match" if idx in positions else base, ch) for idx, ch in enumerate(text)]


def _cell(row: RowView, column: str, width: int) -> str:
    if column == "mark":
        mark = "●" if row.selected else " "
        if row.favorite:
            mark = "★" if not row.selected else "✦"
        return pad_display(mark, width)
    if column == "source":
        return ellipsize(row.source, width)
    if column == "version":
        version = row.version
        if row.update:
            version = f"{version}↑" if version else "↑"
        return ellipsize(version, width)
    if column == "stars":
        return ellipsize(str(row.stars) if row.stars else "", width)
    if column == "badge":
        return ellipsize(row.badge, width)
    if column == "desc":
        labels = " ".join(f"#{label}" for label in row.labels)
        if row.pending_labels:
            labels += " *"
        text = f"{labels} {row.description}".strip() if labels else row.description
        return ellipsize(text, width)
    return ellipsize(getattr(row, column, ""), width)


def render_row(row: RowView, layout_columns, widths, query: str = "") -> Fragments:
    base = "class:cursor" if row.cursor else ("class:marked" if row.selected else "class:text")
    fragments: Fragments = []
    for idx, column in enumerate(layout_columns):
        if idx:
            fragments.append((base, " "))
        width = widths[column]
        if column == "name":
            style = base if row.installed else f"{base} class:text.dim"
            fragments.extend(_highlight(row.name, query, width, style))
        elif column == "badge":
            fragments.append((f"{base} class:badge.{row.badge_level}", _cell(row, column, width)))
        elif column == "mark" and row.favorite:
            fragments.append((f"{base} class:favorite", _cell(row, column, width)))
        elif column == "version" and row.update:
            fragments.append((f"{base} class:update", _cell(row, column, width)))
        else:
            fragments.append((base, _cell(row, column, width)))
    return fragments


def render_body(snap: ViewSnapshot, height: int) -> FormattedText:
    width = snap.width
    if snap.overlay is not None:
        return render_overlay(snap, height)
    layout = ResponsiveLayoutManager.select_layout(width)
    widths = layout.calculate_widths(width)
    query = snap.filter_query
    fragments: Fragments = []
    if not snap.rows:
        empty = "no matches" if snap.filter_desc else "nothing here"
        if snap.tab is Tab.DISCOVER and snap.search is None:
            empty = "no search yet"
        fragments += _line([("class:text.dim", f"  {empty}")], width)
    for row in snap.rows:
        fragments += _line(_clip(render_row(row, layout.columns, widths, query), width), width)
    if fragments:
        fragments.pop()
    return FormattedText(fragments)


def render_overlay(snap: ViewSnapshot, height: int) -> FormattedText:
    width = snap.width
    inner = max(4, detail_content_width(width) - 4)
    margin = " " * max(0, (width - inner - 4) // 2)
    fragments: Fragments = []
    title = f" {snap.overlay_title} " if snap.overlay_title else ""
    rule = "─" * max(0, inner + 2 - display_width(title))
    fragments += _line([("class:text", margin), ("class:border", "╭"), ("class:overlay.title", title), ("class:border", rule + "╮")], width)
    lines = list(snap.overlay_lines)[: max(0, height - 2)]
    for text in lines:
        fragments += _line(
            [("class:text", margin), ("class:border", "│ "), ("class:overlay", pad_display(text, inner)), ("class:border", " │")],
            width,
        )
    fragments += _line([("class:text", margin), ("class:border", "╰" + "─" * (inner + 2) + "╯")], width)
    fragments.pop()
    return FormattedText(fragments)


# ------------------------------------------------------------------- footer
def _status_fragments(snap: ViewSnapshot) -> Fragments:
    fragments: Fragments = []
    if snap.status.text:
        fragments.append((f"class:status.{snap.status.level}", f" {snap.status.text}"))
    right = []
    if snap.running_jobs or snap.queued_jobs:
        right.append(f"jobs {snap.running_jobs} running, {snap.queued_jobs} queued")
    if snap.pending_edits:
        right.append(f"{snap.pending_edits} unsaved")
    if snap.include_ai:
        right.append("AI")
    if right:
        fragments.append(("class:text.dim", "  [" + " | ".join(right) + "]"))
    return fragments


def _input_fragments(snap: ViewSnapshot) -> Fragments:
    if snap.mode is Mode.CONFIRM:
        if snap.confirm_choices > 1:
            return [("class:confirm", f" {snap.confirm_prompt} [tab/1-{snap.confirm_choices} source, y/n]")]
        return [("class:confirm", f" {snap.confirm_prompt} [y/n]")]
    if snap.mode in (Mode.SEARCH, Mode.COMMAND):
        fragments: Fragments = [("class:input.prompt", f" {snap.input_prompt}"), ("class:input", snap.input_text + "▏")]
        if snap.input_error:
            fragments.append(("class:input.error", f"  {snap.input_error}"))
        return fragments
    return []


def _hint_fragments(snap: ViewSnapshot) -> Fragments:
    if snap.mode is Mode.COMMAND and snap.suggestions:
        return [("class:suggestion", " " + "  ".join(f"{verb}: {usage}" for verb, usage in snap.suggestions))]
    if snap.mode is Mode.OVERLAY:
        return [("class:text.dim", " escape close")]
    undo = "ctrl-z undo" if snap.can_undo else ""
    redo = "ctrl-y redo" if snap.can_redo else ""
    parts = ["? help", "/ search", ": command", "q quit"] + [p for p in (undo, redo) if p]
    return [("class:text.dim", " " + "  ".join(parts))]


def render_footer(snap: ViewSnapshot) -> FormattedText:
    width = snap.width
    fragments: Fragments = []
    fragments += _line([("class:border", "─" * width)], width)
    fragments += _line(_clip(_status_fragments(snap), width), width)
    fragments += _line(_clip(_input_fragments(snap), width), width)
    fragments += _line(_clip(_hint_fragments(snap), width), width)
    fragments.pop()
    return FormattedText(fragments)


__all__ = [
    "FOOTER_ROWS",
    "HEADER_ROWS",
    "display_width",
    "ellipsize",
    "pad_display",
    "render_body",
    "render_footer",
    "render_header",
    "render_overlay",
    "render_row",
    "trim_display",
]
