#!/usr/bin/env python3
"""TUI themes and styling."""

from typing import Dict

from prompt_toolkit.styles import Style


def _palette(
    fg: str,
    dim: str,
    dimmer: str,
    accent: str,
    ok: str,
    warn: str,
    fail: str,
    info: str,
    cursor_bg: str,
    mark_bg: str,
    border: str,
) -> Dict[str, str]:
    return {
        "": fg,
        "text": fg,
        "text.dim": dim,
        "text.dimmer": dimmer,
        "header": f"{accent} bold",
        "border": border,
        "tab": dim,
        "tab.active": f"{accent} bold underline",
        "cursor": f"bg:{cursor_bg} {fg} bold",
        "marked": f"bg:{mark_bg} {fg}",
        "match": f"{accent} bold",
        "favorite": f"{warn} bold",
        "update": f"{info} bold",
        "installed": ok,
        "status.ok": f"{ok} bold",
        "status.info": info,
        "status.warn": f"{warn} bold",
        "status.error": f"{fail} bold",
        "badge.ok": ok,
        "badge.warn": warn,
        "badge.error": f"{fail} bold",
        "badge.pending": dim,
        "badge.info": info,
        "input": fg,
        "input.prompt": f"{accent} bold",
        "input.error": f"{fail} bold",
        "suggestion": dim,
        "overlay": fg,
        "overlay.title": f"{accent} bold",
        "confirm": f"{warn} bold",
    }


THEMES: Dict[str, Dict[str, str]] = {
    "catppuccin-mocha": _palette(
        "#cdd6f4", "#a6adc8", "#6c7086", "#cba6f7", "#a6e3a1", "#f9e2af", "#f38ba8", "#89b4fa", "#45475a", "#313244", "#585b70"
    ),
    "catppuccin-latte": _palette(
        "#4c4f69", "#6c6f85", "#9ca0b0", "#8839ef", "#40a02b", "#df8e1d", "#d20f39", "#1e66f5", "#ccd0da", "#dce0e8", "#acb0be"
    ),
    "dracula": _palette(
        "#f8f8f2", "#bfbfbf", "#6272a4", "#bd93f9", "#50fa7b", "#f1fa8c", "#ff5555", "#8be9fd", "#44475a", "#343746", "#6272a4"
    ),
    "nord": _palette(
        "#eceff4", "#d8dee9", "#616e88", "#88c0d0", "#a3be8c", "#ebcb8b", "#bf616a", "#81a1c1", "#434c5e", "#3b4252", "#4c566a"
    ),
    "tokyo-night": _palette(
        "#c0caf5", "#a9b1d6", "#565f89", "#7aa2f7", "#9ece6a", "#e0af68", "#f7768e", "#7dcfff", "#364a82", "#292e42", "#3b4261"
    ),
    "gruvbox": _palette(
        "#ebdbb2", "#bdae93", "#7c6f64", "#fe8019", "#b8bb26", "#fabd2f", "#fb4934", "#83a598", "#504945", "#3c3836", "#665c54"
    ),
}

DEFAULT_THEME = "catppuccin-mocha"


def get_theme_palette(theme: str) -> Dict[str, str]:
    """Get theme palette, falling back to default if theme not found."""
    base = THEMES.get(theme)
    if not base:
        base = THEMES[DEFAULT_THEME]
    return dict(base)


def build_style(theme: str) -> Style:
    """Build Style object from theme name."""
    palette = get_theme_palette(theme)
    return Style.from_dict(palette)
