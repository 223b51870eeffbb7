"""Command palette: alias table, parsing, suggestions and input history."""

import shlex
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from core import Tab, fuzzy


class CommandError(ValueError):
    """Invalid palette input. Shown inline; the palette stays open."""


@dataclass(frozen=True)
class CommandSpec:
    verb: str
    aliases: Tuple[str, ...]
    usage: str
    description: str
    min_args: int = 0
    max_args: Optional[int] = 0


@dataclass(frozen=True)
class Command:
    verb: str
    args: Tuple[str, ...] = ()
    raw: str = ""

    def arg(self, index: int, default: str = "") -> str:
        return self.args[index] if index < len(self.args) else default


COMMAND_SPECS: Tuple[CommandSpec, ...] = (
    CommandSpec("quit", ("q", "exit"), "quit", "exit the application"),
    CommandSpec("help", ("h",), "help", "show help dialog"),
    CommandSpec("refresh", ("r",), "refresh", "reload tools from the store"),
    CommandSpec("theme", ("t",), "theme [name]", "cycle or set theme", 0, 1),
    CommandSpec("sort", ("s",), "sort [field]", "cycle or set sort (name/usage/recent, stars/name/source)", 0, 1),
    CommandSpec("filter", ("source", "src"), "filter [source]", "filter by source, no argument clears", 0, 1),
    CommandSpec("fav", ("favorites", "starred"), "fav", "toggle favourites filter"),
    CommandSpec("installed", ("1",), "installed", "go to Installed tab"),
    CommandSpec("available", ("2",), "available", "go to Available tab"),
    CommandSpec("updates", ("3",), "updates", "go to Updates tab"),
    CommandSpec("bundles", ("4",), "bundles", "go to Bundles tab"),
    CommandSpec("discover", ("5",), "discover [query]", "go to Discover tab, optionally searching", 0, None),
    CommandSpec("install", ("i",), "install", "install selected tool or bundle"),
    CommandSpec("uninstall", ("d", "delete"), "uninstall", "uninstall selected tool"),
    CommandSpec("update", ("u", "upgrade"), "update", "update selected tool"),
    CommandSpec("undo", ("z",), "undo", "undo last action"),
    CommandSpec("redo", ("y",), "redo", "redo undone action"),
    CommandSpec("config", ("c", "cfg", "settings"), "config", "open configuration overlay"),
    CommandSpec("label", (), "label add|rm <label>", "edit labels of the current tool (pending until :write)", 2, 2),
    CommandSpec("write", ("w",), "write", "save pending label edits"),
    CommandSpec("ai", (), "ai", "toggle AI source for Discover searches"),
    CommandSpec("sources", (), "sources [id ...]", "show or set enabled Discover sources", 0, None),
    CommandSpec("cancel", (), "cancel", "cancel the running Discover search"),
    CommandSpec("jobs", (), "jobs", "list background jobs in the status line"),
    CommandSpec("track", (), "track", "track the current bundle's missing tools as available"),
    CommandSpec("bundle", ("mkbundle",), "bundle <name>", "create or replace a bundle from the selected tools", 1, 1),
    CommandSpec("unbundle", ("rmbundle",), "unbundle", "delete the current bundle"),
    CommandSpec("untrack", ("forget",), "untrack", "stop tracking the current (not installed) tool"),
)

TAB_VERBS: Dict[str, Tab] = {
    "installed": Tab.INSTALLED,
    "available": Tab.AVAILABLE,
    "updates": Tab.UPDATES,
    "bundles": Tab.BUNDLES,
    "discover": Tab.DISCOVER,
}

LABEL_ACTIONS = ("add", "rm")

_BY_NAME: Dict[str, CommandSpec] = {}
for _spec in COMMAND_SPECS:
    _BY_NAME[_spec.verb] = _spec
    for _alias in _spec.aliases:
        _BY_NAME[_alias] = _spec


def lookup(name: str) -> Optional[CommandSpec]:
    return _BY_NAME.get((name or "").lower())


def parse_command(text: str) -> Command:
    """Parse palette input into a canonical ``Command`` or raise ``CommandError``."""
    raw = (text or "").strip()
    if raw.startswith(":"):
        raw = raw[1:].strip()
    if not raw:
        raise CommandError("empty command")
    try:
        parts = shlex.split(raw)
    except ValueError as exc:
        raise CommandError(f"parse error: {exc}") from exc
    if not parts:
        raise CommandError("empty command")
    spec = lookup(parts[0])
    if spec is None:
        raise CommandError(f"unknown command: {parts[0]}")
    args = tuple(parts[1:])
    if len(args) < spec.min_args or (spec.max_args is not None and len(args) > spec.max_args):
        raise CommandError(f"usage: {spec.usage}")
    if spec.verb == "label" and args[0].lower() not in LABEL_ACTIONS:
        raise CommandError(f"usage: {spec.usage}")
    return Command(spec.verb, args, raw)


def suggestions(prefix: str, limit: int = 8) -> List[Tuple[str, str]]:
    """Palette suggestions as (name, description): prefix matches first, then fuzzy."""
    token = (prefix or "").strip().lstrip(":").split(" ")[0].lower()
    names = list(_BY_NAME)
    if not token:
        return [(spec.verb, spec.description) for spec in COMMAND_SPECS][:limit]
    prefixed = sorted((name for name in names if name.startswith(token)), key=lambda n: (len(n), n))
    seen = set(prefixed)
    ranked = [name for name, _ in fuzzy.rank(token, names) if name not in seen]
    result = []
    for name in prefixed + ranked:
        result.append((name, _BY_NAME[name].description))
        if len(result) >= limit:
            break
    return result


def complete(text: str) -> Optional[str]:
    """Tab completion for the verb; arguments are left untouched."""
    stripped = (text or "").lstrip(":")
    if " " in stripped.strip():
        return None
    matches = suggestions(stripped, limit=1)
    if not matches:
        return None
    return matches[0][0]


class CommandHistory:
    """Bounded palette history with shell-like up/down navigation."""

    def __init__(self, capacity: int = 50):
        self.capacity = max(1, int(capacity))
        self._entries: List[str] = []
        self._index: Optional[int] = None
        self._draft = ""

    def add(self, command: str) -> None:
        command = (command or "").strip()
        self._index = None
        if not command:
            return
        if self._entries and self._entries[-1] == command:
            return
        self._entries.append(command)
        del self._entries[: max(0, len(self._entries) - self.capacity)]

    def entries(self) -> List[str]:
        return list(self._entries)

    def older(self, draft: str) -> Optional[str]:
        if not self._entries:
            return None
        if self._index is None:
            self._draft = draft
            self._index = len(self._entries) - 1
        elif self._index > 0:
            self._index -= 1
        return self._entries[self._index]

    def newer(self) -> Optional[str]:
        if self._index is None:
            return None
        if self._index < len(self._entries) - 1:
            self._index += 1
            return self._entries[self._index]
        self._index = None
        return self._draft

    def reset(self) -> None:
        self._index = None
        self._draft = ""


__all__ = [
    "COMMAND_SPECS",
    "Command",
    "CommandError",
    "CommandHistory",
    "CommandSpec",
    "TAB_VERBS",
    "complete",
    "lookup",
    "parse_command",
    "suggestions",
]
