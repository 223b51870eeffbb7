"""Top-level dashboard state machine.

``SessionStateMachine`` owns every piece of interactive state: one
``TabViewModel`` per tab, the undo log, the discovery aggregator, the job
coordinator, the active mode and the status line. Everything reaches it
through ``dispatch(event)`` on the main loop; the presentation layer reads
``snapshot()``.
"""

import logging
import shlex
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from config import AI_PROVIDERS, THEME_NAMES, HoardConfig
from core import (
    Bundle,
    DeleteBundle,
    DiscoverResult,
    InstallSource,
    RemoveTool,
    SaveBundle,
    SetFavorite,
    SetInstalled,
    SetLabels,
    SortKey,
    Tab,
    ToolEntry,
    TrackTool,
    sort_cycle_for,
)
from core.discover import DiscoverOrigin, InstallOption

from .commands import TAB_VERBS, Command, CommandError, CommandHistory, complete, parse_command, suggestions
from .discovery import DiscoveryAggregator
from .jobs import BackgroundJob, JobContext, JobCoordinator, JobKind, JobRejected
from .messages import AdapterResult, AdapterStarted, JobFinished, Message
from .ports import ProcessRunner, ReadmeFetcher, StoreError, ToolStore
from .tab_view import TabViewModel
from .undo_log import FilterChanged, LabelEdited, TabSwitched, UndoLog

logger = logging.getLogger("hoard.session")

CHROME_ROWS = 7
STATUS_TTL = 6.0
MOUSE_SCROLL_STEP = 3

CommandBuilder = Callable[[str, str, InstallSource], Optional[List[str]]]
Plan = Tuple[str, List[str], Dict[str, Any]]


class Mode(Enum):
    NORMAL = "normal"
    SEARCH = "search"
    COMMAND = "command"
    CONFIRM = "confirm"
    OVERLAY = "overlay"


class Overlay(Enum):
    HELP = "help"
    CONFIG = "config"
    DETAILS = "details"
    ERROR = "error"


# ---------------------------------------------------------------------- events
@dataclass(frozen=True)
class KeyEvent:
    key: str


@dataclass(frozen=True)
class TextEvent:
    text: str


@dataclass(frozen=True)
class MouseEvent:
    kind: str  # "click", "scroll_up" or "scroll_down"
    row: int = 0


@dataclass(frozen=True)
class ResizeEvent:
    width: int
    height: int


@dataclass(frozen=True)
class TickEvent:
    now: float


@dataclass(frozen=True)
class QuitEvent:
    pass


@dataclass(frozen=True)
class BackgroundEvent:
    message: Message


# -------------------------------------------------------------------- snapshot
@dataclass(frozen=True)
class StatusLine:
    text: str = ""
    level: str = "info"
    at: float = 0.0


@dataclass(frozen=True)
class PendingAction:
    """Action waiting behind a confirmation dialog.

    With ``choices`` the dialog also picks one of several alternatives (an
    install source); ``on_choose`` then receives the chosen index.
    """

    prompt: str
    on_accept: Callable[[], None]
    on_decline: Optional[Callable[[], None]] = None
    choices: Tuple[str, ...] = ()
    choice: int = 0
    on_choose: Optional[Callable[[int], None]] = None

    def describe(self) -> str:
        if not self.choices:
            return self.prompt
        return f"{self.prompt} {self.choices[self.choice]} ({self.choice + 1}/{len(self.choices)})"

    def select(self, index: int) -> "PendingAction":
        if not self.choices:
            return self
        return replace(self, choice=index % len(self.choices))


@dataclass(frozen=True)
class RowView:
    id: str
    name: str
    source: str = ""
    version: str = ""
    description: str = ""
    stars: int = 0
    labels: Tuple[str, ...] = ()
    selected: bool = False
    cursor: bool = False
    favorite: bool = False
    update: bool = False
    installed: bool = False
    pending_labels: bool = False
    badge: str = ""
    badge_level: str = "info"


@dataclass(frozen=True)
class AdapterProgress:
    adapter_id: str
    label: str
    state: str
    badge: str
    elapsed: float


@dataclass(frozen=True)
class SearchProgress:
    query: str
    generation: int
    complete: bool
    cancelled: bool
    adapters: Tuple[AdapterProgress, ...]
    result_count: int


@dataclass(frozen=True)
class ViewSnapshot:
    mode: Mode
    tab: Tab
    tabs: Tuple[Tuple[str, int, bool], ...]
    rows: Tuple[RowView, ...]
    total_rows: int
    scroll: int
    overlay: Optional[Overlay] = None
    overlay_title: str = ""
    overlay_lines: Tuple[str, ...] = ()
    status: StatusLine = field(default_factory=StatusLine)
    input_prompt: str = ""
    input_text: str = ""
    input_error: str = ""
    suggestions: Tuple[Tuple[str, str], ...] = ()
    confirm_prompt: str = ""
    confirm_choices: int = 0
    search: Optional[SearchProgress] = None
    filter_desc: str = ""
    filter_query: str = ""
    sort_key: str = ""
    selected_count: int = 0
    can_undo: bool = False
    can_redo: bool = False
    running_jobs: int = 0
    queued_jobs: int = 0
    pending_edits: int = 0
    include_ai: bool = False
    theme: str = ""
    width: int = 80
    height: int = 24


HELP_LINES: Tuple[str, ...] = (
    "j/k, up/down   move            g/G        first/last",
    "ctrl-d/ctrl-u  half page       tab/[ ]    switch tab",
    "1-5            jump to tab     /          search / filter",
    ":              command palette s          cycle sort",
    "space          toggle select   v          select range",
    "ctrl-a         select all      x          clear selection",
    "F              favourites only *          toggle favourite",
    "i / D / u      install / uninstall / update",
    "enter          details         o          open URL",
    "R              fetch README    r          refresh",
    "ctrl-z/ctrl-y  undo/redo       c          config",
    "t              track bundle    ?          help",
    "q              quit",
    "",
    "Palette: :label add|rm <label>, :write, :sources <ids>, :ai, :cancel",
    "         :bundle <name>, :unbundle, :track, :untrack, :jobs",
)


@dataclass
class ConfigDraft:
    values: HoardConfig
    index: int = 0
    dirty: bool = False

    def fields(self) -> List[str]:
        return ["theme", "ai_provider", "include_ai"] + [f"sources.{key}" for key in self.values.sources]

    def describe(self) -> List[str]:
        lines = []
        for idx, name in enumerate(self.fields()):
            marker = ">" if idx == self.index else " "
            if name.startswith("sources."):
                value = "on" if self.values.sources[name.split(".", 1)[1]] else "off"
            else:
                value = getattr(self.values, name)
                if isinstance(value, bool):
                    value = "on" if value else "off"
                value = value or "none"
            lines.append(f"{marker} {name:<18} {value}")
        lines.append("")
        lines.append("space/enter change   s save   escape close")
        return lines

    def move(self, delta: int) -> None:
        total = len(self.fields())
        self.index = max(0, min(self.index + delta, total - 1))

    def change(self) -> None:
        name = self.fields()[self.index]
        cfg = self.values
        if name == "theme":
            cfg.theme = THEME_NAMES[(THEME_NAMES.index(cfg.theme) + 1) % len(THEME_NAMES)] if cfg.theme in THEME_NAMES else THEME_NAMES[0]
        elif name == "ai_provider":
            idx = AI_PROVIDERS.index(cfg.ai_provider) if cfg.ai_provider in AI_PROVIDERS else 0
            cfg.ai_provider = AI_PROVIDERS[(idx + 1) % len(AI_PROVIDERS)]
        elif name == "include_ai":
            cfg.include_ai = not cfg.include_ai
        else:
            key = name.split(".", 1)[1]
            cfg.sources[key] = not cfg.sources[key]
        self.dirty = True


class SessionStateMachine:
    def __init__(
        self,
        store: ToolStore,
        jobs: JobCoordinator,
        aggregator: DiscoveryAggregator,
        config: Optional[HoardConfig] = None,
        runner: Optional[ProcessRunner] = None,
        readme: Optional[ReadmeFetcher] = None,
        command_builder: Optional[CommandBuilder] = None,
        save_config: Optional[Callable[[HoardConfig], None]] = None,
        open_url: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.jobs = jobs
        self.aggregator = aggregator
        self.config = config or HoardConfig()
        self.runner = runner
        self.readme = readme
        self.command_builder = command_builder
        self._save_config = save_config
        self._open_url = open_url
        self.clock = clock

        self.mode = Mode.NORMAL
        self.previous_mode = Mode.NORMAL
        self.overlay: Optional[Overlay] = None
        self.overlay_title = ""
        self.overlay_lines: List[str] = []
        self.config_draft: Optional[ConfigDraft] = None
        self.confirm: Optional[PendingAction] = None
        self._details_key: Optional[str] = None

        self.tab = Tab.INSTALLED
        self.views: Dict[Tab, TabViewModel] = {tab: TabViewModel(tab) for tab in Tab}
        self.undo_log = UndoLog(self.config.undo_size)
        self.command_history = CommandHistory(self.config.history_size)
        self.pending_labels: Dict[str, Tuple[str, ...]] = {}
        self.job_failures: Dict[str, str] = {}
        self.readme_cache: Dict[str, str] = {}

        self.input_text = ""
        self.input_error = ""
        self.discover_query = ""
        self._history_index: Optional[int] = None
        self._search_entry_filter = self.views[self.tab].filter
        self._search_entry_cursor: Optional[str] = None

        self.include_ai = bool(self.config.include_ai)
        self.enabled_sources: List[str] = [
            source_id for source_id in self.config.enabled_sources() if source_id in aggregator.adapters
        ]
        self.status = StatusLine()
        self.width = 80
        self.height = 24
        self.now = clock()
        self.running = True
        self._tools: Dict[str, ToolEntry] = {}
        self._bundles: Dict[str, Bundle] = {}
        self._revision = 0
        self._cached: Optional[Tuple[int, ViewSnapshot]] = None

    # ============================================================ plumbing
    @property
    def view(self) -> TabViewModel:
        return self.views[self.tab]

    @property
    def list_height(self) -> int:
        return max(1, self.height - CHROME_ROWS)

    def _touch(self) -> None:
        self._revision += 1

    def set_status(self, text: str, level: str = "info") -> None:
        self.status = StatusLine(text, level, self.clock())
        self._touch()

    def _enter_mode(self, mode: Mode) -> None:
        if mode is self.mode:
            return
        self.previous_mode = self.mode
        self.mode = mode

    def _pop_mode(self) -> None:
        """Go back exactly one level to the single-slot previous mode."""
        target = self.previous_mode
        if self.mode is Mode.OVERLAY:
            self.overlay = None
            self.overlay_lines = []
            self.overlay_title = ""
            self.config_draft = None
        if self.mode is Mode.CONFIRM:
            self.confirm = None
        if self.mode in (Mode.SEARCH, Mode.COMMAND):
            self.input_text = ""
            self.input_error = ""
        self.mode = target if target is not self.mode else Mode.NORMAL
        self.previous_mode = Mode.NORMAL

    def load(self) -> bool:
        self.aggregator.history.load()
        return self.refresh()

    # ============================================================ undo target
    def tab_view(self, tab: Tab) -> TabViewModel:
        return self.views[tab]

    def restore_tab(self, tab: Tab) -> None:
        self.tab = tab
        self.view.ensure_visible(self.list_height)

    def restore_pending_labels(self, name: str, labels: Optional[Tuple[str, ...]]) -> None:
        if labels is None:
            self.pending_labels.pop(name, None)
        else:
            self.pending_labels[name] = tuple(labels)

    # ============================================================ dispatch
    def dispatch(self, event: Any) -> None:
        if isinstance(event, TickEvent):
            self._on_tick(event.now)
            return
        if isinstance(event, QuitEvent):
            self.shutdown()
            self._touch()
            return
        if isinstance(event, ResizeEvent):
            self.width, self.height = max(1, event.width), max(1, event.height)
            self.view.ensure_visible(self.list_height)
            self._touch()
            return
        if isinstance(event, BackgroundEvent):
            self._on_background(event.message)
            return
        if isinstance(event, MouseEvent):
            self._on_mouse(event)
        elif isinstance(event, TextEvent):
            for ch in event.text:
                if ch.isprintable():
                    self._on_key(ch)
        elif isinstance(event, KeyEvent):
            self._on_key(event.key)
        else:
            logger.debug("ignoring unknown event %r", event)
            return
        self._touch()

    def _on_key(self, key: str) -> None:
        handler = {
            Mode.NORMAL: self._normal_key,
            Mode.SEARCH: self._search_key,
            Mode.COMMAND: self._command_key,
            Mode.CONFIRM: self._confirm_key,
            Mode.OVERLAY: self._overlay_key,
        }[self.mode]
        handler(key)

    def _on_tick(self, now: float) -> None:
        self.now = now
        changed = False
        if self.status.text and self.status.level == "info" and now - self.status.at > STATUS_TTL:
            self.status = StatusLine()
            changed = True
        session = self.aggregator.session
        if self.tab is Tab.DISCOVER and session is not None and not session.complete and not session.retired:
            changed = True
        if self.jobs.running_count:
            changed = True
        if changed:
            self._touch()

    def _on_mouse(self, event: MouseEvent) -> None:
        if self.mode is not Mode.NORMAL:
            return
        view = self.view
        if event.kind == "click":
            view.move_to(view.scroll + max(0, event.row))
        elif event.kind == "scroll_up":
            view.move_cursor(-MOUSE_SCROLL_STEP)
        elif event.kind == "scroll_down":
            view.move_cursor(MOUSE_SCROLL_STEP)
        view.ensure_visible(self.list_height)

    # ============================================================ background
    def _on_background(self, message: Message) -> None:
        if isinstance(message, (AdapterStarted, AdapterResult)):
            if self.aggregator.accept(message):
                self._sync_discover()
                session = self.aggregator.session
                if isinstance(message, AdapterResult) and session is not None and session.complete:
                    self.set_status(f"Search '{session.query}': {len(session.results)} results")
                self._touch()
            return
        job = self.jobs.handle(message)
        if job is not None:
            if isinstance(message, JobFinished):
                self._on_job_finished(job)
            self._touch()

    def _sync_discover(self) -> None:
        view = self.views[Tab.DISCOVER]
        view.refresh(self.aggregator.results())
        view.ensure_visible(self.list_height)

    def _on_job_finished(self, job: BackgroundJob) -> None:
        if job.kind in (JobKind.LOOKUP, JobKind.AI_QUERY):
            return
        if job.kind is JobKind.README_FETCH:
            key = job.payload
            if job.error:
                self.set_status(f"README: {job.error}", "warn")
                return
            self.readme_cache[key] = job.result or ""
            self.set_status(f"README for {job.target.split(':', 1)[1]} ready (enter)")
            if self.mode is Mode.OVERLAY and self.overlay is Overlay.DETAILS and self._details_key == key:
                self.overlay_lines = self._details_lines(self.view.get(key) or self.view.current())
            return
        payload = job.payload or {}
        name = payload.get("name", job.target or "")
        verb = job.kind.value
        if job.error:
            self.job_failures[name] = job.error
            self.set_status(f"{verb} {name} failed: {job.error}", "error")
            return
        self.job_failures.pop(name, None)
        if job.kind is JobKind.INSTALL:
            entry = payload.get("entry")
            if name in self._tools:
                command = SetInstalled(name, True, payload.get("version", ""))
            elif isinstance(entry, ToolEntry):
                command = TrackTool(replace(entry, installed=True))
            else:
                command = TrackTool(ToolEntry(name=name, installed=True))
        elif job.kind is JobKind.UNINSTALL:
            command = SetInstalled(name, False)
        else:
            command = SetInstalled(name, True, payload.get("version", ""))
        if self._mutate(command):
            self.set_status(f"{verb} {name}: done")

    # ============================================================ store
    def refresh(self) -> bool:
        try:
            tools = self.store.snapshot_tools()
            bundles = self.store.snapshot_bundles()
        except StoreError as exc:
            self._store_failed(exc)
            return False
        self._tools = {tool.name: tool for tool in tools}
        self._bundles = {bundle.name: bundle for bundle in bundles}
        self.views[Tab.INSTALLED].refresh([t for t in tools if t.installed])
        self.views[Tab.AVAILABLE].refresh([t for t in tools if not t.installed])
        self.views[Tab.UPDATES].refresh([t for t in tools if t.installed and t.has_update])
        self.views[Tab.BUNDLES].refresh(bundles)
        self._sync_discover()
        for view in self.views.values():
            view.ensure_visible(self.list_height)
        self._touch()
        return True

    def _mutate(self, *commands) -> bool:
        try:
            for command in commands:
                self.store.apply_mutation(command)
        except StoreError as exc:
            self._store_failed(exc)
            return False
        return self.refresh()

    def _store_failed(self, exc: Exception) -> None:
        logger.error("store failure: %s", exc)
        self._open_overlay(Overlay.ERROR, "Store error", [str(exc), "", "Press enter to acknowledge."], force=True)

    # ============================================================ overlays
    def _open_overlay(self, overlay: Overlay, title: str, lines: Sequence[str], force: bool = False) -> bool:
        """Open an overlay; only a forced (error) overlay may replace an open one."""
        if self.mode is Mode.OVERLAY and not force:
            self.set_status("Close the current overlay first", "warn")
            return False
        if self.mode is Mode.CONFIRM:
            self.confirm = None
            self.mode = self.previous_mode
            self.previous_mode = Mode.NORMAL
        if self.mode is Mode.OVERLAY:
            self.config_draft = None
        else:
            self._enter_mode(Mode.OVERLAY)
        self.overlay = overlay
        self.overlay_title = title
        self.overlay_lines = list(lines)
        self._touch()
        return True

    def open_help(self) -> None:
        self._open_overlay(Overlay.HELP, "Help", HELP_LINES)

    def open_config(self) -> None:
        draft = ConfigDraft(HoardConfig.from_dict(self.config.to_dict()))
        if self._open_overlay(Overlay.CONFIG, "Config", draft.describe()):
            self.config_draft = draft

    def open_details(self) -> None:
        item = self.view.current()
        if item is None:
            self.set_status("Nothing selected", "warn")
            return
        if self._open_overlay(Overlay.DETAILS, item.name, self._details_lines(item)):
            self._details_key = item.id

    def _details_lines(self, item: Any) -> List[str]:
        if item is None:
            return []
        lines: List[str] = []
        if isinstance(item, ToolEntry):
            lines.append(f"source:      {item.source.value}")
            lines.append(f"installed:   {'yes' if item.installed else 'no'}")
            if item.version:
                lines.append(f"version:     {item.version}")
            if item.has_update:
                lines.append(f"latest:      {item.latest_version}")
            if item.category:
                lines.append(f"category:    {item.category}")
            lines.append(f"used:        {item.use_count}x")
            labels = self.pending_labels.get(item.name, item.labels)
            marker = " (unsaved)" if item.name in self.pending_labels else ""
            lines.append(f"labels:      {', '.join(labels) or '-'}{marker}")
            if item.url:
                lines.append(f"url:         {item.url}")
        elif isinstance(item, Bundle):
            lines.append(f"tools:       {', '.join(item.tools)}")
            missing = [name for name in item.tools if not (self._tools.get(name) and self._tools[name].installed)]
            lines.append(f"missing:     {', '.join(missing) or '-'}")
        elif isinstance(item, DiscoverResult):
            lines.append(f"sources:     {', '.join(o.label for o in item.origins)}")
            lines.append(f"stars:       {item.stars}")
            if item.language:
                lines.append(f"language:    {item.language}")
            if item.url:
                lines.append(f"url:         {item.url}")
            for option in item.install_options:
                lines.append(f"install:     [{option.origin.label}] {option.command}")
        description = getattr(item, "description", "")
        if description:
            lines.extend(["", description])
        readme = self.readme_cache.get(item.id)
        if readme:
            lines.extend(["", "README", "------"])
            lines.extend(readme.splitlines())
        return lines

    def _overlay_key(self, key: str) -> None:
        if self.overlay is Overlay.ERROR:
            if key in ("enter", "escape", "q"):
                self._pop_mode()
            return
        if self.overlay is Overlay.CONFIG and self.config_draft is not None:
            self._config_key(key)
            return
        if key in ("escape", "q", "enter", "?"):
            self._pop_mode()
        elif key == "c":
            self.set_status("Close the current overlay first", "warn")

    def _config_key(self, key: str) -> None:
        draft = self.config_draft
        assert draft is not None
        if key in ("j", "down"):
            draft.move(1)
        elif key in ("k", "up"):
            draft.move(-1)
        elif key in ("space", " ", "enter"):
            draft.change()
        elif key in ("s", "w"):
            self._apply_config(draft.values)
            self._pop_mode()
            self.set_status("Config saved")
            return
        elif key in ("escape", "q"):
            if draft.dirty:
                self._ask("Discard config changes?", self._discard_config)
            else:
                self._pop_mode()
            return
        elif key in ("?", "c"):
            self.set_status("Close the current overlay first", "warn")
        self.overlay_lines = draft.describe()

    def _discard_config(self) -> None:
        # confirm already popped back to the overlay
        if self.mode is Mode.OVERLAY:
            self._pop_mode()
        self.set_status("Config changes discarded")

    def _apply_config(self, cfg: HoardConfig) -> None:
        self.config = cfg
        self.include_ai = cfg.include_ai
        self.enabled_sources = [s for s in cfg.enabled_sources() if s in self.aggregator.adapters]
        if self._save_config is not None:
            try:
                self._save_config(cfg)
            except OSError as exc:
                logger.warning("failed to save config: %s", exc)
                self.set_status(f"Config not saved: {exc}", "error")

    # ============================================================ confirm
    def _ask(self, prompt: str, on_accept: Callable[[], None], on_decline: Optional[Callable[[], None]] = None) -> None:
        self.confirm = PendingAction(prompt, on_accept, on_decline)
        self._enter_mode(Mode.CONFIRM)

    def _ask_choice(self, prompt: str, choices: Sequence[str], on_choose: Callable[[int], None]) -> None:
        self.confirm = PendingAction(prompt, lambda: on_choose(0), choices=tuple(choices), on_choose=on_choose)
        self._enter_mode(Mode.CONFIRM)

    def _confirm_key(self, key: str) -> None:
        pending = self.confirm
        if pending is None:
            self._pop_mode()
            return
        if pending.choices and key in ("tab", "down", "j", "right", "l"):
            self.confirm = pending.select(pending.choice + 1)
        elif pending.choices and key in ("s-tab", "up", "k", "left", "h"):
            self.confirm = pending.select(pending.choice - 1)
        elif pending.choices and key.isdigit() and 1 <= int(key) <= len(pending.choices):
            self.confirm = pending.select(int(key) - 1)
        elif key in ("y", "Y", "enter"):
            self._pop_mode()
            if pending.on_choose is not None:
                pending.on_choose(pending.choice)
            else:
                pending.on_accept()
        elif key in ("n", "N", "escape", "q"):
            self._pop_mode()
            if pending.on_decline is not None:
                pending.on_decline()
            else:
                self.set_status("Cancelled")

    # ============================================================ normal mode
    def _normal_key(self, key: str) -> None:
        view = self.view
        half = max(1, self.list_height // 2)
        moves = {"j": 1, "down": 1, "k": -1, "up": -1, "c-d": half, "c-u": -half, "pagedown": self.list_height, "pageup": -self.list_height}
        if key in moves:
            view.move_cursor(moves[key])
            view.ensure_visible(self.list_height)
        elif key in ("g", "home"):
            view.move_to(0)
            view.ensure_visible(self.list_height)
        elif key in ("G", "end"):
            view.move_to(-1)
            view.ensure_visible(self.list_height)
        elif key in ("tab", "]", "l", "right"):
            self.switch_tab(self.tab.next(1))
        elif key in ("s-tab", "[", "h", "left"):
            self.switch_tab(self.tab.next(-1))
        elif key in ("1", "2", "3", "4", "5"):
            tab = Tab.from_index(int(key) - 1)
            if tab is not None:
                self.switch_tab(tab)
        elif key == "/":
            self.start_search()
        elif key == ":":
            self.input_text = ""
            self.input_error = ""
            self.command_history.reset()
            self._enter_mode(Mode.COMMAND)
        elif key == "s":
            self.cycle_sort()
        elif key in (" ", "space"):
            self.undo_log.record(view.toggle_selection())
        elif key == "v":
            self.undo_log.record(view.select_range(view.anchor_id))
        elif key == "c-a":
            self.undo_log.record(view.select_all())
        elif key == "x":
            self.undo_log.record(view.clear_selection())
        elif key == "F":
            self.undo_log.record(view.set_filter(view.filter.toggled_favorites()))
        elif key == "*":
            self.toggle_favorite()
        elif key == "i":
            self.request_install()
        elif key == "D":
            self.request_uninstall()
        elif key == "u":
            self.request_update()
        elif key == "enter":
            self.open_details()
        elif key == "?":
            self.open_help()
        elif key == "c":
            self.open_config()
        elif key == "o":
            self.open_url()
        elif key == "R":
            self.fetch_readme()
        elif key == "t" and self.tab is Tab.BUNDLES:
            try:
                self.track_bundle()
            except CommandError as exc:
                self.set_status(str(exc), "warn")
        elif key == "r":
            if self.refresh():
                self.set_status("Refreshed")
        elif key == "c-z":
            self.undo()
        elif key == "c-y":
            self.redo()
        elif key == "q":
            self.request_quit()
        elif key == "escape":
            if view.selection:
                self.undo_log.record(view.clear_selection())
            elif self.tab is Tab.DISCOVER:
                self.aggregator.cancel()

    def switch_tab(self, tab: Tab) -> None:
        if tab is self.tab:
            return
        action = TabSwitched(self.tab, tab)
        self.restore_tab(tab)
        self.undo_log.record(action)

    def cycle_sort(self) -> None:
        action = self.view.cycle_sort()
        self.undo_log.record(action)
        if action is not None:
            if self.tab is Tab.DISCOVER:
                self.aggregator.resort(action.after)
            self.set_status(f"Sort: {action.after.value}")

    def undo(self) -> None:
        action = self.undo_log.undo(self)
        if action is None:
            self.set_status("Nothing to undo")
        else:
            self.set_status(f"Undo: {action.label}")

    def redo(self) -> None:
        action = self.undo_log.redo(self)
        if action is None:
            self.set_status("Nothing to redo")
        else:
            self.set_status(f"Redo: {action.label}")

    def toggle_favorite(self) -> None:
        item = self.view.current()
        if not isinstance(item, ToolEntry):
            self.set_status("Favourites apply to tracked tools", "warn")
            return
        if self._mutate(SetFavorite(item.name, not item.favorite)):
            self.set_status(f"{'Unstarred' if item.favorite else 'Starred'} {item.name}")

    def open_url(self) -> None:
        item = self.view.current()
        url = getattr(item, "url", "") if item is not None else ""
        if not url:
            self.set_status("No URL for this entry", "warn")
            return
        if self._open_url is not None:
            self._open_url(url)
        self.set_status(f"Opened {url}")

    def request_quit(self) -> None:
        if self.pending_labels:
            count = len(self.pending_labels)
            self._ask(f"Discard {count} unsaved label edit{'s' if count != 1 else ''} and quit?", self.shutdown)
            return
        self.shutdown()

    def shutdown(self) -> None:
        if not self.running:
            return
        self.aggregator.close()
        self.jobs.cancel_all()
        self.running = False
        logger.info("session closed")

    # ============================================================ search mode
    def start_search(self) -> None:
        view = self.view
        self.input_error = ""
        self._history_index = None
        if self.tab is Tab.DISCOVER:
            self.input_text = self.discover_query
        else:
            self.input_text = view.filter.query
            self._search_entry_filter = view.filter
            self._search_entry_cursor = view.current_id()
        self._enter_mode(Mode.SEARCH)

    def _search_key(self, key: str) -> None:
        discover = self.tab is Tab.DISCOVER
        if key == "escape":
            if not discover:
                view = self.view
                view.restore_filter(self._search_entry_filter)
                view.focus(self._search_entry_cursor)
            self._pop_mode()
            return
        if key == "enter":
            if discover:
                query = self.input_text.strip()
                self._pop_mode()
                if query:
                    self.submit_search(query)
            else:
                view = self.view
                before, after = self._search_entry_filter, view.filter
                if before != after:
                    self.undo_log.record(
                        FilterChanged(self.tab, before, after, self._search_entry_cursor, view.current_id())
                    )
                self._pop_mode()
            return
        if discover and key in ("up", "down"):
            self._walk_history(1 if key == "up" else -1)
            return
        if key in ("backspace", "c-h"):
            self.input_text = self.input_text[:-1]
        elif key == "c-u":
            self.input_text = ""
        elif len(key) == 1 and key.isprintable():
            self.input_text += key
        else:
            return
        if not discover:
            view = self.view
            view.restore_filter(self._search_entry_filter.with_query(self.input_text))
            view.ensure_visible(self.list_height)

    def _walk_history(self, delta: int) -> None:
        entries = self.aggregator.history.entries()
        if not entries:
            return
        if self._history_index is None:
            idx = 0 if delta > 0 else None
        else:
            idx = self._history_index + delta
            if idx < 0:
                idx = None
            elif idx >= len(entries):
                idx = len(entries) - 1
        self._history_index = idx
        self.input_text = entries[idx] if idx is not None else self.discover_query

    def submit_search(self, query: str) -> None:
        if not self.enabled_sources and not self.include_ai:
            self.set_status("No Discover sources enabled (:sources)", "warn")
            return
        self.discover_query = query
        handle = self.aggregator.submit(query, self.enabled_sources, include_ai=self.include_ai)
        view = self.views[Tab.DISCOVER]
        self.aggregator.resort(view.sort_key)
        self._sync_discover()
        view.move_to(0)
        if self.tab is not Tab.DISCOVER:
            self.switch_tab(Tab.DISCOVER)
        self.set_status(f"Searching '{query}' (#{handle.generation})")

    # ============================================================ palette
    def _command_key(self, key: str) -> None:
        if key == "escape":
            self._pop_mode()
            return
        if key == "enter":
            self.run_command(self.input_text)
            return
        if key == "tab":
            completion = complete(self.input_text)
            if completion:
                self.input_text = completion + " "
            return
        if key == "up":
            entry = self.command_history.older(self.input_text)
            if entry is not None:
                self.input_text = entry
            return
        if key == "down":
            entry = self.command_history.newer()
            if entry is not None:
                self.input_text = entry
            return
        if key in ("backspace", "c-h"):
            if not self.input_text:
                self._pop_mode()
                return
            self.input_text = self.input_text[:-1]
        elif key == "c-u":
            self.input_text = ""
        elif len(key) == 1 and key.isprintable():
            self.input_text += key
        else:
            return
        self.input_error = ""

    def run_command(self, text: str) -> None:
        if self.mode is not Mode.COMMAND:
            self.input_text = ""
            self._enter_mode(Mode.COMMAND)
        try:
            command = parse_command(text)
        except CommandError as exc:
            self.input_text = text
            self.input_error = str(exc)
            return
        self.command_history.add(text)
        self._pop_mode()
        try:
            self.execute(command)
        except CommandError as exc:
            self._enter_mode(Mode.COMMAND)
            self.input_text = text
            self.input_error = str(exc)

    def execute(self, command: Command) -> None:
        verb = command.verb
        if verb == "quit":
            self.request_quit()
        elif verb == "help":
            self.open_help()
        elif verb == "refresh":
            if self.refresh():
                self.set_status("Refreshed")
        elif verb == "theme":
            self._set_theme(command.arg(0))
        elif verb == "sort":
            self._set_sort(command.arg(0))
        elif verb == "filter":
            self._set_source_filter(command.arg(0))
        elif verb == "fav":
            self.undo_log.record(self.view.set_filter(self.view.filter.toggled_favorites()))
        elif verb in TAB_VERBS:
            self.switch_tab(TAB_VERBS[verb])
            if verb == "discover" and command.args:
                self.submit_search(" ".join(command.args))
        elif verb == "install":
            self.request_install()
        elif verb == "uninstall":
            self.request_uninstall()
        elif verb == "update":
            self.request_update()
        elif verb == "undo":
            self.undo()
        elif verb == "redo":
            self.redo()
        elif verb == "config":
            self.open_config()
        elif verb == "label":
            self.edit_label(command.arg(0).lower(), command.arg(1))
        elif verb == "write":
            self.write_labels()
        elif verb == "ai":
            self.include_ai = not self.include_ai
            if self.include_ai and self.aggregator.ai_adapter is None:
                self.set_status("AI source on, but no ai_provider configured", "warn")
            else:
                self.set_status(f"AI source {'on' if self.include_ai else 'off'}")
        elif verb == "sources":
            self._set_sources(command.args)
        elif verb == "cancel":
            if self.aggregator.cancel():
                self._sync_discover()
                self.set_status("Search cancelled")
            else:
                self.set_status("No running search")
        elif verb == "track":
            self.track_bundle()
        elif verb == "bundle":
            self.create_bundle(command.arg(0))
        elif verb == "unbundle":
            self.delete_bundle()
        elif verb == "untrack":
            self.untrack_tool()
        elif verb == "jobs":
            jobs = self.jobs.jobs()
            if not jobs:
                self.set_status("No background jobs")
            else:
                self.set_status("; ".join(f"#{job.id} {job.description} [{job.status.value}]" for job in jobs))

    def _set_theme(self, name: str) -> None:
        if not name:
            idx = THEME_NAMES.index(self.config.theme) if self.config.theme in THEME_NAMES else -1
            name = THEME_NAMES[(idx + 1) % len(THEME_NAMES)]
        name = name.lower()
        if name not in THEME_NAMES:
            raise CommandError(f"unknown theme: {name} ({', '.join(THEME_NAMES)})")
        self.config.theme = name
        self.set_status(f"Theme: {name}")

    def _set_sort(self, field_name: str) -> None:
        if not field_name:
            self.cycle_sort()
            return
        key = SortKey.from_string(field_name)
        cycle = sort_cycle_for(self.tab)
        if key is None or key not in cycle:
            raise CommandError(f"sort by {'/'.join(k.value for k in cycle)}")
        action = self.view.set_sort(key)
        self.undo_log.record(action)
        if self.tab is Tab.DISCOVER:
            self.aggregator.resort(key)
        self.set_status(f"Sort: {key.value}")

    def _set_source_filter(self, name: str) -> None:
        source: Optional[str] = None
        if name:
            if self.tab is Tab.DISCOVER:
                origin = DiscoverOrigin.from_string(name)
                if origin is None:
                    raise CommandError(f"unknown source: {name}")
                source = origin.source_id
            else:
                value = InstallSource.from_string(name)
                if value is InstallSource.UNKNOWN and name.lower() != "unknown":
                    raise CommandError(f"unknown source: {name}")
                source = value.value
        view = self.view
        self.undo_log.record(view.set_filter(view.filter.with_source(source)))
        self.set_status(f"Source filter: {source or 'all'}")

    def _set_sources(self, ids: Sequence[str]) -> None:
        if not ids:
            names = ", ".join(self.enabled_sources) or "none"
            self.set_status(f"Sources: {names}{' + ai' if self.include_ai else ''}")
            return
        known = self.aggregator.adapter_ids()
        wanted = []
        for raw in ids:
            for token in raw.split(","):
                token = token.strip().lower()
                if not token:
                    continue
                origin = DiscoverOrigin.from_string(token)
                source_id = origin.source_id if origin else token
                if source_id not in known:
                    raise CommandError(f"unknown source: {token} ({', '.join(known)})")
                if source_id not in wanted:
                    wanted.append(source_id)
        self.enabled_sources = wanted
        self.set_status(f"Sources: {', '.join(wanted)}")

    # ============================================================ labels
    def edit_label(self, action: str, label: str) -> None:
        item = self.view.current()
        if not isinstance(item, ToolEntry):
            raise CommandError("labels apply to tracked tools")
        label = label.strip()
        if not label:
            raise CommandError("usage: label add|rm <label>")
        before = self.pending_labels.get(item.name)
        current = list(before if before is not None else item.labels)
        if action == "add":
            if label in current:
                self.set_status(f"{item.name} already has '{label}'")
                return
            current.append(label)
        else:
            if label not in current:
                raise CommandError(f"{item.name} has no label '{label}'")
            current.remove(label)
        after: Optional[Tuple[str, ...]] = tuple(current)
        if after == item.labels:
            after = None
        self.restore_pending_labels(item.name, after)
        self.undo_log.record(LabelEdited(item.name, before, after))
        self.set_status(f"Labels for {item.name}: {', '.join(current) or '-'} (unsaved, :write)")

    def write_labels(self) -> None:
        if not self.pending_labels:
            self.set_status("No pending edits")
            return
        commands = [SetLabels(name, labels) for name, labels in sorted(self.pending_labels.items())]
        if self._mutate(*commands):
            count = len(commands)
            self.pending_labels.clear()
            self.set_status(f"Saved labels for {count} tool{'s' if count != 1 else ''}")

    # ============================================================ bundles
    def _current_bundle(self) -> Bundle:
        item = self.view.current()
        if not isinstance(item, Bundle):
            raise CommandError("select a bundle on the Bundles tab")
        return item

    def track_bundle(self) -> None:
        """Add the bundle's untracked tools to the inventory as available."""
        bundle = self._current_bundle()
        missing = [name for name in bundle.tools if name not in self._tools]
        if not missing:
            self.set_status("All bundle tools are already tracked")
            return
        if self._mutate(*(TrackTool(ToolEntry(name=name)) for name in missing)):
            self.set_status(f"Tracked {len(missing)} tool{'s' if len(missing) != 1 else ''} from {bundle.name}")

    def create_bundle(self, name: str) -> None:
        name = name.strip()
        if not name:
            raise CommandError("usage: bundle <name>")
        tools = [item.name for item in self._targets() if isinstance(item, ToolEntry)]
        if not tools:
            raise CommandError("select tracked tools to bundle")
        verb = "Replaced" if name in self._bundles else "Created"
        if self._mutate(SaveBundle(Bundle(name, tuple(tools)))):
            self.set_status(f"{verb} bundle {name} ({len(tools)} tools)")

    def delete_bundle(self) -> None:
        bundle = self._current_bundle()

        def accept() -> None:
            if self._mutate(DeleteBundle(bundle.name)):
                self.set_status(f"Deleted bundle {bundle.name}")

        self._ask(f"Delete bundle {bundle.name}?", accept)

    def untrack_tool(self) -> None:
        item = self.view.current()
        if not isinstance(item, ToolEntry):
            raise CommandError("untrack applies to tracked tools")
        if item.installed:
            raise CommandError(f"{item.name} is installed; uninstall it first")

        def accept() -> None:
            if self._mutate(RemoveTool(item.name)):
                self.pending_labels.pop(item.name, None)
                self.set_status(f"Stopped tracking {item.name}")

        self._ask(f"Stop tracking {item.name}?", accept)

    # ============================================================ jobs
    def _targets(self) -> List[Any]:
        view = self.view
        selected = view.selected_items()
        if selected:
            return selected
        current = view.current()
        return [current] if current is not None else []

    def _argv(self, action: str, name: str, source: InstallSource) -> Optional[List[str]]:
        if self.command_builder is None:
            return None
        return self.command_builder(action, name, source)

    def _discover_package(self, option: InstallOption, name: str) -> str:
        """Package argument for ``option``: the result name, or the module path for Go."""
        if option.origin is not DiscoverOrigin.GO:
            return name
        try:
            words = shlex.split(option.command)
        except ValueError:
            return name
        for word in words[2:]:
            if word.endswith("@latest"):
                return word[: -len("@latest")]
        return name

    def _discover_plans(self, item: DiscoverResult) -> List[Plan]:
        """One plan per install option whose source the command table knows."""
        plans: List[Plan] = []
        for option in item.install_options:
            source = option.origin.install_source
            argv = self._argv("install", self._discover_package(option, item.name), source)
            if not argv or any(plan[1] == argv for plan in plans):
                continue
            entry = ToolEntry(
                name=item.name,
                source=source,
                description=item.description,
                stars=item.stars,
                url=item.url or "",
            )
            plans.append((item.name, argv, {"name": item.name, "entry": entry, "origin": option.origin.label}))
        return plans

    def _plan_tool(self, action: str, item: Any) -> Optional[Plan]:
        if isinstance(item, DiscoverResult):
            plans = self._discover_plans(item)
            return plans[0] if plans else None
        if isinstance(item, ToolEntry):
            argv = self._argv(action, item.name, item.source)
            if not argv:
                return None
            version = item.latest_version if action == "update" else item.version
            return item.name, argv, {"name": item.name, "entry": item, "version": version}
        return None

    def _plans_for(self, action: str) -> Tuple[List[Plan], List[str]]:
        plans, skipped = [], []
        items: List[Any] = []
        for item in self._targets():
            if isinstance(item, Bundle):
                if action != "install":
                    skipped.append(item.name)
                    continue
                for name in item.tools:
                    tool = self._tools.get(name)
                    if tool is None:
                        skipped.append(name)
                    elif not tool.installed:
                        items.append(tool)
            else:
                items.append(item)
        seen = set()
        for item in items:
            if item.name in seen:
                continue
            seen.add(item.name)
            if isinstance(item, ToolEntry):
                if action == "install" and item.installed:
                    continue
                if action in ("uninstall", "update") and not item.installed:
                    skipped.append(item.name)
                    continue
            elif action != "install":
                skipped.append(item.name)
                continue
            plan = self._plan_tool(action, item)
            if plan is None:
                skipped.append(item.name)
            else:
                plans.append(plan)
        return plans, skipped

    def _request(self, kind: JobKind) -> None:
        action = kind.value
        targets = self._targets()
        if kind is JobKind.INSTALL and len(targets) == 1 and isinstance(targets[0], DiscoverResult):
            alternatives = self._discover_plans(targets[0])
            if len(alternatives) > 1:
                self._ask_source(targets[0].name, alternatives)
                return
        plans, skipped = self._plans_for(action)
        if not plans:
            if skipped:
                self.set_status(f"Cannot {action}: {', '.join(skipped)}", "warn")
            else:
                self.set_status(f"Nothing to {action}", "warn")
            return
        if len(plans) == 1:
            prompt = f"{action.capitalize()} {plans[0][0]}? ({' '.join(plans[0][1])})"
        else:
            prompt = f"{action.capitalize()} {len(plans)} tools?"
        if skipped:
            prompt += f" (skipping {', '.join(skipped)})"
        self._ask(prompt, lambda: self._enqueue_plans(kind, plans))

    def _ask_source(self, name: str, alternatives: Sequence[Plan]) -> None:
        choices = [f"{plan[2]['origin']}: {' '.join(plan[1])}" for plan in alternatives]

        def choose(index: int) -> None:
            self._enqueue_plans(JobKind.INSTALL, [alternatives[index]])

        self._ask_choice(f"Install {name} with", choices, choose)

    def request_install(self) -> None:
        self._request(JobKind.INSTALL)

    def request_uninstall(self) -> None:
        self._request(JobKind.UNINSTALL)

    def request_update(self) -> None:
        self._request(JobKind.UPDATE)

    def _enqueue_plans(self, kind: JobKind, plans: Sequence[Plan]) -> None:
        if self.runner is None:
            self.set_status("No process runner configured", "error")
            return
        runner = self.runner
        started, busy = [], []
        for name, argv, payload in plans:

            def work(ctx: JobContext, argv=tuple(argv)) -> str:
                return runner.run(argv, ctx.token, on_line=ctx.progress, terminate_on_cancel=False)

            job = BackgroundJob(kind=kind, work=work, target=name, label=f"{kind.value} {name}", payload=payload)
            try:
                self.jobs.enqueue(job)
            except JobRejected:
                busy.append(name)
                continue
            self.job_failures.pop(name, None)
            started.append(name)
        if busy:
            self.set_status(f"Busy, not queued: {', '.join(busy)}", "warn")
        elif started:
            self.set_status(f"{kind.value}: {', '.join(started)}")

    def fetch_readme(self) -> None:
        item = self.view.current()
        url = ""
        if item is not None:
            url = getattr(item, "readme_url", None) or getattr(item, "url", "") or ""
        if not url or "github.com" not in url:
            self.set_status("No GitHub README for this entry", "warn")
            return
        if self.readme is None:
            self.set_status("README fetching unavailable", "warn")
            return
        fetcher = self.readme
        job = BackgroundJob(
            kind=JobKind.README_FETCH,
            work=lambda ctx: fetcher.fetch(url, ctx.token),
            target=f"readme:{item.name}",
            label=f"README {item.name}",
            terminate_on_cancel=True,
            payload=item.id,
        )
        try:
            self.jobs.enqueue(job)
        except JobRejected:
            self.set_status(f"README for {item.name} already loading", "warn")
            return
        self.set_status(f"Fetching README for {item.name}")

    # ============================================================ snapshot
    def _badge(self, name: str) -> Tuple[str, str]:
        job = self.jobs.active_for(name)
        if job is not None:
            return f"{job.kind.value}:{job.status.value}", "info"
        if name in self.job_failures:
            return "failed", "error"
        return "", "info"

    def _row(self, item: Any, selected: bool, cursor: bool) -> RowView:
        badge, level = self._badge(item.name)
        if isinstance(item, ToolEntry):
            labels = self.pending_labels.get(item.name, item.labels)
            return RowView(
                id=item.id,
                name=item.name,
                source=item.source.value,
                version=item.version,
                description=item.description,
                stars=item.stars,
                labels=tuple(labels),
                selected=selected,
                cursor=cursor,
                favorite=item.favorite,
                update=item.has_update,
                installed=item.installed,
                pending_labels=item.name in self.pending_labels,
                badge=badge,
                badge_level=level,
            )
        if isinstance(item, Bundle):
            installed = sum(1 for name in item.tools if self._tools.get(name) and self._tools[name].installed)
            return RowView(
                id=item.id,
                name=item.name,
                source=f"{installed}/{len(item.tools)}",
                description=item.description or ", ".join(item.tools),
                selected=selected,
                cursor=cursor,
                installed=installed == len(item.tools),
                badge=badge,
                badge_level=level,
            )
        tracked = self._tools.get(item.name)
        return RowView(
            id=item.id,
            name=item.name,
            source=",".join(o.source_id for o in item.origins),
            description=item.description,
            stars=item.stars,
            selected=selected,
            cursor=cursor,
            installed=bool(tracked and tracked.installed),
            badge=badge,
            badge_level=level,
        )

    def _search_progress(self) -> Optional[SearchProgress]:
        session = self.aggregator.session
        if session is None:
            return None
        now = self.clock()
        adapters = tuple(
            AdapterProgress(
                adapter_id,
                self.aggregator.label_for(adapter_id),
                status.state.value,
                status.badge(),
                status.elapsed(now),
            )
            for adapter_id, status in self.aggregator.progress()
        )
        return SearchProgress(
            query=session.query,
            generation=session.generation,
            complete=session.complete,
            cancelled=session.cancelled,
            adapters=adapters,
            result_count=len(session.results),
        )

    def snapshot(self) -> ViewSnapshot:
        if self._cached is not None and self._cached[0] == self._revision:
            return self._cached[1]
        view = self.view
        height = self.list_height
        view.ensure_visible(height)
        visible = view.rows[view.scroll : view.scroll + height]
        rows = tuple(
            self._row(item, view.is_selected(item.id), view.scroll + idx == view.cursor)
            for idx, item in enumerate(visible)
        )
        tabs = tuple((tab.title, len(self.views[tab]), tab is self.tab) for tab in Tab)
        prompt = ""
        if self.mode is Mode.SEARCH:
            prompt = "discover> " if self.tab is Tab.DISCOVER else "/"
        elif self.mode is Mode.COMMAND:
            prompt = ":"
        snap = ViewSnapshot(
            mode=self.mode,
            tab=self.tab,
            tabs=tabs,
            rows=rows,
            total_rows=len(view),
            scroll=view.scroll,
            overlay=self.overlay if self.mode is Mode.OVERLAY or self.previous_mode is Mode.OVERLAY else None,
            overlay_title=self.overlay_title,
            overlay_lines=tuple(self.overlay_lines),
            status=self.status,
            input_prompt=prompt,
            input_text=self.input_text,
            input_error=self.input_error,
            suggestions=tuple(suggestions(self.input_text)) if self.mode is Mode.COMMAND else (),
            confirm_prompt=self.confirm.describe() if self.mode is Mode.CONFIRM and self.confirm else "",
            confirm_choices=len(self.confirm.choices) if self.mode is Mode.CONFIRM and self.confirm else 0,
            search=self._search_progress() if self.tab is Tab.DISCOVER else None,
            filter_desc=view.filter.describe(),
            filter_query=view.filter.query,
            sort_key=view.sort_key.value,
            selected_count=len(view.selection),
            can_undo=self.undo_log.can_undo,
            can_redo=self.undo_log.can_redo,
            running_jobs=self.jobs.running_count,
            queued_jobs=self.jobs.queued_count,
            pending_edits=len(self.pending_labels),
            include_ai=self.include_ai,
            theme=self.config.theme,
            width=self.width,
            height=self.height,
        )
        self._cached = (self._revision, snap)
        return snap


__all__ = [
    "AdapterProgress",
    "BackgroundEvent",
    "KeyEvent",
    "Mode",
    "MouseEvent",
    "Overlay",
    "PendingAction",
    "QuitEvent",
    "ResizeEvent",
    "RowView",
    "SearchProgress",
    "SessionStateMachine",
    "StatusLine",
    "TextEvent",
    "TickEvent",
    "ViewSnapshot",
]
