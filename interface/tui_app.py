#!/usr/bin/env python3
"""TUI application - HoardTUI class wiring the session to prompt_toolkit."""

import asyncio
import logging
import os
import time
from typing import Optional

from prompt_toolkit.application import Application
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import HSplit, Layout, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.mouse_events import MouseButton, MouseEvent, MouseEventType
from prompt_toolkit.styles import DynamicStyle

from application.messages import MessageChannel
from application.session import (
    BackgroundEvent,
    KeyEvent,
    MouseEvent as SessionMouseEvent,
    QuitEvent,
    ResizeEvent,
    SessionStateMachine,
    TickEvent,
    ViewSnapshot,
)

from .tui_render import FOOTER_ROWS, HEADER_ROWS, render_body, render_footer, render_header
from .tui_themes import build_style

logger = logging.getLogger("hoard.tui")

TICK_INTERVAL = 0.25

NAMED_KEYS = (
    "up",
    "down",
    "left",
    "right",
    "pageup",
    "pagedown",
    "home",
    "end",
    "enter",
    "tab",
    "s-tab",
    "backspace",
    "delete",
    "c-a",
    "c-d",
    "c-u",
    "c-h",
    "c-z",
    "c-y",
)


class InteractiveFormattedTextControl(FormattedTextControl):
    """FormattedTextControl with external mouse handler support."""

    def __init__(self, *args, mouse_handler=None, **kwargs):
        super().__init__(*args, **kwargs)
        self._external_mouse_handler = mouse_handler

    def mouse_handler(self, mouse_event: MouseEvent):
        if self._external_mouse_handler:
            result = self._external_mouse_handler(mouse_event)
            if result is not NotImplemented:
                return result
        return super().mouse_handler(mouse_event)


class HoardTUI:
    def __init__(self, session: SessionStateMachine, channel: MessageChannel):
        self.session = session
        self.channel = channel
        self.spinner = 0
        self._theme = session.config.theme
        self._style = build_style(self._theme)
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        header = Window(
            FormattedTextControl(lambda: render_header(self.snapshot(), self.spinner)),
            height=HEADER_ROWS,
        )
        body = Window(
            InteractiveFormattedTextControl(
                lambda: render_body(self.snapshot(), self.session.list_height),
                mouse_handler=self._on_mouse,
            ),
            wrap_lines=False,
        )
        footer = Window(FormattedTextControl(lambda: render_footer(self.snapshot())), height=FOOTER_ROWS)

        self.app = Application(
            layout=Layout(HSplit([header, body, footer])),
            key_bindings=self._build_bindings(),
            style=DynamicStyle(lambda: self._style),
            full_screen=True,
            mouse_support=True,
            before_render=self._before_render,
        )
        # Esc must not wait for the default 0.5s escape-sequence timeout
        try:
            self.app.ttimeoutlen = max(0.0, float(os.getenv("HOARD_TUI_TTIMEOUTLEN", "0.05")))
        except ValueError:
            self.app.ttimeoutlen = 0.05

    # ------------------------------------------------------------ plumbing
    def snapshot(self) -> ViewSnapshot:
        snap = self.session.snapshot()
        if snap.theme != self._theme:
            self._theme = snap.theme
            self._style = build_style(snap.theme)
        return snap

    def dispatch(self, event) -> None:
        self.session.dispatch(event)
        if not self.session.running:
            if self.app.is_running:
                self.app.exit()
            return
        self.app.invalidate()

    def _before_render(self, app) -> None:
        size = app.output.get_size()
        if (size.columns, size.rows) != (self.session.width, self.session.height):
            self.session.dispatch(ResizeEvent(size.columns, size.rows))

    def _wakeup(self) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self._drain)

    def _drain(self) -> None:
        messages = self.channel.drain()
        for message in messages:
            self.session.dispatch(BackgroundEvent(message))
        if messages:
            self.dispatch(TickEvent(time.monotonic()))

    async def _ticker(self) -> None:
        while self.session.running:
            await asyncio.sleep(TICK_INTERVAL)
            self.spinner += 1
            self._drain()
            self.dispatch(TickEvent(time.monotonic()))

    def _pre_run(self) -> None:
        self._loop = asyncio.get_running_loop()
        self.channel.set_wakeup(self._wakeup)
        self.app.create_background_task(self._ticker())

    # ------------------------------------------------------------ input
    def _build_bindings(self) -> KeyBindings:
        kb = KeyBindings()

        @kb.add("c-c")
        def _(event):
            self.dispatch(QuitEvent())

        @kb.add("escape", eager=True)
        def _(event):
            self.dispatch(KeyEvent("escape"))

        def bind(name: str) -> None:
            @kb.add(name)
            def _(event):
                self.dispatch(KeyEvent(name))

        for name in NAMED_KEYS:
            bind(name)

        @kb.add(Keys.Any)
        def _(event):
            data = event.data
            if len(data) == 1 and data.isprintable():
                self.dispatch(KeyEvent(data))

        return kb

    def _on_mouse(self, mouse_event: MouseEvent):
        kind = None
        if mouse_event.event_type == MouseEventType.SCROLL_UP:
            kind = "scroll_up"
        elif mouse_event.event_type == MouseEventType.SCROLL_DOWN:
            kind = "scroll_down"
        elif mouse_event.event_type == MouseEventType.MOUSE_UP and mouse_event.button == MouseButton.LEFT:
            kind = "click"
        if kind is None:
            return NotImplemented
        self.dispatch(SessionMouseEvent(kind, mouse_event.position.y))
        return None

    def run(self) -> None:
        try:
            self.app.run(pre_run=self._pre_run)
        finally:
            logger.info("dashboard closed")
            self.channel.set_wakeup(None)
            self.session.shutdown()
