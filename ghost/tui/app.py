"""GhostApp, the Textual fullscreen chat for ghost."""

from __future__ import annotations

from typing import List, Optional, Sequence

from rich.text import Text
from textual import events
from textual.app import App, ComposeResult
from textual.widgets import Static

from ..channel import CancelToken, Chunk, Done, Error, EventChannel
from ..config import Config
from ..driver import ConversationDriver
from ..errors import ConfigMissingError, GhostError
from ..inputs import read_file_for_context
from ..logger import get_logger
from ..messages import ChatMessage
from ..theme import ACCENT, CYAN, MAGENTA, MUTED, TEXT, WARN
from ..vision import analyse_images
from .state import (AttachFile, AttachImage, CancelTurn, ChatState, Mode, Quit, StartTurn,
                    initial_state, on_attach_error, on_attached, on_chunk, on_done, on_error,
                    on_resize, update)

_log = get_logger(__name__)

# textual key names that differ from the ones the state machine uses
_KEY_ALIASES = {
    "newline": "ctrl+j",
    "shift+return": "shift+enter",
    "return": "enter",
}

_CHROME_LINES = 2  # status + input


def translate_key(event: events.Key) -> str:
    """Map a textual key event to the key string ``update`` understands."""
    if event.is_printable and event.character:
        return event.character
    return _KEY_ALIASES.get(event.key, event.key)


class GhostApp(App):
    """Modal chat UI.

    Layout:
        Static #transcript: wrapped conversation, scrolled by the state's viewport
        Static #status    : mode, model, thread
        Static #input     : pending input or command buffer
    """

    TITLE = "ghost"
    ENABLE_COMMAND_PALETTE = False

    CSS = """
    Screen {
        layout: vertical;
    }
    #transcript {
        height: 1fr;
    }
    #status {
        height: 1;
    }
    #input {
        height: auto;
        max-height: 8;
    }
    """

    def __init__(self, driver: ConversationDriver, config: Config,
                 messages: Sequence[ChatMessage] = (), **kwargs):
        super().__init__(**kwargs)
        self.driver = driver
        self.config = config
        self.state: ChatState = initial_state(messages)
        self._cancel: Optional[CancelToken] = None
        self._channel: Optional[EventChannel] = None

    def compose(self) -> ComposeResult:
        yield Static(id="transcript")
        yield Static(id="status")
        yield Static(id="input")

    def on_mount(self) -> None:
        self._refresh_view()

    # ── Rendering ──────────────────────────────────────────

    def _refresh_view(self) -> None:
        state = self.state
        self.query_one("#transcript", Static).update(Text(state.viewport.render()))

        status = Text()
        mode_color = {Mode.NORMAL: CYAN, Mode.INSERT: MAGENTA, Mode.COMMAND: WARN}[state.mode]
        status.append(f" {state.mode.value.upper()} ", style=f"bold {mode_color}")
        status.append(f" {self.config.model}", style=MUTED)
        if self.driver.thread_id:
            status.append(f"  thread {self.driver.thread_id[:8]}", style=MUTED)
        if state.busy:
            status.append("  ◆ receiving transmission (ctrl+c to cancel)", style=ACCENT)
        self.query_one("#status", Static).update(status)

        line = Text()
        if state.mode is Mode.COMMAND:
            line.append(":", style=f"bold {WARN}")
            line.append(state.command)
        else:
            line.append("> ", style=f"bold {CYAN}")
            line.append(state.input_value or ("" if state.mode is Mode.INSERT else "press i to type, :q to quit"),
                        style=TEXT if state.input_value else MUTED)
        self.query_one("#input", Static).update(line)

    # ── Input ──────────────────────────────────────────────

    def on_key(self, event: events.Key) -> None:
        event.prevent_default()
        event.stop()
        self.dispatch_key(translate_key(event))

    def on_resize(self, event: events.Resize) -> None:
        height = max(event.size.height - _CHROME_LINES, 1)
        self.state = on_resize(self.state, event.size.width, height)
        self._refresh_view()

    def dispatch_key(self, key: str) -> None:
        self.state, effects = update(self.state, key)
        for effect in effects:
            self._apply(effect)
        self._refresh_view()

    def _apply(self, effect) -> None:
        if isinstance(effect, Quit):
            _log.info("disconnecting from ghost")
            if self._cancel is not None:
                self._cancel.cancel()
            if self._channel is not None:
                self._channel.abandon()
            self.exit()
        elif isinstance(effect, StartTurn):
            self._start_turn(list(effect.history), list(effect.new_messages))
        elif isinstance(effect, CancelTurn):
            if self._cancel is not None:
                self._cancel.cancel()
        elif isinstance(effect, (AttachImage, AttachFile)):
            self.run_worker(lambda: self._attach_worker(effect), thread=True, name="attach")

    # ── Workers ────────────────────────────────────────────

    def _start_turn(self, history: List[ChatMessage], new_messages: List[ChatMessage]) -> None:
        cancel = CancelToken()
        channel = EventChannel()
        self._cancel = cancel
        self._channel = channel
        self.run_worker(
            lambda: self.driver.run_turn(history, new_messages, channel, cancel),
            thread=True, name="turn",
        )
        self.run_worker(lambda: self._listen_worker(channel), thread=True, name="listen")

    def _listen_worker(self, channel: EventChannel) -> None:
        """Forward driver events to the UI thread, one at a time, in order."""
        for event in channel:
            if channel.abandoned:
                return
            self.call_from_thread(self._on_stream_event, event)

    def _on_stream_event(self, event) -> None:
        if isinstance(event, Chunk):
            self.state = on_chunk(self.state, event.text)
        elif isinstance(event, Done):
            self.state = on_done(self.state, event.history)
            self._cancel = None
        elif isinstance(event, Error):
            self.state = on_error(self.state, event.error, event.history)
            self._cancel = None
        self._refresh_view()

    def _attach_worker(self, effect) -> None:
        try:
            if isinstance(effect, AttachImage):
                if not self.config.vision_model:
                    raise ConfigMissingError("vision-model", "set it to attach images")
                messages = analyse_images(self.driver.llm, self.config.vision_model, [effect.path],
                                          self.config.image_types,
                                          system_prompt=self.config.vision_system)
            else:
                messages = [ChatMessage.user(read_file_for_context(effect.path))]
        except GhostError as e:
            _log.error("attachment failed: %s: %s", effect.path, e)
            self.call_from_thread(self._attach_failed, e)
            return
        _log.info("attachment loaded into context: %s", effect.path)
        self.call_from_thread(self._attach_done, effect.path, messages)

    def _attach_done(self, path: str, messages: List[ChatMessage]) -> None:
        self.state = on_attached(self.state, path, messages)
        self._refresh_view()

    def _attach_failed(self, error: Exception) -> None:
        self.state = on_attach_error(self.state, error)
        self._refresh_view()
