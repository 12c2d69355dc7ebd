"""Modal chat view state.

The state is a value: ``update`` takes the current state and one key and
returns the next state plus the effects the app must carry out (start a turn,
quit, load an attachment). Nothing here touches the network or the disk.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Sequence, Tuple, Union

from ..errors import CancelledError
from ..messages import ChatMessage, Role
from .viewport import Viewport

ERROR_GLYPH = "✗"
INFO_GLYPH = "◆"


class Mode(Enum):
    NORMAL = "normal"
    COMMAND = "command"
    INSERT = "insert"


# ── Effects ──


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class StartTurn:
    history: Tuple[ChatMessage, ...]
    new_messages: Tuple[ChatMessage, ...]


@dataclass(frozen=True)
class CancelTurn:
    pass


@dataclass(frozen=True)
class AttachImage:
    path: str


@dataclass(frozen=True)
class AttachFile:
    path: str


Effect = Union[Quit, StartTurn, CancelTurn, AttachImage, AttachFile]


@dataclass(frozen=True)
class ChatState:
    mode: Mode = Mode.NORMAL
    command: str = ""
    input_value: str = ""
    input_history: Tuple[str, ...] = ()
    history_index: int = 0
    awaiting_g: bool = False
    busy: bool = False
    transcript: str = ""
    messages: Tuple[ChatMessage, ...] = ()
    pending: Tuple[ChatMessage, ...] = ()
    viewport: Viewport = field(default_factory=Viewport)

    def with_transcript(self, transcript: str, follow: bool = True) -> "ChatState":
        viewport = self.viewport.set_content(transcript)
        if follow:
            viewport = viewport.goto_bottom()
        return replace(self, transcript=transcript, viewport=viewport)

    def append(self, text: str, follow: bool = True) -> "ChatState":
        return self.with_transcript(self.transcript + text, follow)


def render_messages(messages: Sequence[ChatMessage]) -> str:
    """Transcript text for a resumed conversation."""
    parts = []
    for message in messages:
        if message.role is Role.USER:
            parts.append(f"You: {message.content}\n\nghost: ")
        elif message.role is Role.ASSISTANT and message.content:
            parts.append(f"{message.content}\n\n")
    return "".join(parts)


def initial_state(messages: Sequence[ChatMessage] = (), width: int = 80,
                  height: int = 20) -> ChatState:
    state = ChatState(messages=tuple(messages), viewport=Viewport(width=width, height=height))
    return state.with_transcript(render_messages(messages))


# ── Per-mode handlers ──


def _normal(state: ChatState, key: str) -> Tuple[ChatState, List[Effect]]:
    was_awaiting_g = state.awaiting_g
    state = replace(state, awaiting_g=False)
    viewport = state.viewport

    if key == ":":
        return replace(state, mode=Mode.COMMAND, command=""), []
    if key == "i":
        return replace(state, mode=Mode.INSERT), []
    if key == "j":
        viewport = viewport.scroll_down(1)
    elif key == "k":
        viewport = viewport.scroll_up(1)
    elif key == "ctrl+d":
        viewport = viewport.half_page_down()
    elif key == "ctrl+u":
        viewport = viewport.half_page_up()
    elif key == "G":
        viewport = viewport.goto_bottom()
    elif key == "g":
        if was_awaiting_g:
            viewport = viewport.goto_top()
        else:
            return replace(state, awaiting_g=True), []
    return replace(state, viewport=viewport), []


def _command(state: ChatState, key: str) -> Tuple[ChatState, List[Effect]]:
    if key == "escape":
        return replace(state, mode=Mode.NORMAL, command=""), []
    if key == "backspace":
        return replace(state, command=state.command[:-1]), []
    if key != "enter":
        if len(key) == 1:
            return replace(state, command=state.command + key), []
        return state, []

    name, _, arg = state.command.partition(" ")
    arg = arg.strip()
    state = replace(state, mode=Mode.NORMAL, command="")

    if name == "q":
        return state, [Quit()]
    if name in ("i", "r"):
        if not arg:
            kind = "image" if name == "i" else "file"
            return state.append(f"\n[{ERROR_GLYPH} error: no {kind} path provided]\n"), []
        return state, [AttachImage(arg) if name == "i" else AttachFile(arg)]
    return state, []


def _insert(state: ChatState, key: str) -> Tuple[ChatState, List[Effect]]:
    if key == "escape":
        return replace(state, mode=Mode.NORMAL), []
    if key == "ctrl+c":
        return state, ([CancelTurn()] if state.busy else [])
    if key in ("shift+enter", "ctrl+j"):
        return replace(state, input_value=state.input_value + "\n"), []
    if key == "backspace":
        return replace(state, input_value=state.input_value[:-1]), []

    if key == "up":
        if not state.input_history:
            return state, []
        index = max(state.history_index - 1, 0)
        return replace(state, history_index=index, input_value=state.input_history[index]), []
    if key == "down":
        if not state.input_history:
            return state, []
        index = state.history_index + 1
        if index >= len(state.input_history):
            return replace(state, history_index=len(state.input_history), input_value=""), []
        return replace(state, history_index=index, input_value=state.input_history[index]), []

    if key == "enter":
        value = state.input_value
        if not value.strip() or state.busy:
            return state, []
        user = ChatMessage.user(value)
        new_messages = state.pending + (user,)
        history = state.input_history + (value,)
        effect = StartTurn(history=state.messages, new_messages=new_messages)
        state = replace(
            state,
            input_value="",
            input_history=history,
            history_index=len(history),
            messages=state.messages + new_messages,
            pending=(),
            busy=True,
        )
        return state.append(f"You: {value}\n\nghost: "), [effect]

    if len(key) == 1:
        return replace(state, input_value=state.input_value + key), []
    return state, []


_HANDLERS = {
    Mode.NORMAL: _normal,
    Mode.COMMAND: _command,
    Mode.INSERT: _insert,
}


def update(state: ChatState, key: str) -> Tuple[ChatState, List[Effect]]:
    """Apply one key press."""
    return _HANDLERS[state.mode](state, key)


# ── Stream and attachment events ──


def on_chunk(state: ChatState, text: str) -> ChatState:
    return state.append(text)


def on_done(state: ChatState, history: Sequence[ChatMessage]) -> ChatState:
    state = replace(state, messages=tuple(history), busy=False)
    return state.append("\n\n")


def on_error(state: ChatState, error: Exception,
             history: Sequence[ChatMessage] = ()) -> ChatState:
    """End a failed turn; ``history`` is what the driver managed to persist."""
    state = replace(state, busy=False)
    if history:
        state = replace(state, messages=tuple(history))
    if isinstance(error, CancelledError):
        return state.append(f"\n[{INFO_GLYPH} cancelled]\n")
    return state.append(f"\n[{ERROR_GLYPH} error: {error}]\n")


def on_attached(state: ChatState, path: str, messages: Sequence[ChatMessage]) -> ChatState:
    """Queue analysed images or file contents for the next turn."""
    state = replace(state, pending=state.pending + tuple(messages))
    return state.append(f"\n[{INFO_GLYPH} loaded: {path}]\n")


def on_attach_error(state: ChatState, error: Exception) -> ChatState:
    return state.append(f"\n[{ERROR_GLYPH} error: {error}]\n")


def on_resize(state: ChatState, width: int, height: int) -> ChatState:
    follow = state.viewport.at_bottom
    viewport = state.viewport.resize(width, height, state.transcript)
    if follow:
        viewport = viewport.goto_bottom()
    return replace(state, viewport=viewport)
