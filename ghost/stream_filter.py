"""Streaming filter that hides ``<think>…</think>`` reasoning blocks.

Tokens arrive split at arbitrary points, so tags may straddle tokens. The
filter buffers only as much as it needs to decide: the output is the same for
every way of splitting the stream.
"""

from enum import Enum

OPEN_TAG = "<think>"
CLOSE_TAG = "</think>"
LEADING_WHITESPACE = " \n\r\t"


class FilterState(Enum):
    BUFFERING_DECISION = "buffering_decision"
    INSIDE_THINK = "inside_think"
    PASS_THROUGH = "pass_through"


def _held_prefix_len(text: str) -> int:
    """Length of the longest suffix of ``text`` that is a proper prefix of ``<think>``."""
    for size in range(min(len(text), len(OPEN_TAG) - 1), 0, -1):
        if OPEN_TAG.startswith(text[-size:]):
            return size
    return 0


class ThinkFilter:
    """Incremental think-block remover.

    ``feed`` returns the visible text that became safe to show; ``flush``
    returns whatever was still held back once the stream has ended.
    """

    def __init__(self):
        self.reset()

    def reset(self):
        self._state = FilterState.BUFFERING_DECISION
        self._buffer = ""
        self._raw: list[str] = []
        self._emitted: list[str] = []
        self._visible = False

    @property
    def state(self) -> FilterState:
        return self._state

    @property
    def raw(self) -> str:
        """Everything fed so far, unfiltered."""
        return "".join(self._raw)

    @property
    def text(self) -> str:
        """Everything emitted so far."""
        return "".join(self._emitted)

    def feed(self, token: str) -> str:
        if not token:
            return ""
        self._raw.append(token)
        self._buffer += token
        return self._drain()

    def flush(self) -> str:
        if self._state is FilterState.INSIDE_THINK:
            # Unterminated block: never show partial reasoning.
            out = ""
        else:
            out = self._emit(self._buffer)
        self._buffer = ""
        return out

    def _emit(self, text: str) -> str:
        if not self._visible:
            text = text.lstrip(LEADING_WHITESPACE)
            if not text:
                return ""
            self._visible = True
        if text:
            self._emitted.append(text)
        return text

    def _drain(self) -> str:
        out = []
        while True:
            if self._state is FilterState.BUFFERING_DECISION:
                if not self._visible:
                    self._buffer = self._buffer.lstrip(LEADING_WHITESPACE)
                if self._buffer.startswith(OPEN_TAG):
                    self._buffer = self._buffer[len(OPEN_TAG):]
                    self._state = FilterState.INSIDE_THINK
                    continue
                if OPEN_TAG.startswith(self._buffer):
                    # Still could become "<think>": wait for more input.
                    break
                self._state = FilterState.PASS_THROUGH
                continue

            if self._state is FilterState.INSIDE_THINK:
                idx = self._buffer.find(CLOSE_TAG)
                if idx >= 0:
                    self._buffer = self._buffer[idx + len(CLOSE_TAG):]
                    self._state = FilterState.BUFFERING_DECISION
                    continue
                keep = len(CLOSE_TAG) - 1
                self._buffer = self._buffer[-keep:]
                break

            # PASS_THROUGH
            idx = self._buffer.find(OPEN_TAG)
            if idx >= 0:
                out.append(self._emit(self._buffer[:idx]))
                self._buffer = self._buffer[idx + len(OPEN_TAG):]
                self._state = FilterState.INSIDE_THINK
                continue
            held = _held_prefix_len(self._buffer)
            cut = len(self._buffer) - held
            out.append(self._emit(self._buffer[:cut]))
            self._buffer = self._buffer[cut:]
            break
        return "".join(out)


def strip_think(text: str) -> str:
    """Filter a complete response in one call."""
    f = ThinkFilter()
    return f.feed(text) + f.flush()
