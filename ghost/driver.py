"""Conversation driver: tool-use loop followed by the streamed answer."""

import threading
from typing import Iterator, List, Optional, Sequence

from .channel import CancelToken, Chunk, Done, Error, Event, EventChannel
from .errors import CancelledError, ToolArgumentParseError, ToolExecutionError, ToolLoopLimitError
from .llm import LLMAdapter
from .logger import get_logger
from .messages import ChatMessage, Role
from .store import ThreadStore, derive_title
from .stream_filter import ThinkFilter
from .tools import ToolRegistry

_log = get_logger(__name__)

DEFAULT_MAX_TOOL_ITERATIONS = 16


class ConversationDriver:
    """Runs one user turn at a time against the model.

    When a ``store`` is given every message appended to the history is also
    written to the current thread; the thread is created on the first turn if
    ``thread_id`` is not set.
    """

    def __init__(self, llm: LLMAdapter, registry: ToolRegistry,
                 store: Optional[ThreadStore] = None, thread_id: Optional[str] = None,
                 max_tool_iterations: int = DEFAULT_MAX_TOOL_ITERATIONS):
        self.llm = llm
        self.registry = registry
        self.store = store
        self.thread_id = thread_id
        self.max_tool_iterations = max_tool_iterations

    # ── Persistence ──

    def _append(self, history: List[ChatMessage], message: ChatMessage):
        history.append(message)
        if self.store is None or message.role is Role.SYSTEM:
            return
        if self.thread_id is None:
            title = derive_title(message.content) if message.role is Role.USER else "untitled"
            self.thread_id = self.store.create_thread(title).id
        self.store.add_message(self.thread_id, message)

    # ── Phases ──

    def run_tool_loop(self, history: List[ChatMessage], cancel: CancelToken):
        """Resolve tool calls until the model stops asking for them.

        A round (the assistant's tool-call message and every result) is added
        to the history only once all of its tools have run, so a cancelled
        round never leaves a call without its result.
        """
        if len(self.registry) == 0:
            _log.debug("no tools registered, skipping tool loop")
            return
        definitions = self.registry.definitions()

        for iteration in range(self.max_tool_iterations + 1):
            cancel.raise_if_cancelled()
            response = self.llm.chat(history, definitions, cancel=cancel)
            if not response.tool_calls:
                # The final answer is streamed separately.
                return
            if iteration == self.max_tool_iterations:
                raise ToolLoopLimitError(self.max_tool_iterations)

            results = []
            for call in response.tool_calls:
                cancel.raise_if_cancelled()
                _log.debug("executing tool %s", call.name)
                try:
                    result = self.registry.execute(cancel, call.name, call.arguments)
                except (ToolArgumentParseError, ToolExecutionError) as e:
                    _log.warning("tool %s failed: %s", call.name, e)
                    result = f"error: {e}"
                results.append(ChatMessage.tool(result, tool_call_id=call.id))
            cancel.raise_if_cancelled()
            for message in [response] + results:
                self._append(history, message)

    def stream_response(self, history: List[ChatMessage], channel: EventChannel,
                        cancel: CancelToken) -> ChatMessage:
        think_filter = ThinkFilter()
        for token in self.llm.stream_chat(history, cancel):
            visible = think_filter.feed(token)
            if visible:
                channel.send(Chunk(visible), cancel)
        tail = think_filter.flush()
        if tail:
            channel.send(Chunk(tail), cancel)
        _log.debug("stream complete: raw=%d chars visible=%d chars",
                   len(think_filter.raw), len(think_filter.text))
        return ChatMessage.assistant(think_filter.text)

    def run_turn(self, history: Sequence[ChatMessage], new_messages: Sequence[ChatMessage],
                 channel: EventChannel, cancel: CancelToken) -> List[ChatMessage]:
        """Run a full turn, reporting progress on ``channel``.

        Emits ``Chunk`` events, then exactly one ``Done`` or ``Error``, and
        always closes the channel. Both final events carry the history as
        persisted so far. Returns the updated history.
        """
        history = list(history)
        try:
            for message in new_messages:
                self._append(history, message)
            self.run_tool_loop(history, cancel)
            cancel.raise_if_cancelled()
            reply = self.stream_response(history, channel, cancel)
            self._append(history, reply)
            final: Event = Done(reply, list(history))
        except Exception as e:
            if isinstance(e, CancelledError):
                _log.info("turn cancelled")
            else:
                _log.error("turn failed: %s", e)
            final = Error(e, list(history))
        try:
            if not channel.send(final):
                _log.debug("turn result dropped: consumer went away")
        finally:
            channel.close()
        return history

    def stream_to(self, history: Sequence[ChatMessage], new_messages: Sequence[ChatMessage],
                  cancel: Optional[CancelToken] = None) -> Iterator[Event]:
        """Run a turn on a worker thread and yield its events in order."""
        cancel = cancel or CancelToken()
        channel = EventChannel()
        worker = threading.Thread(
            target=self.run_turn, args=(history, new_messages, channel, cancel),
            name="ghost-turn", daemon=True)
        worker.start()
        try:
            yield from channel
        finally:
            # Consumer went away early: stop the producer instead of blocking it.
            if worker.is_alive():
                cancel.cancel()
                channel.abandon()
