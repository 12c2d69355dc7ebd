"""Thread persistence: one JSON document per thread, written atomically."""

import json
import os
import re
import tempfile
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import DataCorruptionError, StorageAccessError, ThreadNotFoundError
from .logger import get_logger
from .messages import ChatMessage, Role, ToolCall

_log = get_logger(__name__)

DOCUMENT_VERSION = 1
TITLE_MAX_CHARS = 50
_THREAD_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def derive_title(text: str) -> str:
    """First words of ``text``, at most 50 characters."""
    words = text.split()
    title = ""
    for word in words:
        candidate = f"{title} {word}" if title else word
        if len(candidate) > TITLE_MAX_CHARS:
            break
        title = candidate
    if not title and words:
        title = words[0][:TITLE_MAX_CHARS]
    return title or "untitled"


@dataclass
class Thread:
    id: str
    title: str
    created_at: datetime
    updated_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Thread":
        return cls(
            id=data["id"],
            title=data["title"],
            created_at=_parse_time(data["created_at"]),
            updated_at=_parse_time(data["updated_at"]),
        )


@dataclass
class StoredMessage:
    id: str
    thread_id: str
    role: Role
    content: str
    created_at: datetime
    images: Tuple[str, ...] = ()
    tool_calls: Tuple[ToolCall, ...] = ()
    tool_call_id: str = ""

    def to_chat_message(self) -> ChatMessage:
        return ChatMessage(
            role=self.role,
            content=self.content,
            images=self.images,
            tool_calls=self.tool_calls,
            tool_call_id=self.tool_call_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = self.to_chat_message().to_dict()
        data.update({
            "id": self.id,
            "thread_id": self.thread_id,
            "created_at": self.created_at.isoformat(),
        })
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StoredMessage":
        msg = ChatMessage.from_dict(data)
        return cls(
            id=data["id"],
            thread_id=data["thread_id"],
            role=msg.role,
            content=msg.content,
            created_at=_parse_time(data["created_at"]),
            images=msg.images,
            tool_calls=msg.tool_calls,
            tool_call_id=msg.tool_call_id,
        )


@dataclass
class Conversation:
    thread: Thread
    messages: List[StoredMessage] = field(default_factory=list)

    def chat_messages(self) -> List[ChatMessage]:
        return [m.to_chat_message() for m in self.messages]


class ThreadStore:
    """File-backed thread store rooted at ``base_dir/threads``."""

    def __init__(self, base_dir):
        self.threads_dir = Path(base_dir).expanduser() / "threads"
        try:
            self.threads_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageAccessError(f"cannot create {self.threads_dir}: {e}") from e
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ── Threads ──

    def create_thread(self, title: str) -> Thread:
        now = _now()
        thread = Thread(id=uuid.uuid4().hex, title=title.strip() or "untitled",
                        created_at=now, updated_at=now)
        with self._lock_for(thread.id):
            self._write(Conversation(thread=thread))
        _log.debug("created thread %s (%s)", thread.id, thread.title)
        return thread

    def get_thread(self, thread_id: str) -> Thread:
        return self._read(thread_id).thread

    def update_thread(self, thread: Thread) -> Thread:
        with self._lock_for(thread.id):
            conv = self._read(thread.id)
            thread.updated_at = max(_now(), thread.created_at, conv.thread.updated_at)
            conv.thread = thread
            self._write(conv)
        return thread

    def delete_thread(self, thread_id: str):
        with self._lock_for(thread_id):
            path = self._path(thread_id)
            try:
                path.unlink()
            except FileNotFoundError:
                raise ThreadNotFoundError(thread_id) from None
            except OSError as e:
                raise StorageAccessError(f"cannot delete {path}: {e}") from e
        with self._locks_guard:
            self._locks.pop(thread_id, None)

    def list_threads(self) -> List[Thread]:
        """All threads, most recently updated first. Corrupt documents are skipped."""
        threads = []
        try:
            paths = sorted(self.threads_dir.glob("*.json"))
        except OSError as e:
            raise StorageAccessError(f"cannot list {self.threads_dir}: {e}") from e
        for path in paths:
            try:
                threads.append(self._read(path.stem).thread)
            except (DataCorruptionError, ThreadNotFoundError) as e:
                _log.warning("skipping thread document %s: %s", path.name, e)
        threads.sort(key=lambda t: t.updated_at, reverse=True)
        return threads

    # ── Messages ──

    def add_message(self, thread_id: str, message: ChatMessage) -> StoredMessage:
        with self._lock_for(thread_id):
            conv = self._read(thread_id)
            created_at = _now()
            floor = conv.messages[-1].created_at if conv.messages else conv.thread.created_at
            if created_at < floor:
                created_at = floor
            stored = StoredMessage(
                id=uuid.uuid4().hex,
                thread_id=thread_id,
                role=message.role,
                content=message.content,
                created_at=created_at,
                images=message.images,
                tool_calls=message.tool_calls,
                tool_call_id=message.tool_call_id,
            )
            conv.messages.append(stored)
            conv.thread.updated_at = created_at
            self._write(conv)
        return stored

    def get_messages(self, thread_id: str) -> List[StoredMessage]:
        return self._read(thread_id).messages

    def get_conversation(self, thread_id: str) -> Conversation:
        return self._read(thread_id)

    # ── Internals ──

    def _lock_for(self, thread_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(thread_id)
            if lock is None:
                lock = self._locks[thread_id] = threading.Lock()
            return lock

    def _path(self, thread_id: str) -> Path:
        if not _THREAD_ID_RE.match(thread_id or ""):
            raise ThreadNotFoundError(thread_id)
        return self.threads_dir / f"{thread_id}.json"

    def _read(self, thread_id: str) -> Conversation:
        path = self._path(thread_id)
        try:
            with open(path, encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            raise ThreadNotFoundError(thread_id) from None
        except OSError as e:
            raise StorageAccessError(f"cannot read {path}: {e}") from e

        try:
            data = json.loads(raw)
            if data.get("version") != DOCUMENT_VERSION:
                raise ValueError(f"unsupported document version {data.get('version')!r}")
            thread = Thread.from_dict(data["thread"])
            messages = [StoredMessage.from_dict(m) for m in data["messages"]]
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise DataCorruptionError(f"corrupt thread document {path.name}: {e}") from e
        if thread.id != thread_id:
            raise DataCorruptionError(f"corrupt thread document {path.name}: id mismatch")
        return Conversation(thread=thread, messages=messages)

    def _write(self, conv: Conversation):
        path = self._path(conv.thread.id)
        document = {
            "version": DOCUMENT_VERSION,
            "thread": conv.thread.to_dict(),
            "messages": [m.to_dict() for m in conv.messages],
        }
        tmp_name: Optional[str] = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.threads_dir, prefix=f".{conv.thread.id}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise StorageAccessError(f"cannot write {path}: {e}") from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass
