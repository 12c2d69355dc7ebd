"""User input helpers: piped stdin, query assembly and file context."""

import sys
from pathlib import Path
from typing import IO, Optional, Sequence

from .errors import GhostIOError, InputError
from .logger import get_logger

_log = get_logger(__name__)

MAX_INPUT_BYTES = 10 * 1024 * 1024  # 10MB


def stdin_is_piped(stream: Optional[IO] = None) -> bool:
    stream = stream or sys.stdin
    try:
        return not stream.isatty()
    except (AttributeError, ValueError):
        return False


def read_piped_input(stream: IO, limit: int = MAX_INPUT_BYTES) -> str:
    """Read all of ``stream``; more than ``limit`` characters is an error."""
    try:
        data = stream.read(limit + 1)
    except (OSError, UnicodeDecodeError) as e:
        raise GhostIOError(f"failed to read piped input: {e}") from e
    if len(data) > limit:
        raise InputError(f"piped input exceeds {limit // (1024 * 1024)}MB limit")
    _log.debug("read piped input: %d chars", len(data))
    return data.strip()


def build_query(args: Sequence[str], piped: str = "") -> str:
    """Combine piped input and command-line words into one prompt."""
    query = " ".join(args).strip()
    if piped and query:
        return f"{piped}\n\n{query}"
    if piped or query:
        return piped or query
    raise InputError("no input: provide a query or pipe input")


def read_file_for_context(path) -> str:
    """Return ``[FILE: path]`` followed by the file's text."""
    path = Path(path).expanduser()
    try:
        info = path.stat()
    except OSError as e:
        raise InputError(f"failed to access file: {e}") from e
    if path.is_dir():
        raise InputError(f"path is a directory, not a file: {path}")
    if info.st_size > MAX_INPUT_BYTES:
        raise InputError(f"file exceeds 10MB limit ({info.st_size} bytes)")
    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise InputError(f"file type unsupported: {path}") from e
    except OSError as e:
        raise GhostIOError(f"failed to read file: {e}") from e
    return f"[FILE: {path}]\n{content}"
