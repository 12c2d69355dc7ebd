"""Structured error types for ghost, each carrying a sysexits exit code."""

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes following the BSD sysexits convention."""

    OK = 0
    FAILURE = 1
    USAGE = 64
    DATA_ERR = 65
    NO_INPUT = 66
    NO_HOST = 68
    UNAVAILABLE = 69
    SOFTWARE = 70
    IO_ERR = 74
    PROTOCOL = 76
    CONFIG = 78


class GhostError(Exception):
    """Base error for all ghost operations."""

    exit_code = ExitCode.SOFTWARE


class UsageError(GhostError):
    """Bad flags or arguments."""

    exit_code = ExitCode.USAGE


class ConfigMissingError(GhostError):
    """A required configuration value is not set."""

    exit_code = ExitCode.CONFIG

    def __init__(self, key: str, hint: str = ""):
        self.key = key
        message = f"{key} not configured"
        if hint:
            message += f": {hint}"
        super().__init__(message)


class InputError(GhostError):
    """No usable input was provided."""

    exit_code = ExitCode.NO_INPUT


class GhostIOError(GhostError):
    """Local input/output failure."""

    exit_code = ExitCode.IO_ERR


# ── Thread store ──


class StorageAccessError(GhostError):
    """The thread store could not read or write its files."""

    exit_code = ExitCode.IO_ERR


class ThreadNotFoundError(GhostError):
    """No thread exists with the requested identifier."""

    exit_code = ExitCode.NO_INPUT

    def __init__(self, thread_id: str):
        self.thread_id = thread_id
        super().__init__(f"thread not found: {thread_id}")


class DataCorruptionError(GhostError):
    """A stored thread document could not be decoded."""

    exit_code = ExitCode.DATA_ERR


# ── Tools ──


class ToolError(GhostError):
    """Base error for tool dispatch and execution."""

    def __init__(self, tool_name: str, message: str):
        self.tool_name = tool_name
        super().__init__(f"{tool_name}: {message}")


class ToolNotRegisteredError(ToolError):
    """The model asked for a tool the registry does not know."""

    def __init__(self, tool_name: str):
        super().__init__(tool_name, "tool not registered")


class ToolArgumentParseError(ToolError):
    """Tool arguments did not match the tool's parameter schema."""

    exit_code = ExitCode.DATA_ERR


class ToolExecutionError(ToolError):
    """The tool ran but failed."""


class ToolLoopLimitError(GhostError):
    """The model kept requesting tools past the configured cap."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"tool loop exceeded {limit} iterations")


# ── Remote chat API ──


class RemoteUnavailableError(GhostError):
    """The chat endpoint could not be reached."""

    exit_code = ExitCode.UNAVAILABLE


class ProtocolViolationError(GhostError):
    """The chat endpoint answered with an error status or a malformed payload."""

    exit_code = ExitCode.PROTOCOL


class ModelNotFoundError(ProtocolViolationError):
    """The endpoint does not have the requested model."""

    def __init__(self, model: str):
        self.model = model
        super().__init__(f"model not found: {model}")


class CancelledError(GhostError):
    """The user cancelled the turn."""

    exit_code = ExitCode.FAILURE

    def __init__(self, message: str = "cancelled"):
        super().__init__(message)


# ── Vision ──


class ImageAnalysisError(GhostError):
    """Image pre-processing failed; the turn aborts before the main completion."""

    exit_code = ExitCode.DATA_ERR
