"""Vision pre-processing: describe attached images with the vision model."""

import base64
import mimetypes
from pathlib import Path
from typing import List, Optional, Sequence

from .channel import CancelToken
from .config import DEFAULT_IMAGE_TYPES
from .errors import CancelledError, GhostError, ImageAnalysisError
from .llm import MARKDOWN_PROMPT, VISION_PROMPT, VISION_SYSTEM_PROMPT, LLMAdapter
from .logger import get_logger
from .messages import ChatMessage
from .stream_filter import strip_think

_log = get_logger(__name__)

_MAGIC = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def detect_image_type(path: Path, head: bytes) -> str:
    """Sniff the mime type from the file header, falling back to the extension."""
    for magic, mime in _MAGIC:
        if head.startswith(magic):
            return mime
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


def encode_image(path, accepted_types: Sequence[str] = DEFAULT_IMAGE_TYPES) -> str:
    path = Path(path).expanduser()
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ImageAnalysisError(f"visual recon failed: cannot read {path}: {e}") from e

    mime = detect_image_type(path, data[:16])
    if mime not in accepted_types:
        raise ImageAnalysisError(
            f"visual recon failed: {path.name} is {mime}, expected one of {', '.join(accepted_types)}")
    return base64.b64encode(data).decode("ascii")


def vision_messages(filename: str, encoded: str, system_prompt: str = "") -> List[ChatMessage]:
    system = (system_prompt or VISION_SYSTEM_PROMPT).rstrip("\n") + "\n\n" + MARKDOWN_PROMPT
    return [
        ChatMessage.system(system),
        ChatMessage.user(f"Filename: {filename}\n\n{VISION_PROMPT}", images=[encoded]),
    ]


def analyse_images(llm: LLMAdapter, vision_model: str, paths: Sequence[str],
                   accepted_types: Sequence[str] = DEFAULT_IMAGE_TYPES,
                   cancel: Optional[CancelToken] = None,
                   system_prompt: str = "") -> List[ChatMessage]:
    """Return one synthetic user message per image, in input order.

    Each image is described by ``vision_model`` in its own non-streaming
    request. Any failure aborts the whole batch with ``ImageAnalysisError``.
    """
    cancel = cancel or CancelToken()
    analyses = []
    for raw_path in paths:
        cancel.raise_if_cancelled()
        path = Path(raw_path).expanduser()
        encoded = encode_image(path, accepted_types)
        _log.info("initializing visual recon: model=%s file=%s", vision_model, path.name)
        try:
            response = llm.chat(vision_messages(path.name, encoded, system_prompt), model=vision_model,
                                cancel=cancel)
        except CancelledError:
            raise
        except GhostError as e:
            raise ImageAnalysisError(f"visual recon failed for {path.name}: {e}") from e
        _log.debug("visual recon complete: %s", path.name)
        analyses.append(ChatMessage.user(strip_think(response.content)))
    return analyses
