"""Tests for ghost.vision: image encoding and analysis messages."""

import base64

import pytest

from ghost.channel import CancelToken
from ghost.errors import CancelledError, ImageAnalysisError, RemoteUnavailableError
from ghost.llm import MARKDOWN_PROMPT, VISION_PROMPT
from ghost.messages import ChatMessage, Role
from ghost.vision import analyse_images, detect_image_type, encode_image, vision_messages
from helpers import FakeLLM

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 16
JPEG = b"\xff\xd8\xff\xe0" + b"\x00" * 16
GIF = b"GIF89a" + b"\x00" * 16
WEBP = b"RIFF\x00\x00\x00\x00WEBPVP8 " + b"\x00" * 8


@pytest.fixture
def png_file(tmp_path):
    path = tmp_path / "shot.png"
    path.write_bytes(PNG)
    return path


class TestDetect:
    @pytest.mark.parametrize("head,mime", [
        (PNG, "image/png"), (JPEG, "image/jpeg"), (GIF, "image/gif"), (WEBP, "image/webp"),
    ])
    def test_magic_bytes(self, tmp_path, head, mime):
        assert detect_image_type(tmp_path / "noext", head) == mime

    def test_content_beats_extension(self, tmp_path):
        assert detect_image_type(tmp_path / "really.png", JPEG) == "image/jpeg"

    def test_extension_fallback(self, tmp_path):
        assert detect_image_type(tmp_path / "logo.svg", b"<svg") == "image/svg+xml"


class TestEncode:
    def test_encodes_base64(self, png_file):
        assert base64.b64decode(encode_image(png_file)) == PNG

    def test_rejects_unlisted_type(self, tmp_path):
        path = tmp_path / "anim.gif"
        path.write_bytes(GIF)
        with pytest.raises(ImageAnalysisError, match="image/gif"):
            encode_image(path)

    def test_accepts_configured_type(self, tmp_path):
        path = tmp_path / "anim.gif"
        path.write_bytes(GIF)
        assert encode_image(path, ["image/gif"])

    def test_missing_file(self, tmp_path):
        with pytest.raises(ImageAnalysisError, match="cannot read"):
            encode_image(tmp_path / "nope.png")


class TestMessages:
    def test_prompt_layout(self):
        system, user = vision_messages("shot.png", "QUJD")
        assert system.role is Role.SYSTEM
        assert system.content.endswith(MARKDOWN_PROMPT)
        assert user.content == f"Filename: shot.png\n\n{VISION_PROMPT}"
        assert user.images == ("QUJD",)

    def test_custom_system_prompt(self):
        system, _ = vision_messages("a.png", "QUJD", system_prompt="describe briefly")
        assert system.content == "describe briefly\n\n" + MARKDOWN_PROMPT


class TestAnalyse:
    def test_one_message_per_image_in_order(self, tmp_path, png_file):
        second = tmp_path / "second.jpg"
        second.write_bytes(JPEG)
        llm = FakeLLM(responses=[ChatMessage.assistant("first analysis"),
                                 ChatMessage.assistant("second analysis")])
        messages = analyse_images(llm, "qwen2.5vl:7b", [str(png_file), str(second)])

        assert [m.content for m in messages] == ["first analysis", "second analysis"]
        assert all(m.role is Role.USER and not m.images for m in messages)
        assert [c["model"] for c in llm.chat_calls] == ["qwen2.5vl:7b", "qwen2.5vl:7b"]
        assert "Filename: second.jpg" in llm.chat_calls[1]["messages"][1].content

    def test_model_failure_wrapped(self, png_file):
        llm = FakeLLM(responses=[RemoteUnavailableError("down")])
        with pytest.raises(ImageAnalysisError, match="shot.png"):
            analyse_images(llm, "v", [str(png_file)])

    def test_bad_file_aborts_before_any_request(self, tmp_path, png_file):
        llm = FakeLLM()
        with pytest.raises(ImageAnalysisError):
            analyse_images(llm, "v", [str(tmp_path / "missing.png"), str(png_file)])
        assert llm.chat_calls == []

    def test_cancelled(self, png_file):
        cancel = CancelToken()
        cancel.cancel()
        with pytest.raises(CancelledError):
            analyse_images(FakeLLM(), "v", [str(png_file)], cancel=cancel)

    def test_reasoning_stripped_from_analysis(self, png_file):
        llm = FakeLLM(responses=[ChatMessage.assistant("<think>hmm</think>\nIMAGE_ANALYSIS")])
        messages = analyse_images(llm, "v", [str(png_file)])
        assert messages[0].content == "IMAGE_ANALYSIS"
