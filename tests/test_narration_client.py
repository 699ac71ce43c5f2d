"""
Unit tests for the OpenAI-backed narration service.
"""

import json
from unittest.mock import MagicMock

import pytest
from openai import OpenAIError

from conftest import make_png
from slidereel.errors import NarrationError
from slidereel.models import ScriptLevel, VoiceName
from slidereel.phase2_ai_services.narration_client import (
    DEFAULT_SCRIPT,
    DEFAULT_SUBTITLE,
    NarrationService,
    clean_json_response,
)


def _chat_response(content):
    message = MagicMock()
    message.content = content
    choice = MagicMock()
    choice.message = message
    response = MagicMock()
    response.choices = [choice]
    return response


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def service(client):
    return NarrationService(client=client)


class TestApiKeyValidation:
    """API keys are checked before a client is built."""

    @pytest.mark.parametrize("api_key", ["", "abc-123", "sk-...", "sk-short"])
    def test_invalid_keys_raise(self, api_key):
        with pytest.raises(ValueError):
            NarrationService(api_key=api_key)

    def test_valid_key_builds_client(self):
        service = NarrationService(api_key="sk-test-0123456789abcdefghij")

        assert service.client is not None


class TestGenerateScript:
    def test_parses_fenced_json(self, service, client):
        payload = {"script": "This slide shows growth.", "subtitle": "Growth"}
        client.chat.completions.create.return_value = _chat_response(f"```json\n{json.dumps(payload)}\n```")

        result = service.generate_script(make_png(), ScriptLevel.EXPERT)

        assert result.script == "This slide shows growth."
        assert result.subtitle == "Growth"

    def test_sends_image_as_data_url(self, service, client):
        client.chat.completions.create.return_value = _chat_response('{"script": "a", "subtitle": "b"}')

        service.generate_script(make_png(), "elementary")

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        content = kwargs["messages"][0]["content"]
        assert content[0]["image_url"]["url"].startswith("data:image/png;base64,")
        assert "elementary school children" in content[1]["text"]

    def test_missing_keys_fall_back_to_defaults(self, service, client):
        client.chat.completions.create.return_value = _chat_response("{}")

        result = service.generate_script(make_png())

        assert result.script == DEFAULT_SCRIPT
        assert result.subtitle == DEFAULT_SUBTITLE

    @pytest.mark.parametrize("content", [None, "", "   ", "not json at all", "[1, 2, 3]"])
    def test_bad_output_raises(self, service, client, content):
        client.chat.completions.create.return_value = _chat_response(content)

        with pytest.raises(NarrationError):
            service.generate_script(make_png())

    def test_api_error_raises_narration_error(self, service, client):
        client.chat.completions.create.side_effect = OpenAIError("rate limited")

        with pytest.raises(NarrationError):
            service.generate_script(make_png())


class TestGenerateSpeech:
    def test_returns_audio_bytes(self, service, client):
        client.audio.speech.create.return_value = MagicMock(content=b"ID3-mp3")

        audio = service.generate_speech("Hello there", VoiceName.NOVA)

        assert audio == b"ID3-mp3"
        kwargs = client.audio.speech.create.call_args.kwargs
        assert kwargs["voice"] == "nova"
        assert kwargs["input"] == "Hello there"

    @pytest.mark.parametrize("text", ["", "   ", "Analyzing slide...", "Error: could not analyze"])
    def test_placeholder_text_is_not_voiced(self, service, client, text):
        assert service.generate_speech(text) is None
        client.audio.speech.create.assert_not_called()

    def test_api_error_returns_none(self, service, client):
        client.audio.speech.create.side_effect = OpenAIError("boom")

        assert service.generate_speech("Hello") is None

    def test_empty_audio_returns_none(self, service, client):
        client.audio.speech.create.return_value = MagicMock(content=b"")

        assert service.generate_speech("Hello") is None


def test_clean_json_response_strips_fences():
    assert clean_json_response('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert clean_json_response('{"a": 1}') == '{"a": 1}'
