"""Tests for app.core.services.ai.gemini_client (with mocked SDK)."""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from app.core.services.ai.build_contract import BuildOutputSchema
from app.core.services.ai.gemini_client import GeminiClient


class TestIsConfigured:
    def test_configured_when_key_set(self):
        with patch("app.core.services.ai.gemini_client.settings") as s:
            s.GEMINI_API_KEY = "test-key-abc"
            assert GeminiClient().is_configured() is True

    def test_not_configured_when_key_empty(self):
        with patch("app.core.services.ai.gemini_client.settings") as s:
            s.GEMINI_API_KEY = ""
            assert GeminiClient().is_configured() is False

    def test_not_configured_when_key_none(self):
        with patch("app.core.services.ai.gemini_client.settings") as s:
            s.GEMINI_API_KEY = None
            assert GeminiClient().is_configured() is False

    def test_injected_client_counts_as_configured(self):
        with patch("app.core.services.ai.gemini_client.settings") as s:
            s.GEMINI_API_KEY = ""
            assert GeminiClient(client=MagicMock()).is_configured() is True


class TestInvoke:
    @patch("app.core.services.ai.gemini_client.settings")
    def test_returns_text_and_usage(self, mock_settings):
        mock_settings.GEMINI_TEMPERATURE = 0.7
        mock_settings.GEMINI_TIMEOUT_SECONDS = 60
        sdk = MagicMock()
        sdk.models.generate_content.return_value = SimpleNamespace(
            text='{"build_title": "Arc"}',
            usage_metadata=SimpleNamespace(prompt_token_count=10, candidates_token_count=20),
        )

        response = GeminiClient(client=sdk).invoke(
            "gemini-2.5-flash",
            "prompt",
            system_instruction="be a planner",
            response_schema=BuildOutputSchema,
        )

        assert response.text == '{"build_title": "Arc"}'
        assert response.usage.input_tokens == 10
        assert response.usage.output_tokens == 20

        kwargs = sdk.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        assert kwargs["contents"] == "prompt"
        config = kwargs["config"]
        assert config.system_instruction == "be a planner"
        assert config.response_mime_type == "application/json"
        assert config.temperature == 0.7
        assert config.http_options.timeout == 60000

    @patch("app.core.services.ai.gemini_client.settings")
    def test_explicit_timeout_wins(self, mock_settings):
        mock_settings.GEMINI_TEMPERATURE = 0.2
        mock_settings.GEMINI_TIMEOUT_SECONDS = 60
        sdk = MagicMock()
        sdk.models.generate_content.return_value = SimpleNamespace(text="{}", usage_metadata=None)

        response = GeminiClient(client=sdk).invoke("m", "p", timeout_seconds=2.5)

        assert sdk.models.generate_content.call_args.kwargs["config"].http_options.timeout == 2500
        assert response.usage.input_tokens == 0

    @patch("app.core.services.ai.gemini_client.settings")
    def test_missing_text_becomes_empty_string(self, mock_settings):
        mock_settings.GEMINI_TEMPERATURE = 0.7
        mock_settings.GEMINI_TIMEOUT_SECONDS = 60
        sdk = MagicMock()
        sdk.models.generate_content.return_value = SimpleNamespace(text=None, usage_metadata=None)

        assert GeminiClient(client=sdk).invoke("m", "p").text == ""

    @patch("app.core.services.ai.gemini_client.settings")
    def test_provider_errors_propagate_unchanged(self, mock_settings):
        mock_settings.GEMINI_TEMPERATURE = 0.7
        mock_settings.GEMINI_TIMEOUT_SECONDS = 60
        boom = RuntimeError('{"error": {"code": 429}}')
        sdk = MagicMock()
        sdk.models.generate_content.side_effect = boom

        with pytest.raises(RuntimeError) as exc_info:
            GeminiClient(client=sdk).invoke("m", "p")
        assert exc_info.value is boom

    def test_missing_key_raises(self):
        with patch("app.core.services.ai.gemini_client.settings") as s:
            s.GEMINI_API_KEY = ""
            with pytest.raises(RuntimeError, match="GEMINI_API_KEY"):
                GeminiClient().invoke("m", "p")

    def test_lazy_sdk_initialisation(self):
        with patch("app.core.services.ai.gemini_client.genai") as mock_genai:
            client = GeminiClient(api_key="k")
            mock_genai.Client.assert_not_called()
            client._get_client()
            client._get_client()
            mock_genai.Client.assert_called_once_with(api_key="k")


def test_list_model_names():
    sdk = MagicMock()
    sdk.models.list.return_value = [
        SimpleNamespace(name="models/gemini-2.5-flash"),
        SimpleNamespace(name=None),
        SimpleNamespace(name="models/gemini-2.5-flash-lite"),
    ]
    assert GeminiClient(client=sdk).list_model_names() == [
        "models/gemini-2.5-flash",
        "models/gemini-2.5-flash-lite",
    ]
