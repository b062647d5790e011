"""Tests for AI provider implementations.

Shared behaviour (key rotation, timeouts, error redaction, prompt building and
response parsing) lives in BaseProvider and is tested once via a lightweight
stub. Provider-specific tests cover only what differs between
implementations: the SDK client setup and _call_api.
"""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest
from anthropic.types import TextBlock

from prrelay_core.errors import ProviderError, ProviderResponseError
from prrelay_core.models import ReviewContext, Severity
from prrelay_core.providers.anthropic import ClaudeProvider
from prrelay_core.providers.base import BaseProvider, ProviderConfig, redact_secrets
from prrelay_core.providers.gemini import GeminiProvider
from prrelay_core.providers.openai import OpenAIProvider

CONTEXT = ReviewContext(pr_number=42, repository="owner/repo", branch="feature/login", files=("src/auth.py",))

VALID_JSON = json.dumps(
    {
        "summary": "One problem found",
        "suggestions": [
            {
                "file": "src/auth.py",
                "line": 3,
                "severity": "high",
                "message": "Missing error handling",
                "suggestion": "Wrap the call in try/except",
            }
        ],
    }
)


class _StubProvider(BaseProvider):
    """Minimal concrete subclass used to test BaseProvider shared methods."""

    name = "Stub"
    CONFIDENCE = 0.7

    def __init__(self, config, responder=None):
        self.responder = responder or (lambda client: VALID_JSON)
        self.used_clients = []
        super().__init__(config)

    def _create_client(self, api_key):
        return f"client:{api_key}"

    async def _call_api(self, client, system_prompt, user_prompt):
        self.used_clients.append(client)
        result = self.responder(client)
        if asyncio.iscoroutine(result):
            return await result
        return result


def _stub(keys=("k1",), responder=None, **kwargs):
    return _StubProvider(ProviderConfig(api_keys=list(keys), **kwargs), responder=responder)


def _raise(exc):
    def responder(client):
        raise exc

    return responder


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


class TestConstruction:
    def test_requires_at_least_one_key(self):
        with pytest.raises(ValueError, match="At least one API key is required for Stub"):
            _stub(keys=())

    def test_blank_keys_ignored(self):
        with pytest.raises(ValueError):
            _stub(keys=("", "   "))
        assert _stub(keys=(" k1 ", "", "k2")).key_count == 2

    def test_one_client_per_key(self):
        provider = _stub(keys=("k1", "k2"))
        assert provider._clients == ["client:k1", "client:k2"]

    def test_defaults_and_overrides(self):
        provider = _stub()
        assert provider.max_tokens == 4096
        assert provider.temperature == 0.3
        assert provider.timeout == 30.0

        custom = _stub(model="m-1", max_tokens=100, temperature=0.0, timeout=5, name="Custom")
        assert custom.get_model_info() == {"model": "m-1", "max_tokens": 100}
        assert custom.temperature == 0.0
        assert custom.timeout == 5
        assert custom.name == "Custom"


# ---------------------------------------------------------------------------
# Key rotation
# ---------------------------------------------------------------------------


class TestKeyRotation:
    @pytest.mark.asyncio
    async def test_rotates_after_success(self):
        provider = _stub(keys=("k1", "k2", "k3"))
        for _ in range(4):
            await provider.analyze_code("diff", CONTEXT)
        assert provider.used_clients == ["client:k1", "client:k2", "client:k3", "client:k1"]
        assert provider.current_key_index == 1

    @pytest.mark.asyncio
    async def test_rotates_after_failure(self):
        provider = _stub(keys=("k1", "k2"), responder=_raise(RuntimeError("down")))
        with pytest.raises(ProviderError):
            await provider.analyze_code("diff", CONTEXT)
        assert provider.current_key_index == 1

    @pytest.mark.asyncio
    async def test_rotates_after_unparseable_response(self):
        provider = _stub(keys=("k1", "k2"), responder=lambda client: "not json")
        with pytest.raises(ProviderResponseError):
            await provider.analyze_code("diff", CONTEXT)
        assert provider.current_key_index == 1


# ---------------------------------------------------------------------------
# Error handling
# ---------------------------------------------------------------------------


class TestErrors:
    @pytest.mark.asyncio
    async def test_sdk_error_wrapped_as_provider_error(self):
        provider = _stub(responder=_raise(ConnectionError("connection reset")))
        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze_code("diff", CONTEXT)
        err = exc_info.value
        assert err.provider == "Stub"
        assert "Stub API error: ConnectionError: connection reset" in str(err)
        assert err.__cause__ is None

    @pytest.mark.asyncio
    async def test_api_key_redacted_from_error(self):
        key = "sk-live-1234567890abcdef"
        provider = _stub(keys=(key,), responder=_raise(RuntimeError(f"Incorrect API key provided: {key}")))
        with pytest.raises(ProviderError) as exc_info:
            await provider.analyze_code("diff", CONTEXT)
        assert key not in str(exc_info.value)
        assert "***" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def slow():
            await asyncio.sleep(1)
            return VALID_JSON

        provider = _stub(responder=lambda client: slow(), timeout=0.01)
        with pytest.raises(ProviderError, match="timed out"):
            await provider.analyze_code("diff", CONTEXT)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["", "   \n", None])
    async def test_empty_response(self, raw):
        provider = _stub(responder=lambda client: raw)
        with pytest.raises(ProviderResponseError, match="No response from Stub"):
            await provider.analyze_code("diff", CONTEXT)

    @pytest.mark.asyncio
    async def test_health_check_true(self):
        assert await _stub().health_check() is True

    @pytest.mark.asyncio
    async def test_health_check_false_never_raises(self):
        provider = _stub(responder=_raise(RuntimeError("401 unauthorized")))
        assert await provider.health_check() is False


class TestRedactSecrets:
    def test_explicit_secret(self):
        assert redact_secrets("key abc123 rejected", ["abc123"]) == "key *** rejected"

    def test_openai_style_key(self):
        assert "sk-proj" not in redact_secrets("bad key sk-proj-abcdefghijklmnop")

    def test_google_style_key(self):
        assert "AIza" not in redact_secrets("key=AIzaSyA1234567890abcdefghijklmn invalid")

    def test_header_value(self):
        text = redact_secrets('{"x-api-key": "secret-value-123"}')
        assert "secret-value-123" not in text
        assert "x-api-key" in text

    def test_plain_text_untouched(self):
        assert redact_secrets("rate limit exceeded") == "rate limit exceeded"


# ---------------------------------------------------------------------------
# Prompts
# ---------------------------------------------------------------------------


class TestPrompts:
    def test_user_prompt_contains_context_and_diff(self):
        prompt = _stub()._build_user_prompt("+print('x')", CONTEXT)
        assert "Repository: owner/repo" in prompt
        assert "PR Number: 42" in prompt
        assert "Branch: feature/login" in prompt
        assert "- src/auth.py" in prompt
        assert "```diff\n+print('x')\n```" in prompt
        assert '"suggestions"' in prompt

    def test_user_prompt_without_files(self):
        ctx = ReviewContext(pr_number=1, repository="o/r", branch="main")
        assert "(not provided)" in _stub()._build_user_prompt("d", ctx)

    def test_system_prompt_mentions_review_focus(self):
        assert "security" in _stub()._build_system_prompt().lower()


# ---------------------------------------------------------------------------
# Response parsing
# ---------------------------------------------------------------------------


class TestParse:
    def test_parses_valid_json(self):
        result = _stub()._parse(VALID_JSON)
        assert result.summary == "One problem found"
        assert result.confidence == 0.7
        assert len(result.suggestions) == 1
        s = result.suggestions[0]
        assert (s.file, s.line, s.severity, s.message) == ("src/auth.py", 3, Severity.HIGH, "Missing error handling")
        assert s.suggestion == "Wrap the call in try/except"

    def test_strips_markdown_code_fences(self):
        raw = f"```json\n{VALID_JSON}\n```"
        assert len(_stub()._parse(raw).suggestions) == 1

    def test_extracts_object_from_prose(self):
        raw = f"Here is my review:\n{VALID_JSON}\nHope this helps!"
        assert _stub()._parse(raw).summary == "One problem found"

    def test_preserves_code_blocks_inside_messages(self):
        payload = json.dumps(
            {
                "summary": "s",
                "suggestions": [
                    {"file": "a.py", "line": 5, "severity": "low", "message": "Use:\n```python\nfoo()\n```"}
                ],
            }
        )
        result = _stub()._parse(f"```json\n{payload}\n```")
        assert "```python" in result.suggestions[0].message

    def test_invalid_json_raises(self):
        with pytest.raises(ProviderResponseError, match="no JSON object"):
            _stub()._parse("I could not review this.")

    def test_broken_object_raises(self):
        with pytest.raises(ProviderResponseError, match="invalid JSON"):
            _stub()._parse('prefix {"summary": "x", } suffix')

    def test_non_object_raises(self):
        with pytest.raises(ProviderResponseError, match="expected an object"):
            _stub()._parse("[1, 2, 3]")

    def test_missing_summary_gets_default(self):
        assert _stub()._parse('{"suggestions": []}').summary == "Stub review completed"

    def test_suggestions_not_a_list_ignored(self):
        result = _stub()._parse('{"summary": "ok", "suggestions": "none"}')
        assert result.suggestions == ()

    def test_incomplete_suggestions_dropped(self):
        payload = json.dumps(
            {
                "summary": "s",
                "suggestions": [
                    {"line": 3, "message": "no file"},
                    {"file": "a.py", "line": 3},
                    {"file": "a.py", "line": 0, "message": "bad line"},
                    {"file": "a.py", "line": "x", "message": "bad line"},
                    "not an object",
                    {"file": "a.py", "line": "7", "message": "kept"},
                ],
            }
        )
        result = _stub()._parse(payload)
        assert [(s.file, s.line, s.message) for s in result.suggestions] == [("a.py", 7, "kept")]

    def test_unknown_severity_becomes_medium(self):
        payload = json.dumps({"summary": "s", "suggestions": [{"file": "a.py", "line": 1, "message": "m", "severity": "blocker"}]})
        assert _stub()._parse(payload).suggestions[0].severity is Severity.MEDIUM


# ---------------------------------------------------------------------------
# Provider-specific: SDK client setup and _call_api
# ---------------------------------------------------------------------------


class TestOpenAIProvider:
    @pytest.mark.asyncio
    async def test_analyze_code(self, mocker):
        mock_cls = mocker.patch("prrelay_core.providers.openai.AsyncOpenAI")
        client = mock_cls.return_value
        choice = MagicMock()
        choice.message.content = VALID_JSON
        client.chat.completions.create = AsyncMock(return_value=MagicMock(choices=[choice]))

        provider = OpenAIProvider(ProviderConfig(api_keys=["sk-a"], timeout=12))
        result = await provider.analyze_code("diff", CONTEXT)

        mock_cls.assert_called_once_with(api_key="sk-a", timeout=12)
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"][0]["role"] == "system"
        assert "owner/repo" in kwargs["messages"][1]["content"]
        assert result.confidence == 0.8
        assert len(result.suggestions) == 1

    def test_one_client_per_key(self, mocker):
        mock_cls = mocker.patch("prrelay_core.providers.openai.AsyncOpenAI")
        OpenAIProvider(ProviderConfig(api_keys=["sk-a", "sk-b"]))
        assert [c.kwargs["api_key"] for c in mock_cls.call_args_list] == ["sk-a", "sk-b"]

    @pytest.mark.asyncio
    async def test_no_choices_is_empty_response(self, mocker):
        client = mocker.patch("prrelay_core.providers.openai.AsyncOpenAI").return_value
        client.chat.completions.create = AsyncMock(return_value=MagicMock(choices=[]))

        with pytest.raises(ProviderResponseError, match="No response from OpenAI"):
            await OpenAIProvider(ProviderConfig(api_keys=["sk-a"])).analyze_code("diff", CONTEXT)


class TestClaudeProvider:
    @pytest.mark.asyncio
    async def test_analyze_code(self, mocker):
        mock_cls = mocker.patch("prrelay_core.providers.anthropic.AsyncAnthropic")
        client = mock_cls.return_value
        client.messages.create = AsyncMock(
            return_value=MagicMock(content=[TextBlock(type="text", text=VALID_JSON)])
        )

        provider = ClaudeProvider(ProviderConfig(api_keys=["ak-1"], model="claude-custom"))
        result = await provider.analyze_code("diff", CONTEXT)

        mock_cls.assert_called_once_with(api_key="ak-1", timeout=30.0)
        kwargs = client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-custom"
        assert "senior code reviewer" in kwargs["system"]
        assert kwargs["max_tokens"] == 4096
        assert result.confidence == 0.85
        assert result.summary == "One problem found"

    @pytest.mark.asyncio
    async def test_non_text_blocks_ignored(self, mocker):
        client = mocker.patch("prrelay_core.providers.anthropic.AsyncAnthropic").return_value
        client.messages.create = AsyncMock(return_value=MagicMock(content=[MagicMock(spec=[])]))

        with pytest.raises(ProviderResponseError):
            await ClaudeProvider(ProviderConfig(api_keys=["ak-1"])).analyze_code("diff", CONTEXT)


class TestGeminiProvider:
    @pytest.mark.asyncio
    async def test_analyze_code(self, mocker):
        mock_cls = mocker.patch("prrelay_core.providers.gemini.genai.Client")
        client = mock_cls.return_value
        client.aio.models.generate_content = AsyncMock(return_value=MagicMock(text=f"```json\n{VALID_JSON}\n```"))

        provider = GeminiProvider(ProviderConfig(api_keys=["AIza-key"], timeout=10))
        result = await provider.analyze_code("diff", CONTEXT)

        assert mock_cls.call_args.kwargs["api_key"] == "AIza-key"
        assert mock_cls.call_args.kwargs["http_options"].timeout == 10_000
        kwargs = client.aio.models.generate_content.call_args.kwargs
        assert kwargs["model"] == "gemini-2.5-flash"
        assert "senior code reviewer" in kwargs["config"].system_instruction
        assert kwargs["config"].max_output_tokens == 4096
        assert result.confidence == 0.82

    @pytest.mark.asyncio
    async def test_sdk_error_wrapped(self, mocker):
        client = mocker.patch("prrelay_core.providers.gemini.genai.Client").return_value
        client.aio.models.generate_content = AsyncMock(side_effect=RuntimeError("quota exhausted"))

        with pytest.raises(ProviderError, match="Gemini API error: RuntimeError: quota exhausted"):
            await GeminiProvider(ProviderConfig(api_keys=["AIza-key"])).analyze_code("diff", CONTEXT)
