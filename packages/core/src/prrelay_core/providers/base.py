"""Base provider implementing the Template Method pattern.

All providers share the same analysis algorithm:
    analyze_code() → pick the current API key
                   → _build_system_prompt() + _build_user_prompt()
                   → _call_api()   ← only this (and _create_client) differs per provider
                   → _parse()
                   → advance to the next API key

Subclasses implement two things only:
  - _create_client: build one SDK client for one API key
  - _call_api: make one raw API call and return the text response

Each provider owns a pool of API keys and rotates through it round-robin,
moving on after every call whether it succeeded or not. This ring is private
to the provider and independent of the provider-level rotation done by
ProviderManager.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from prrelay_core.errors import ProviderError, ProviderResponseError
from prrelay_core.models import ReviewContext, ReviewResult, ReviewSuggestion, Severity

logger = logging.getLogger(__name__)

# Shared defaults; subclasses override them as class attributes.
_MAX_TOKENS = 4096
_TEMPERATURE = 0.3
_TIMEOUT_SECONDS = 30.0

_SECRET_PATTERNS = [
    re.compile(r"sk-[A-Za-z0-9_\-]{8,}"),
    re.compile(r"AIza[0-9A-Za-z_\-]{20,}"),
    re.compile(r"(?i)(api[_-]?key|authorization|x-api-key)([\"']?\s*[:=]\s*[\"']?)(?:Bearer\s+)?[^\s\"',}]+"),
]


def redact_secrets(text: str, secrets=()) -> str:
    """Remove API keys from an error message before it is logged or raised."""
    for secret in secrets:
        if secret:
            text = text.replace(secret, "***")
    for pattern in _SECRET_PATTERNS[:2]:
        text = pattern.sub("***", text)
    return _SECRET_PATTERNS[2].sub(lambda m: f"{m.group(1)}{m.group(2)}***", text)


@dataclass
class ProviderConfig:
    api_keys: list[str] = field(default_factory=list)
    model: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    timeout: float | None = None
    name: str | None = None


class BaseProvider(ABC):
    name: str = "Provider"
    DEFAULT_MODEL: str = ""
    DEFAULT_MAX_TOKENS: int = _MAX_TOKENS
    DEFAULT_TEMPERATURE: float = _TEMPERATURE
    DEFAULT_TIMEOUT: float = _TIMEOUT_SECONDS
    # Fixed per provider; reported on every successful ReviewResult.
    CONFIDENCE: float = 0.8

    def __init__(self, config: ProviderConfig):
        if config.name:
            self.name = config.name
        keys = [k.strip() for k in (config.api_keys or []) if isinstance(k, str) and k.strip()]
        if not keys:
            raise ValueError(f"At least one API key is required for {self.name}")

        self.model = config.model or self.DEFAULT_MODEL
        self.max_tokens = config.max_tokens or self.DEFAULT_MAX_TOKENS
        self.temperature = self.DEFAULT_TEMPERATURE if config.temperature is None else config.temperature
        self.timeout = config.timeout or self.DEFAULT_TIMEOUT

        self._api_keys = keys
        self._key_index = 0
        self._clients = [self._create_client(key) for key in keys]

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    async def analyze_code(self, diff: str, context: ReviewContext) -> ReviewResult:
        """Review one diff chunk with the current API key, then rotate keys.

        Every failure (transport error, timeout, empty or unparseable answer)
        is raised as ProviderError with API keys redacted from the message.
        """
        index = self._key_index
        client = self._clients[index]
        logger.debug("%s: analysing %d chars with key %d/%d", self.name, len(diff), index + 1, self.key_count)
        try:
            system = self._build_system_prompt()
            user = self._build_user_prompt(diff, context)
            raw = await self._call_with_timeout(client, system, user)
            if not raw or not raw.strip():
                raise ProviderResponseError(self.name, f"No response from {self.name}")
            return self._parse(raw)
        finally:
            self._advance_key()

    async def health_check(self) -> bool:
        """Send a minimal request with the current key. Never raises."""
        client = self._clients[self._key_index]
        try:
            await self._call_with_timeout(client, "Reply with OK.", "Hi")
            return True
        except ProviderError as e:
            logger.warning("%s health check failed: %s", self.name, e)
            return False

    def get_model_info(self) -> dict[str, Any]:
        return {"model": self.model, "max_tokens": self.max_tokens}

    @property
    def key_count(self) -> int:
        return len(self._api_keys)

    @property
    def current_key_index(self) -> int:
        return self._key_index

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                               #
    # ------------------------------------------------------------------ #

    @abstractmethod
    def _create_client(self, api_key: str) -> Any:
        """Return an SDK client bound to ``api_key``."""

    @abstractmethod
    async def _call_api(self, client: Any, system_prompt: str, user_prompt: str) -> str:
        """Make a single API call and return the raw text response.

        It should raise on failure; analyze_code sanitises and wraps the error.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    def _advance_key(self) -> None:
        self._key_index = (self._key_index + 1) % len(self._api_keys)

    async def _call_with_timeout(self, client: Any, system_prompt: str, user_prompt: str) -> str:
        try:
            return await asyncio.wait_for(self._call_api(client, system_prompt, user_prompt), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise ProviderError(self.name, f"{self.name} API error: request timed out after {self.timeout:g}s") from None
        except ProviderError:
            raise
        except Exception as e:
            message = redact_secrets(str(e), self._api_keys)
            # Never chained: SDK exceptions may hold request headers.
            raise ProviderError(self.name, f"{self.name} API error: {type(e).__name__}: {message}") from None

    def _build_system_prompt(self) -> str:
        return """You are a strict and precise senior code reviewer.
Review the pull request diff and report concrete problems.

Rules:
- Focus on added lines (starting with '+') for direct issues.
- Also consider implications of removed lines (starting with '-').
- Look for security vulnerabilities, performance problems, bugs, unhandled edge cases
  and maintainability issues.
- Do not comment on code that already follows best practices.
- Avoid assumptions when context is unclear. Be concise and actionable."""

    def _build_user_prompt(self, diff: str, context: ReviewContext) -> str:
        files = "\n".join(f"- {f}" for f in context.files) or "- (not provided)"
        return f"""Repository: {context.repository}
PR Number: {context.pr_number}
Branch: {context.branch}

## Files in this pull request
{files}

## Diff
```diff
{diff}
```

### Output Format:
Respond with **only** a valid JSON object:

{{
  "summary": "<brief summary of your review>",
  "suggestions": [
    {{
      "file": "<path of the file>",
      "line": <line number in the new file (integer, 1-based)>,
      "severity": "<low|medium|high>",
      "message": "<description of the issue>",
      "suggestion": "<how to fix it (optional)>"
    }}
  ]
}}

If there are no issues, return an empty "suggestions" list.
Do not return any text outside the JSON object."""

    def _parse(self, raw: str) -> ReviewResult:
        """Turn the model's text into a ReviewResult or raise ProviderResponseError."""
        cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
        cleaned = re.sub(r"\s*```$", "", cleaned.strip())
        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError:
            # Some models wrap the object in prose; fall back to the outermost braces.
            match = re.search(r"\{[\s\S]*\}", raw)
            if not match:
                raise ProviderResponseError(self.name, f"{self.name} returned no JSON object") from None
            try:
                data = json.loads(match.group(0))
            except json.JSONDecodeError as e:
                raise ProviderResponseError(self.name, f"{self.name} returned invalid JSON: {e.msg}") from None

        if not isinstance(data, dict):
            raise ProviderResponseError(self.name, f"{self.name} returned {type(data).__name__}, expected an object")

        summary = data.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            summary = f"{self.name} review completed"

        items = data.get("suggestions") or []
        if not isinstance(items, list):
            logger.warning("%s: 'suggestions' is not a list, ignoring it", self.name)
            items = []

        suggestions = tuple(s for s in (self._to_suggestion(item) for item in items) if s is not None)
        return ReviewResult(summary=summary.strip(), suggestions=suggestions, confidence=self.CONFIDENCE)

    def _to_suggestion(self, item) -> ReviewSuggestion | None:
        if not isinstance(item, dict):
            return None
        file = str(item.get("file") or "").strip()
        message = str(item.get("message") or "").strip()
        try:
            line = int(item.get("line"))
        except (TypeError, ValueError):
            line = 0
        if not file or not message or line < 1:
            logger.debug("%s: dropping incomplete suggestion %r", self.name, item)
            return None
        fix = item.get("suggestion")
        return ReviewSuggestion(
            file=file,
            line=line,
            severity=Severity.coerce(item.get("severity")),
            message=message,
            suggestion=str(fix).strip() if fix else None,
        )
