from __future__ import annotations

from anthropic import AsyncAnthropic
from anthropic.types import TextBlock

from prrelay_core.providers.base import BaseProvider


class ClaudeProvider(BaseProvider):
    name = "Claude"
    DEFAULT_MODEL = "claude-sonnet-4-20250514"
    DEFAULT_TEMPERATURE = 0.3
    CONFIDENCE = 0.85

    def _create_client(self, api_key: str) -> AsyncAnthropic:
        return AsyncAnthropic(api_key=api_key, timeout=self.timeout)

    async def _call_api(self, client: AsyncAnthropic, system_prompt: str, user_prompt: str) -> str:
        response = await client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        text_blocks = [block.text for block in response.content if isinstance(block, TextBlock)]
        return "".join(text_blocks).strip()
