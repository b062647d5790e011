from __future__ import annotations

from openai import AsyncOpenAI

from prrelay_core.providers.base import BaseProvider


class OpenAIProvider(BaseProvider):
    name = "OpenAI"
    DEFAULT_MODEL = "gpt-4o"
    # Lower than the other providers to keep the JSON output structured.
    DEFAULT_TEMPERATURE = 0.2
    CONFIDENCE = 0.8

    def _create_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key, timeout=self.timeout)

    async def _call_api(self, client: AsyncOpenAI, system_prompt: str, user_prompt: str) -> str:
        response = await client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        if not response.choices:
            return ""
        return response.choices[0].message.content or ""
