from __future__ import annotations

from google import genai
from google.genai import types

from prrelay_core.providers.base import BaseProvider


class GeminiProvider(BaseProvider):
    name = "Gemini"
    DEFAULT_MODEL = "gemini-2.5-flash"
    DEFAULT_TEMPERATURE = 0.3
    CONFIDENCE = 0.82

    def _create_client(self, api_key: str) -> genai.Client:
        # HttpOptions.timeout is in milliseconds.
        return genai.Client(api_key=api_key, http_options=types.HttpOptions(timeout=int(self.timeout * 1000)))

    async def _call_api(self, client: genai.Client, system_prompt: str, user_prompt: str) -> str:
        response = await client.aio.models.generate_content(
            model=self.model,
            contents=user_prompt,
            config=types.GenerateContentConfig(
                system_instruction=system_prompt,
                temperature=self.temperature,
                max_output_tokens=self.max_tokens,
            ),
        )
        return (response.text or "").strip()
