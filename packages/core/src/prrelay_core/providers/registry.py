from __future__ import annotations

import logging

from prrelay_core.config import normalize_provider_name
from prrelay_core.providers.anthropic import ClaudeProvider
from prrelay_core.providers.base import BaseProvider, ProviderConfig
from prrelay_core.providers.gemini import GeminiProvider
from prrelay_core.providers.openai import OpenAIProvider

logger = logging.getLogger(__name__)

PROVIDER_CLASSES: dict[str, type[BaseProvider]] = {
    "openai": OpenAIProvider,
    "claude": ClaudeProvider,
    "gemini": GeminiProvider,
}


def build_providers(config: dict) -> list[BaseProvider]:
    """Instantiate the providers listed in ``config["providers"]``, in order.

    A provider with no API keys is skipped with a warning so that a partially
    configured run can still use the others.
    """
    models = config.get("models") or {}
    providers: list[BaseProvider] = []
    for name in config.get("providers", []):
        key = normalize_provider_name(name)
        api_keys = config.get(f"{key}_api_keys") or []
        if not api_keys:
            logger.warning("No API keys configured for %s; skipping it.", key)
            continue
        provider_cls = PROVIDER_CLASSES[key]
        providers.append(
            provider_cls(
                ProviderConfig(
                    api_keys=list(api_keys),
                    model=models.get(key),
                    max_tokens=config.get("max_tokens"),
                    timeout=config.get("timeout"),
                )
            )
        )
    return providers
