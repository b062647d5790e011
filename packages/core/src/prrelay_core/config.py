import os
from pathlib import Path
from typing import Optional

import yaml

PROVIDER_NAMES = ("openai", "claude", "gemini")

# Accepted spellings in config files and on the command line.
PROVIDER_ALIASES = {"anthropic": "claude", "google": "gemini"}

DEFAULT_CONFIG: dict = {
    "providers": list(PROVIDER_NAMES),  # tried round-robin in this order
    "chunk_size": 2000,  # max characters of diff per provider call
    "fail_fast": False,  # stop at the first provider failure instead of failing over
    "inline_comments": True,  # also post each suggestion as a line comment on the diff
    "skip_patterns": [],  # fnmatch patterns or directory names to skip (e.g. "dist/", "*.min.js")
    "rate_limit_delay": 0.1,  # minimum seconds between provider calls
    "timeout": 30,  # seconds per provider call
    "max_tokens": None,  # None = provider default
    "models": {},  # per-provider model override, e.g. {"openai": "gpt-4o-mini"}
}

# Environment variables holding API keys, in lookup order. The plural forms
# take a comma- or newline-separated pool that the provider rotates through.
_KEY_ENV_VARS = {
    "openai": ("OPENAI_API_KEYS", "OPENAI_API_KEY"),
    "claude": ("CLAUDE_API_KEYS", "ANTHROPIC_API_KEY"),
    "gemini": ("GEMINI_API_KEYS", "GEMINI_API_KEY"),
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def load_config(config_path: str = ".prrelay.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prrelay.yml in the current directory
      3. CLI argument overrides

    The merged result is validated; a ValueError describes the first bad value.
    """
    config = {
        **DEFAULT_CONFIG,
        "providers": list(DEFAULT_CONFIG["providers"]),
        "skip_patterns": list(DEFAULT_CONFIG["skip_patterns"]),
        "models": dict(DEFAULT_CONFIG["models"]),
    }

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"{config_path} must contain a mapping at the top level")
        config.update(file_config)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    for provider, env_vars in _KEY_ENV_VARS.items():
        raw = next((os.environ[v] for v in env_vars if os.environ.get(v)), None)
        config[f"{provider}_api_keys"] = parse_key_list(raw)

    return validate_config(config)


def parse_key_list(raw) -> list[str]:
    """Split a comma- or newline-separated key string into a clean list."""
    if raw is None:
        return []
    if isinstance(raw, str):
        parts = raw.replace("\n", ",").split(",")
    else:
        parts = [str(p) for p in raw]
    return [p.strip() for p in parts if p and p.strip()]


def normalize_provider_name(name: str) -> str:
    key = str(name).strip().lower()
    key = PROVIDER_ALIASES.get(key, key)
    if key not in PROVIDER_NAMES:
        raise ValueError(f"Unknown provider: {name!r}. Choose from {', '.join(PROVIDER_NAMES)}.")
    return key


def validate_chunk_size(value) -> int:
    """Return ``value`` as a positive int or raise ValueError."""
    if isinstance(value, bool):
        raise ValueError(f"chunk_size must be a positive integer, got {value!r}")
    try:
        size = int(str(value).strip()) if isinstance(value, str) else int(value)
    except (TypeError, ValueError):
        raise ValueError(f"chunk_size must be a positive integer, got {value!r}") from None
    if size != value and not isinstance(value, str):
        raise ValueError(f"chunk_size must be a positive integer, got {value!r}")
    if size <= 0:
        raise ValueError(f"chunk_size must be a positive integer, got {value!r}")
    return size


def _as_bool(key: str, value) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ValueError(f"{key} must be true or false, got {value!r}")


def validate_config(config: dict) -> dict:
    """Normalise and check a merged config dict in place, and return it."""
    providers = config.get("providers")
    if isinstance(providers, str):
        providers = providers.split(",")
    providers = [normalize_provider_name(p) for p in (providers or []) if str(p).strip()]
    if not providers:
        raise ValueError("At least one provider must be configured")
    # Order matters for rotation; duplicates would skew it.
    config["providers"] = list(dict.fromkeys(providers))

    config["chunk_size"] = validate_chunk_size(config.get("chunk_size"))
    config["fail_fast"] = _as_bool("fail_fast", config.get("fail_fast", False))
    config["inline_comments"] = _as_bool("inline_comments", config.get("inline_comments", True))

    skip = config.get("skip_patterns") or []
    if isinstance(skip, str):
        skip = skip.replace("\n", ",").split(",")
    config["skip_patterns"] = [p.strip() for p in skip if isinstance(p, str) and p.strip()]

    try:
        delay = float(config.get("rate_limit_delay") or 0)
        timeout = config.get("timeout")
        timeout = float(DEFAULT_CONFIG["timeout"] if timeout is None else timeout)
    except (TypeError, ValueError):
        raise ValueError("rate_limit_delay and timeout must be numbers") from None
    if delay < 0:
        raise ValueError("rate_limit_delay must not be negative")
    if timeout <= 0:
        raise ValueError("timeout must be positive")
    config["rate_limit_delay"] = delay
    config["timeout"] = timeout

    models = config.get("models") or {}
    if not isinstance(models, dict):
        raise ValueError("models must be a mapping of provider name to model")
    config["models"] = {normalize_provider_name(k): v for k, v in models.items() if v}

    return config
