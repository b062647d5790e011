"""Find the GitHub token prrelay posts reviews with.

Sources, first hit wins:
  1. GITHUB_TOKEN, then GH_TOKEN (Actions injects the first, gh honours the second)
  2. the token of the local gh CLI session (`gh auth token`)
"""

from __future__ import annotations

import logging
import os
import subprocess

logger = logging.getLogger(__name__)

TOKEN_ENV_VARS = ("GITHUB_TOKEN", "GH_TOKEN")

_GH_TIMEOUT = 5


def token_from_env() -> str | None:
    for name in TOKEN_ENV_VARS:
        value = os.environ.get(name, "").strip()
        if value:
            logger.debug("Using GitHub token from %s.", name)
            return value
    return None


def token_from_gh_cli() -> str | None:
    """Ask the gh CLI for its session token; None if gh is missing, logged out or slow."""
    try:
        result = subprocess.run(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=_GH_TIMEOUT,
        )
    except FileNotFoundError:
        logger.debug("gh CLI not installed.")
        return None
    except subprocess.TimeoutExpired:
        logger.debug("gh auth token did not answer within %ds.", _GH_TIMEOUT)
        return None

    token = result.stdout.strip() if result.returncode == 0 else ""
    if not token:
        logger.debug("gh CLI has no usable session (exit code %s).", result.returncode)
        return None
    logger.debug("Using GitHub token from the gh CLI session.")
    return token


def resolve_github_token() -> str | None:
    """Return a GitHub token, or None so the caller can raise a UsageError."""
    return token_from_env() or token_from_gh_cli()
