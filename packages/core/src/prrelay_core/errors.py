"""Exception hierarchy shared by providers, the orchestrator and the CLI.

Input validation problems (bad chunk size, no providers, no API keys) are
plain ``ValueError``s raised at construction time. Everything raised while a
review is running derives from ``PrrelayError`` so the CLI can report it
without a traceback.
"""

from __future__ import annotations


class PrrelayError(Exception):
    """Base class for runtime errors raised by prrelay."""


class ProviderError(PrrelayError):
    """A provider invocation failed.

    ``provider`` names the handle that failed. The message is safe to log:
    providers redact API keys before raising.
    """

    def __init__(self, provider: str, message: str):
        super().__init__(message)
        self.provider = provider


class ProviderResponseError(ProviderError):
    """The provider answered, but the answer could not be parsed."""


class AllProvidersFailedError(ProviderError):
    """Every configured provider was tried for one call and none succeeded.

    ``provider`` is the last provider that failed and ``errors`` holds one
    ``(provider_name, exception)`` pair per attempt, in attempt order.
    """

    def __init__(self, provider: str, message: str, errors: list[tuple[str, BaseException]] | None = None):
        super().__init__(provider, message)
        self.errors = list(errors or [])
