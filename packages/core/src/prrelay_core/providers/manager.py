"""Round-robin dispatch of review calls across several providers.

ProviderManager keeps one rotation cursor over its providers. Each call to
analyze_code() takes the provider under the cursor and moves the cursor on
before awaiting it, so the next call starts from the next provider whether or
not this one succeeds. On failure the call moves to the following provider,
trying each provider at most once, unless fail_fast is set, in which case the
first failure is raised straight away.

Rotation is deterministic: construction order, no weighting, no backoff.

Not safe for concurrent use. The cursor and the stats are updated from a
single sequential call path; dispatching chunks in parallel would need a lock
around both.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timezone

from prrelay_core.errors import AllProvidersFailedError, ProviderError
from prrelay_core.models import ProviderStats, ReviewContext, ReviewResult
from prrelay_core.providers.base import BaseProvider

logger = logging.getLogger(__name__)


class ProviderManager:
    def __init__(self, providers: list[BaseProvider], fail_fast: bool = False):
        self._providers = [p for p in (providers or []) if p is not None]
        if not self._providers:
            raise ValueError("No valid providers provided")

        names = [p.name for p in self._providers]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Provider names must be unique, got duplicates: {', '.join(duplicates)}")

        self._fail_fast = bool(fail_fast)
        self._index = 0
        self._stats = [ProviderStats(provider_name=name) for name in names]

    @property
    def fail_fast(self) -> bool:
        return self._fail_fast

    @property
    def current_index(self) -> int:
        """Index of the provider the next call will start with."""
        return self._index

    @property
    def provider_names(self) -> list[str]:
        return [p.name for p in self._providers]

    async def analyze_code(self, diff: str, context: ReviewContext) -> ReviewResult:
        """Review one chunk, failing over across providers as configured.

        Raises ProviderError naming the provider under fail_fast, or
        AllProvidersFailedError once every provider has failed for this call.
        """
        errors: list[tuple[str, BaseException]] = []

        for _ in range(len(self._providers)):
            index = self._index
            self._index = (self._index + 1) % len(self._providers)
            provider = self._providers[index]
            stats = self._stats[index]

            try:
                result = await provider.analyze_code(diff, context)
            except Exception as e:
                self._record(stats, success=False)
                errors.append((provider.name, e))
                logger.warning("Provider %s failed: %s", provider.name, e)
                if self._fail_fast:
                    raise ProviderError(provider.name, f"Provider {provider.name} failed: {e}") from e
                continue

            self._record(stats, success=True)
            logger.info("%s completed successfully", provider.name)
            return result

        last_name, last_error = errors[-1]
        raise AllProvidersFailedError(
            last_name,
            f"All {len(errors)} provider(s) failed; last error from {last_name}: {last_error}",
            errors,
        ) from last_error

    def _record(self, stats: ProviderStats, success: bool) -> None:
        stats.usage_count += 1
        if success:
            stats.success_count += 1
        else:
            stats.failure_count += 1
        stats.last_used = datetime.now(timezone.utc)

    def get_usage_stats(self) -> dict[str, int]:
        return {s.provider_name: s.usage_count for s in self._stats}

    def get_detailed_stats(self) -> list[ProviderStats]:
        """Snapshot of every provider's counters, in construction order."""
        return [replace(s) for s in self._stats]

    def reset_stats(self) -> None:
        for stats in self._stats:
            stats.usage_count = 0
            stats.success_count = 0
            stats.failure_count = 0
            stats.last_used = None
