"""Value types passed between the chunker, the providers and the review pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def coerce(cls, value, default: Severity | None = None) -> Severity:
        """Map a loosely-typed severity from a model response onto the enum.

        Unknown values fall back to ``default`` (MEDIUM when not given) rather
        than dropping the suggestion.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default or cls.MEDIUM


@dataclass(frozen=True)
class DiffChunk:
    """One bounded-size piece of a diff, safe to hand to a single provider call."""

    content: str
    files: tuple[str, ...] = ()
    size: int = 0

    @property
    def is_empty(self) -> bool:
        return self.size == 0 and not self.content


# Returned (as the only element) for an empty or whitespace-only diff.
EMPTY_CHUNK = DiffChunk(content="", files=(), size=0)


@dataclass(frozen=True)
class ReviewContext:
    pr_number: int
    repository: str
    branch: str
    files: tuple[str, ...] = ()


def build_context(pr_number: int, repository: str, branch: str, files) -> ReviewContext:
    """Validate the inputs and return an immutable ReviewContext.

    Raises ValueError with a "Failed to build review context" prefix so the
    CLI can surface the problem as a usage error.
    """
    try:
        if isinstance(pr_number, bool) or not isinstance(pr_number, int) or pr_number <= 0:
            raise ValueError("PR number must be a positive number")
        if not isinstance(repository, str) or not repository.strip():
            raise ValueError("Repository must be a non-empty string")
        if not isinstance(branch, str) or not branch.strip():
            raise ValueError("Branch must be a non-empty string")
        if files is None or isinstance(files, str):
            raise ValueError("Files must be a list of paths")
        files = tuple(files)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Failed to build review context: {e}") from e

    return ReviewContext(
        pr_number=pr_number,
        repository=repository.strip(),
        branch=branch.strip(),
        files=files,
    )


@dataclass(frozen=True)
class ReviewSuggestion:
    file: str
    line: int
    severity: Severity
    message: str
    suggestion: str | None = None


@dataclass(frozen=True)
class ReviewResult:
    summary: str
    suggestions: tuple[ReviewSuggestion, ...] = ()
    confidence: float = 0.0

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be between 0.0 and 1.0, got {self.confidence}")


@dataclass
class ProviderStats:
    """Per-provider counters, mutated only by ProviderManager."""

    provider_name: str
    usage_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    last_used: datetime | None = field(default=None)
