"""Core PR review orchestration.

run_review() is the caller loop around the two core pieces: it renders the
PR's files as one diff, cuts it with chunk_diff(), hands every chunk in turn
to a ProviderManager and folds the results into a single markdown summary.

A chunk that fails on every provider is reported and skipped; the remaining
chunks are still reviewed. Under fail_fast the first provider failure aborts
the whole run instead.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone

from github import GithubException
from rich.console import Console
from rich.markdown import Markdown

from prrelay_core.chunker import chunk_diff
from prrelay_core.errors import ProviderError
from prrelay_core.gh.pull_request import get_files, get_pull, get_repo, post_inline_comments, post_review_comment
from prrelay_core.models import (
    DiffChunk,
    ProviderStats,
    ReviewContext,
    ReviewResult,
    ReviewSuggestion,
    Severity,
    build_context,
)
from prrelay_core.providers.manager import ProviderManager
from prrelay_core.providers.registry import build_providers
from prrelay_core.utils.code import filter_files, is_code_file
from prrelay_core.utils.rate_limit import RateLimiter

console = Console()
logger = logging.getLogger(__name__)

_SEVERITY_ORDER = (Severity.HIGH, Severity.MEDIUM, Severity.LOW)
_SEVERITY_MARKER = {Severity.HIGH: "🔴", Severity.MEDIUM: "🟡", Severity.LOW: "🔵"}


@dataclass
class ChunkFailure:
    index: int
    files: tuple[str, ...]
    error: str


@dataclass
class ChunkReviewOutcome:
    """Per-chunk results of one review run, in chunk order."""

    chunks_total: int = 0
    results: list[ReviewResult] = field(default_factory=list)
    failures: list[ChunkFailure] = field(default_factory=list)

    @property
    def suggestions(self) -> list[ReviewSuggestion]:
        return [s for result in self.results for s in result.suggestions]


@dataclass
class ReviewSummary:
    """Result returned by run_review."""

    repo: str
    pr_number: int
    head_sha: str
    body: str
    posted: bool
    reviewed_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)
    chunks_total: int = 0
    chunks_failed: int = 0
    suggestions: list[ReviewSuggestion] = field(default_factory=list)
    provider_stats: list[ProviderStats] = field(default_factory=list)
    inline_comments_posted: int = 0
    reviewed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


def build_diff_text(files, skip_patterns: list[str]) -> tuple[str, list[str], list[str]]:
    """Render PR files as ``File: <path>`` blocks for the chunker.

    Returns (diff_text, reviewed_paths, skipped_paths). Files without a patch
    (binary, too large for GitHub to inline), non-code files and files
    matching a skip pattern are left out.
    """
    blocks: list[str] = []
    reviewed: list[str] = []
    skipped: list[str] = []
    for file in files:
        filename = file.filename
        patch = file.patch or ""
        if not patch or not is_code_file(filename) or not filter_files([filename], skip_patterns):
            skipped.append(filename)
            continue
        block = f"File: {filename}\n{patch}"
        blocks.append(block if block.endswith("\n") else block + "\n")
        reviewed.append(filename)
    return "".join(blocks), reviewed, skipped


async def review_chunks(
    manager: ProviderManager,
    chunks: list[DiffChunk],
    context: ReviewContext,
    rate_limiter: RateLimiter | None = None,
) -> ChunkReviewOutcome:
    """Send each chunk to ``manager`` in order, one at a time.

    A chunk that exhausts every provider is recorded as a failure and the
    loop moves on. When the manager is fail-fast the error propagates.
    """
    real_chunks = [c for c in chunks if not c.is_empty]
    outcome = ChunkReviewOutcome(chunks_total=len(real_chunks))

    for index, chunk in enumerate(real_chunks, 1):
        logger.info("Analyzing chunk (%d bytes, %d files)", chunk.size, len(chunk.files))
        if rate_limiter is not None:
            await rate_limiter.wait()
        try:
            result = await manager.analyze_code(chunk.content, context)
        except ProviderError as e:
            if manager.fail_fast:
                raise
            logger.warning("Failed to analyze chunk: %s", e)
            outcome.failures.append(ChunkFailure(index=index, files=chunk.files, error=str(e)))
            continue
        outcome.results.append(result)

    return outcome


def format_suggestion(suggestion: ReviewSuggestion) -> str:
    """Render one suggestion as a markdown bullet."""
    marker = _SEVERITY_MARKER.get(suggestion.severity, "⚪")
    text = f"- {marker} **{suggestion.severity.value.upper()}** line {suggestion.line}: {suggestion.message}"
    if suggestion.suggestion:
        text += f"\n  - _Suggestion_: {suggestion.suggestion}"
    return text


def build_inline_comments(suggestions: list[ReviewSuggestion], reviewed_files: list[str]) -> list[dict]:
    """Turn suggestions into line comments for files that are part of the diff.

    Suggestions pointing at another file or at line 0 stay in the summary only.
    """
    reviewed = set(reviewed_files)
    comments = []
    for s in suggestions:
        if s.file not in reviewed or s.line <= 0:
            continue
        marker = _SEVERITY_MARKER.get(s.severity, "⚪")
        body = f"{marker} **{s.severity.value.capitalize()}**: {s.message}"
        if s.suggestion:
            body += f"\n\n**Suggestion**: {s.suggestion}"
        comments.append({"path": s.file, "line": s.line, "body": body})
    return comments


def build_summary(
    outcome: ChunkReviewOutcome,
    provider_stats: list[ProviderStats],
    elapsed_seconds: float = 0.0,
    skipped_files: list[str] | None = None,
) -> str:
    """Build the markdown body posted as the PR's review comment."""
    suggestions = outcome.suggestions
    totals = Counter(s.severity for s in suggestions)

    elapsed_min = elapsed_seconds / 60
    time_str = f"{int(elapsed_seconds)}s" if elapsed_min < 1 else f"{elapsed_min:.1f} min"

    lines = ["## AI Code Review Summary\n"]

    if not suggestions:
        lines.append("> No issues found! Your code looks great.\n")
    else:
        parts = [f"{totals[sev]} {sev.value}" for sev in _SEVERITY_ORDER if totals[sev]]
        lines.append(f"> {len(suggestions)} suggestion(s): {', '.join(parts)}.\n")

    analysed = outcome.chunks_total - len(outcome.failures)
    lines.append(
        f"**{analysed}/{outcome.chunks_total}** chunk(s) analysed"
        + (f", **{len(skipped_files)}** file(s) skipped" if skipped_files else "")
        + f" · reviewed in {time_str}\n"
    )

    # Suggestions grouped by file, in first-seen order, sorted by line within a file.
    by_file: dict[str, list[ReviewSuggestion]] = {}
    for s in suggestions:
        by_file.setdefault(s.file, []).append(s)
    for path, items in by_file.items():
        lines.append(f"### `{path}`\n")
        lines.extend(format_suggestion(s) for s in sorted(items, key=lambda s: s.line))
        lines.append("")

    summaries = [r.summary for r in outcome.results if r.summary]
    if summaries:
        lines.append("<details><summary>Reviewer notes</summary>\n")
        lines.extend(f"- {text}" for text in summaries)
        lines.append("\n</details>\n")

    if outcome.failures:
        lines.append("**Chunks that could not be analysed:**")
        for failure in outcome.failures:
            files = ", ".join(f"`{f}`" for f in failure.files) or "unknown files"
            lines.append(f"- chunk {failure.index} ({files}): {failure.error}")
        lines.append("")

    if provider_stats:
        lines.append("| Provider | Calls | Succeeded | Failed |")
        lines.append("|----------|:-----:|:---------:|:------:|")
        for stats in provider_stats:
            lines.append(
                f"| {stats.provider_name} | {stats.usage_count} | {stats.success_count} | {stats.failure_count} |"
            )

    return "\n".join(lines).rstrip() + "\n"


def print_shadow_summary(body: str) -> None:
    """Print the review body to the terminal without posting to GitHub."""
    console.print("\n[bold]Shadow review (not posted)[/bold]\n")
    console.print(Markdown(body))


def run_review(
    repo: str,
    pr_number: int,
    config: dict,
    shadow: bool = False,
    repo_obj=None,
    providers=None,
) -> ReviewSummary | None:
    """Run the full PR review pipeline and return a ReviewSummary.

    Returns None when the PR has nothing to review. ``providers`` overrides
    the handles built from ``config`` (mainly for tests).
    """
    this_repo = repo_obj if repo_obj is not None else get_repo(repo, token=config["github_token"])

    try:
        this_pr = get_pull(this_repo, pr_number)
    except GithubException:
        raise ValueError(f"PR #{pr_number} not found in {repo}.")

    files = sorted(get_files(this_pr), key=lambda f: f.filename)
    diff_text, reviewed, skipped = build_diff_text(files, config.get("skip_patterns", []))
    for path in skipped:
        console.print(f"  Skipping: {path}")

    chunks = chunk_diff(diff_text, config["chunk_size"])
    if chunks[0].is_empty:
        logger.info("No changes found in PR")
        console.print("[yellow]No changes found in PR. Nothing to review.[/yellow]")
        return None

    context = build_context(pr_number, repo, this_pr.head.ref, reviewed)
    if providers is None:
        providers = build_providers(config)
    manager = ProviderManager(providers, fail_fast=config.get("fail_fast", False))
    limiter = RateLimiter(config.get("rate_limit_delay", 0.0))

    console.print(
        f"Reviewing {len(reviewed)} file(s) in {len(chunks)} chunk(s) "
        f"with {', '.join(manager.provider_names)}"
    )
    review_start = time.monotonic()
    outcome = asyncio.run(review_chunks(manager, chunks, context, limiter))
    elapsed = time.monotonic() - review_start

    stats = manager.get_detailed_stats()
    body = build_summary(outcome, stats, elapsed, skipped)

    inline_posted = 0
    if shadow:
        print_shadow_summary(body)
    else:
        post_review_comment(this_pr, body)
        if config.get("inline_comments", True):
            inline = build_inline_comments(outcome.suggestions, reviewed)
            if inline:
                inline_posted = post_inline_comments(this_pr, inline)
        console.print(
            f"\n[green]Review posted: {len(outcome.suggestions)} suggestion(s) "
            f"from {outcome.chunks_total - len(outcome.failures)}/{outcome.chunks_total} chunk(s), "
            f"{inline_posted} inline comment(s).[/green]"
        )

    return ReviewSummary(
        repo=repo,
        pr_number=pr_number,
        head_sha=this_pr.head.sha,
        body=body,
        posted=not shadow,
        reviewed_files=reviewed,
        skipped_files=skipped,
        chunks_total=outcome.chunks_total,
        chunks_failed=len(outcome.failures),
        suggestions=outcome.suggestions,
        provider_stats=stats,
        inline_comments_posted=inline_posted,
    )
