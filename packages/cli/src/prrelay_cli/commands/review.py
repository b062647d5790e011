"""review command: run the chunked multi-provider review on a pull request."""

from __future__ import annotations

import click
from github import GithubException
from rich.console import Console

from prrelay_core.errors import ProviderError
from prrelay_core.gh.pull_request import get_pull_requests, get_repo
from prrelay_core.providers.registry import build_providers
from prrelay_core.reviewer import run_review

console = Console()


@click.command("review")
@click.option("--repo", required=True, help="GitHub repository in owner/name format.")
@click.option(
    "--pr",
    "pr_number",
    type=int,
    default=None,
    help="Pull request number. Omit to list open PRs interactively.",
)
@click.option(
    "--providers",
    default=None,
    help="Comma-separated providers in rotation order (openai, claude, gemini). Overrides config file.",
)
@click.option(
    "--chunk-size",
    "chunk_size",
    type=int,
    default=None,
    help="Maximum characters of diff per provider call. Overrides config file.",
)
@click.option(
    "--fail-fast/--no-fail-fast",
    "fail_fast",
    default=None,
    help="Stop at the first provider failure instead of failing over. Overrides config file.",
)
@click.option(
    "--shadow",
    "-s",
    is_flag=True,
    help="Dry-run mode: print the review summary without posting to GitHub.",
)
@click.pass_context
def review_cmd(
    ctx,
    repo: str,
    pr_number: int | None,
    providers: str | None,
    chunk_size: int | None,
    fail_fast: bool | None,
    shadow: bool,
):
    """Review a pull request with a rotating pool of AI providers.

    The PR diff is split into chunks, each chunk goes to the next provider
    in rotation (failing over to the others on error), and the findings are
    posted as one summary comment plus a line comment per suggestion.

    \b
    Required environment variables:
      GITHUB_TOKEN / GH_TOKEN               GitHub token (or use gh CLI)
      OPENAI_API_KEYS / OPENAI_API_KEY      for the openai provider
      CLAUDE_API_KEYS / ANTHROPIC_API_KEY   for the claude provider
      GEMINI_API_KEYS / GEMINI_API_KEY      for the gemini provider
    """
    from prrelay_cli.auth import resolve_github_token
    from prrelay_core.config import load_config

    config_path = (ctx.obj or {}).get("config_path", ".prrelay.yml")
    try:
        config = load_config(
            config_path,
            cli_overrides={"providers": providers, "chunk_size": chunk_size, "fail_fast": fail_fast},
        )
    except ValueError as e:
        raise click.UsageError(str(e))

    # Resolve token: env var first, then gh CLI session.
    token = resolve_github_token()
    if not token:
        raise click.UsageError(
            "No GitHub token found. Set GITHUB_TOKEN (or GH_TOKEN) or run `gh auth login` first.\n"
            "Create a token at https://github.com/settings/tokens"
        )
    config["github_token"] = token

    handles = build_providers(config)
    if not handles:
        raise click.UsageError(
            f"No API keys found for any of: {', '.join(config['providers'])}. "
            "Set OPENAI_API_KEYS, CLAUDE_API_KEYS or GEMINI_API_KEYS."
        )

    try:
        this_repo = get_repo(repo, token=token)
        prs = list(get_pull_requests(this_repo)) if pr_number is None else None
    except GithubException as e:
        message = e.data.get("message") if isinstance(e.data, dict) else None
        raise click.ClickException(f"Could not access {repo} on GitHub ({e.status}: {message or e}).")

    if pr_number is None:
        if not prs:
            console.print("[yellow]No open pull requests found.[/yellow]")
            return
        console.print("\nOpen pull requests:")
        for pr in prs:
            console.print(f"  [bold]#{pr.number}[/bold]  {pr.title}")
        pr_number = click.prompt("\nEnter the pull request number", type=int)

    try:
        summary = run_review(
            repo=repo,
            pr_number=pr_number,
            config=config,
            shadow=shadow,
            repo_obj=this_repo,
            providers=handles,
        )
    except ProviderError as e:
        raise click.ClickException(f"Review aborted: {e}")
    except ValueError as e:
        raise click.ClickException(str(e))
    except GithubException as e:
        raise click.ClickException(f"GitHub API error while reviewing {repo}#{pr_number}: {e.status}")

    if summary is not None and summary.chunks_total and summary.chunks_failed == summary.chunks_total:
        raise click.ClickException("Every chunk failed on every provider; see the log for details.")
