"""CLI entry point for prrelay.

Commands:
  review   run the chunked multi-provider review on a pull request
  chunks   preview how a diff file would be split into chunks
"""

from __future__ import annotations

import importlib.metadata
import logging

import click
from rich.console import Console
from rich.logging import RichHandler

from prrelay_cli.commands.chunks import chunks_cmd
from prrelay_cli.commands.review import review_cmd


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=verbose)],
        force=True,
    )
    # SDK transports are chatty at DEBUG and may echo request headers.
    for name in ("httpx", "httpcore", "openai", "anthropic", "google_genai", "urllib3"):
        logging.getLogger(name).setLevel(logging.WARNING)


@click.group()
@click.version_option(
    version=importlib.metadata.version("prrelay"),
    prog_name="prrelay",
)
@click.option(
    "--config",
    "config_path",
    default=".prrelay.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="PRRELAY_CONFIG",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, verbose: bool):
    """Chunked, multi-provider AI review for GitHub pull requests."""
    _configure_logging(verbose)

    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


main.add_command(review_cmd)
main.add_command(chunks_cmd)
