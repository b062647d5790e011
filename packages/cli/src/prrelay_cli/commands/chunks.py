"""chunks command: preview how a diff would be split, without calling any provider."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from prrelay_core.chunker import chunk_diff

console = Console()


@click.command("chunks")
@click.argument("diff_file", type=click.File("r"), default="-")
@click.option(
    "--chunk-size",
    "chunk_size",
    type=int,
    default=None,
    help="Maximum characters per chunk. Defaults to the config file value.",
)
@click.pass_context
def chunks_cmd(ctx, diff_file, chunk_size: int | None):
    """Show the chunks a unified diff would be cut into.

    Reads DIFF_FILE (or stdin when omitted or "-"), e.g.

    \b
      git diff main... | prrelay chunks --chunk-size 4000
    """
    from prrelay_core.config import load_config

    config_path = (ctx.obj or {}).get("config_path", ".prrelay.yml")
    try:
        config = load_config(config_path, cli_overrides={"chunk_size": chunk_size})
    except ValueError as e:
        raise click.UsageError(str(e))
    limit = config["chunk_size"]

    chunks = chunk_diff(diff_file.read(), limit)
    if chunks[0].is_empty:
        console.print("[yellow]The diff is empty. Nothing to chunk.[/yellow]")
        return

    table = Table(title=f"{len(chunks)} chunk(s) at {limit} characters", show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("Files")
    table.add_column("Oversized", justify="center")
    for index, chunk in enumerate(chunks, 1):
        oversized = chunk.size > limit
        table.add_row(
            str(index),
            str(chunk.size),
            "\n".join(chunk.files) or "[dim]-[/dim]",
            "[red]yes[/red]" if oversized else "",
        )
    console.print(table)

    total = sum(c.size for c in chunks)
    console.print(f"  Total size: {total}")
