"""crowdcode inspect command - summarize a persisted chunk."""

from __future__ import annotations

import gzip
import json
from collections import Counter
from pathlib import Path

import click
from pydantic import ValidationError
from rich.table import Table

from crowdcode.core.progress import get_console
from crowdcode.recording.models import ActionEvent
from crowdcode.recording.persistence import Chunk, decode_chunk


def summarize(chunk: Chunk) -> Counter[tuple[str, str]]:
    """Count events by (kind, source-or-type)."""
    counts: Counter[tuple[str, str]] = Counter()
    for event in chunk.events:
        if isinstance(event, ActionEvent):
            counts[(f"action:{event.action.type}", event.source)] += 1
        else:
            counts[(event.kind, "-")] += 1
    return counts


@click.command()
@click.argument("chunk_path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--json", "as_json", is_flag=True, help="Dump the decoded chunk as JSON")
def inspect_command(chunk_path: Path, as_json: bool) -> None:
    """Decode a chunk file and summarize its events.

    CHUNK_PATH is a .json.gz chunk written by 'crowdcode record'.
    """
    try:
        chunk = decode_chunk(chunk_path.read_bytes())
    except (OSError, gzip.BadGzipFile, EOFError) as e:
        raise click.ClickException(f"Cannot read chunk: {e}") from e
    except ValidationError as e:
        raise click.ClickException(f"Malformed chunk: {e.error_count()} error(s)") from e

    if as_json:
        click.echo(json.dumps(chunk.model_dump(mode="json", by_alias=True), indent=2))
        return

    console = get_console()
    sequences = [event.sequence for event in chunk.events]
    console.print(f"Session:  {chunk.session_id}", highlight=False)
    console.print(f"Chunk:    {chunk.chunk_index} (format {chunk.version})", highlight=False)
    if sequences:
        console.print(f"Sequence: {sequences[0]}..{sequences[-1]}", highlight=False)

    table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
    table.add_column("Event")
    table.add_column("Source")
    table.add_column("Count", justify="right")
    for (kind, source), count in sorted(summarize(chunk).items()):
        table.add_row(kind, source, str(count))
    table.add_row("[bold]total[/bold]", "", f"[bold]{len(chunk.events)}[/bold]")
    console.print(table)
