"""
Validate a dead strip list (Typer command).
"""

from collections import Counter
from pathlib import Path

import typer
from rich.table import Table

from fmd_sharing.core.dead_strips import DeadStrips
from fmd_sharing.core.utils.log_utils import console, log, section


def dead(
    dead_file: Path = typer.Argument(..., help="Dead strip list file."),
    show_all: bool = typer.Option(
        False, "--all", "-a", help="List every dead strip."
    ),
):
    """
    Parse a dead strip list and summarise it per ring.
    """
    section("Dead strips")
    try:
        strips = DeadStrips.load(dead_file)
    except (FileNotFoundError, ValueError) as err:
        log.error(str(err))
        raise typer.Exit(code=1) from err

    labels = strips.labels()
    per_ring = Counter(label[:5] for label in labels)

    table = Table(title=dead_file.name, header_style="bold green")
    table.add_column("Ring", style="bold")
    table.add_column("Dead strips", justify="right", style="red")
    for name, count in sorted(per_ring.items()):
        table.add_row(name, str(count))
    table.add_row("[bold]Total[/]", str(len(strips)))
    console.print(table)

    if show_all:
        for label in labels:
            console.print(label)
