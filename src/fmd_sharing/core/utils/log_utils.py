"""
Centralized Rich-based logging and console utilities for the FMD sharing filter.
"""

import logging
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

# --- Detect test mode (pytest or typer CliRunner) ---
IS_TEST = "pytest" in sys.modules or "click.testing" in sys.modules

# --- Create a stable console ---
# In test mode, use a dummy stream to avoid ValueError on closed stderr
if IS_TEST:
    from io import StringIO

    _fake_stream = StringIO()
    console = Console(file=_fake_stream, force_terminal=False)
else:
    console = Console()

# --- Configure logging safely ---
if not logging.getLogger().hasHandlers():
    if IS_TEST:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s | %(message)s",
            datefmt="%H:%M:%S",
            handlers=[logging.StreamHandler(sys.stdout)],
        )
    else:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s | %(message)s",
            datefmt="%H:%M:%S",
            handlers=[RichHandler(console=console, rich_tracebacks=True, markup=True)],
        )

# --- Global project logger ---
log = logging.getLogger("fmd_sharing")


def set_verbosity(log, verbose: bool) -> None:
    """Adjust global log level based on verbosity flag."""
    log.setLevel(logging.DEBUG if verbose else logging.INFO)
    log.info(f"Log level set to {'DEBUG' if verbose else 'INFO'}.")


def section(title: str) -> None:
    console.print()
    console.rule(f"[bold cyan]{title}[/]")


def show_cluster_counts(counts, console) -> None:
    """
    Display the number of single, double and triple strip clusters,
    one line per ring plus a total.
    """
    table = Table(
        show_header=True,
        header_style="bold green",
        title_style="bold",
        expand=False,
        title="Sharing Summary",
    )
    table.add_column("Ring", justify="center", style="bold")
    table.add_column("Single", justify="right", style="cyan")
    table.add_column("Double", justify="right", style="magenta")
    table.add_column("Triple", justify="right", style="yellow")

    for name, ring_counts in counts.per_ring.items():
        table.add_row(
            name,
            str(ring_counts.single),
            str(ring_counts.double),
            str(ring_counts.triple),
        )
    table.add_row(
        "[bold]Total[/]",
        str(counts.single),
        str(counts.double),
        str(counts.triple),
    )

    console.print()
    console.print(table, justify="center")
