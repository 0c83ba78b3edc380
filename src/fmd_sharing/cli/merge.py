"""
Merge and normalise sharing histograms (Typer commands).
"""

from pathlib import Path

import matplotlib.pyplot as plt
import typer
from rich.table import Table

from fmd_sharing.core.pipeline import merge_histogram_files
from fmd_sharing.core.sharing.histograms import SharingHistograms
from fmd_sharing.core.sharing.visualization import plot_diagnostics
from fmd_sharing.core.utils.log_utils import console, log, section, set_verbosity


def merge(
    inputs: list[Path] = typer.Argument(..., help="Histogram files to merge."),
    output: Path = typer.Option(
        Path("sharing_histograms_merged.fits"),
        "--output",
        "-o",
        help="Merged histogram file.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose mode."),
):
    """
    Add up the histograms of several sharing runs.
    """
    section("Merge sharing histograms")
    set_verbosity(log, verbose)

    try:
        merged = merge_histogram_files(inputs)
        merged.write(output)
    except (FileNotFoundError, ValueError, OSError) as err:
        log.error(f"Merge failed: {err}")
        raise typer.Exit(code=1) from err

    console.print(
        f"[green]✓[/green] {len(inputs)} files, {merged.n_events} events -> {output}"
    )


def terminate(
    histogram_file: Path = typer.Argument(..., help="(Merged) histogram file."),
    output_dir: Path = typer.Option(
        Path.cwd() / "sharing_results",
        "--output-dir",
        "-o",
        help="Directory for the normalised results and plots.",
    ),
    n_events: int | None = typer.Option(
        None, "--n-events", "-n", help="Normalise to this many events."
    ),
    plot: bool = typer.Option(True, "--plot/--no-plot", help="Save diagnostic plots."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose mode."),
):
    """
    Normalise accumulated histograms to per-event sums and save plots.
    """
    section("Terminate sharing run")
    set_verbosity(log, verbose)

    try:
        histograms = SharingHistograms.read(histogram_file)
    except (FileNotFoundError, OSError) as err:
        log.error(str(err))
        raise typer.Exit(code=1) from err

    result = histograms.terminate(n_events)
    if result is None:
        log.error("Nothing to normalise")
        raise typer.Exit(code=1)

    result.write(output_dir / "sharing_results.fits")

    table = Table(title="Signal per event", header_style="bold green")
    table.add_column("Ring", style="bold")
    table.add_column("Integral", justify="right", style="cyan")
    for name, hist in result.sums.items():
        table.add_row(name, f"{hist.contents.sum() * hist.bin_width:.3f}")
    console.print(table)

    if plot:
        figures = plot_diagnostics(
            histograms, result, output_dir=output_dir, save_plots=True
        )
        for fig in figures:
            plt.close(fig)

    console.rule("[bold green]Done[/]")
