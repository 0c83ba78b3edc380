"""
FMD sharing filter CLI command (Typer-based)
"""

from pathlib import Path

import typer
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
)

from fmd_sharing.core.cuts import MultCuts
from fmd_sharing.core.eloss_fits import CalibrationError
from fmd_sharing.core.pipeline import run_sharing
from fmd_sharing.core.sharing import SharingConfig
from fmd_sharing.core.utils.io_utils import resolve_event_input
from fmd_sharing.core.utils.log_utils import (
    console,
    log,
    section,
    set_verbosity,
    show_cluster_counts,
)


def build_cuts(fixed: float, n_xi: float, include_sigma: bool, mpv_fraction: float):
    return MultCuts(
        fixed=fixed, n_xi=n_xi, include_sigma=include_sigma, mpv_fraction=mpv_fraction
    )


def filter_events(
    events: str = typer.Argument(
        ...,
        help="Event file(s): directory, FITS file, list file, JSON list or glob.",
    ),
    output_dir: Path = typer.Option(
        Path.cwd() / "sharing",
        "--output-dir",
        "-o",
        help="Directory for merged events and histograms (default: ./sharing).",
    ),
    fits_file: Path | None = typer.Option(
        None,
        "--fits",
        "-f",
        help="Energy-loss fit file used to derive the cuts.",
    ),
    dead_file: Path | None = typer.Option(
        None,
        "--dead",
        "-d",
        help="List of extra dead strips (e.g. FMD2I[03,120] per line).",
    ),
    low_cut: float = typer.Option(
        0.15,
        "--low-cut",
        help="Fixed low cut; 0 to derive it from the fits.",
    ),
    low_nxi: float = typer.Option(
        -1.0,
        "--low-nxi",
        help="Low cut as MPV - n (xi + sigma) when no fixed cut (<0: fit range).",
    ),
    high_cut: float = typer.Option(
        0.0,
        "--high-cut",
        help="Fixed high cut; 0 to derive it from the fits.",
    ),
    high_nxi: float = typer.Option(
        1.0,
        "--high-nxi",
        help="High cut as MPV - n (xi + sigma).",
    ),
    high_sigma: bool = typer.Option(
        True,
        "--high-sigma/--no-high-sigma",
        help="Include the Gaussian sigma in the high cut.",
    ),
    high_mpv_fraction: float = typer.Option(
        0.0,
        "--high-mpv-fraction",
        help="High cut as this fraction of the MPV (takes precedence over --high-nxi).",
    ),
    correct_angles: bool = typer.Option(
        False,
        "--correct-angles/--no-correct-angles",
        help="Apply the sharing on angle corrected signals.",
    ),
    three_strip: bool = typer.Option(
        True,
        "--three-strip/--no-three-strip",
        help="Allow merging of three strips.",
    ),
    recalculate_eta: bool = typer.Option(
        False,
        "--recalculate-eta/--no-recalculate-eta",
        help="Recompute eta from the strip position and the event vertex.",
    ),
    invalid_is_empty: bool = typer.Option(
        False,
        "--invalid-is-empty/--no-invalid-is-empty",
        help="Treat invalid signals as empty strips (old reconstructions).",
    ),
    write_events: bool = typer.Option(
        True,
        "--write-events/--no-write-events",
        help="Write the merged events (histograms are always written).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose mode.",
    ),
):
    """
    Run the sharing filter on FMD event files.

    Signals of adjacent strips that most likely come from one particle are
    summed into a single strip.  The merged events and the diagnostic
    histograms are written to the output directory.
    """
    # --- 1. Verbosity and header ---
    section("FMD Sharing Filter")
    set_verbosity(log, verbose)

    # --- 2. Resolve inputs ---
    try:
        input_files, source = resolve_event_input(events)
    except (FileNotFoundError, ValueError) as err:
        log.error(str(err))
        raise typer.Exit(code=1) from err
    log.info(f"Found {len(input_files)} event files ({source})")

    # --- 3. Configuration ---
    try:
        config = SharingConfig(
            correct_angles=correct_angles,
            three_strip_sharing=three_strip,
            recalculate_eta=recalculate_eta,
            invalid_is_empty=invalid_is_empty,
            low_cuts=build_cuts(low_cut, low_nxi, True, 0.0),
            high_cuts=build_cuts(high_cut, high_nxi, high_sigma, high_mpv_fraction),
            debug=1 if verbose else 0,
        )
    except ValueError as err:
        console.print(f"[bold red]✗[/bold red] Configuration error: {err}", style="red")
        raise typer.Exit(code=1) from err

    section("Configuration")
    console.print(f"[cyan]Output directory:[/] {output_dir.resolve()}")
    console.print(f"[cyan]Energy-loss fits:[/] {fits_file or 'none'}")
    console.print(f"[cyan]Dead strips:[/] {dead_file or 'none'}")
    config.describe(console)

    # --- 4. Run ---
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("[cyan]Filtering events...", total=None)
            results = run_sharing(
                input_files=input_files,
                output_dir=output_dir,
                config=config,
                fits_file=fits_file,
                dead_file=dead_file,
                write_output_events=write_events,
                progress=progress,
                task_id=task,
            )
    except CalibrationError as err:
        log.error(f"Calibration error: {err}")
        raise typer.Exit(code=1) from err
    except (FileNotFoundError, ValueError, OSError) as err:
        log.error(f"Sharing filter failed: {err}")
        raise typer.Exit(code=1) from err

    show_cluster_counts(results["counts"], console)
    log.info(
        f"[SUCCESS] {results['n_events']} events filtered, histograms saved to "
        f"{results['histogram_file']}"
    )
    console.rule("[bold green]Sharing filter completed successfully[/]")
