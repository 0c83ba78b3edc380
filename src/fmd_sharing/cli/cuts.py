"""
Inspect the sharing cuts (Typer command).
"""

from pathlib import Path

import typer
from rich.table import Table

from fmd_sharing.cli.filter_events import build_cuts
from fmd_sharing.core.cuts import build_cut_tables
from fmd_sharing.core.eloss_fits import CalibrationError, ELossFits, EtaAxis
from fmd_sharing.core.geometry import RINGS, ring_by_name
from fmd_sharing.core.sharing import SharingConfig
from fmd_sharing.core.utils.log_utils import console, log, section, set_verbosity


def show_cuts(
    fits_file: Path | None = typer.Option(
        None, "--fits", "-f", help="Energy-loss fit file used to derive the cuts."
    ),
    low_cut: float = typer.Option(0.15, "--low-cut", help="Fixed low cut."),
    low_nxi: float = typer.Option(-1.0, "--low-nxi", help="Low cut n_xi."),
    high_cut: float = typer.Option(0.0, "--high-cut", help="Fixed high cut."),
    high_nxi: float = typer.Option(1.0, "--high-nxi", help="High cut n_xi."),
    high_sigma: bool = typer.Option(
        True, "--high-sigma/--no-high-sigma", help="Include sigma in the high cut."
    ),
    high_mpv_fraction: float = typer.Option(
        0.0, "--high-mpv-fraction", help="High cut as a fraction of the MPV."
    ),
    ring: str | None = typer.Option(
        None, "--ring", "-r", help="Only show this ring (e.g. FMD2I)."
    ),
    step: int = typer.Option(
        10, "--step", min=1, help="Show every N-th eta bin."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose mode."),
):
    """
    Print the low and high cuts per ring and eta bin.
    """
    section("Sharing cuts")
    set_verbosity(log, verbose)

    try:
        config = SharingConfig(
            low_cuts=build_cuts(low_cut, low_nxi, True, 0.0),
            high_cuts=build_cuts(high_cut, high_nxi, high_sigma, high_mpv_fraction),
        )
        rings = [ring_by_name(ring)] if ring else list(RINGS)
        fits = ELossFits.read(fits_file) if fits_file is not None else None
        if config.needs_fits and fits is None:
            raise CalibrationError("Energy-loss fits are required by the configured cuts")
        low_table, high_table = build_cut_tables(
            config.low_cuts, config.high_cuts, EtaAxis(200, -4.0, 6.0), fits
        )
    except (CalibrationError, ValueError) as err:
        log.error(str(err))
        raise typer.Exit(code=1) from err

    config.describe(console)

    table = Table(title="Cuts per eta bin", header_style="bold magenta")
    table.add_column("eta", justify="right", style="cyan")
    for r in rings:
        table.add_column(f"{r.name} low", justify="right", style="green")
        table.add_column(f"{r.name} high", justify="right", style="yellow")

    centers = low_table.eta_axis.centers
    for ibin in range(0, len(centers), step):
        row = [f"{centers[ibin]:+.3f}"]
        for r in rings:
            low = low_table.column(r)[ibin]
            high = high_table.column(r)[ibin]
            row.append(f"{low:.3f}" if low > 0 else "-")
            row.append(f"{high:.3f}" if high > 0 else "-")
        table.add_row(*row)
    console.print(table)
