"""Visualization utilities for the sharing filter diagnostics."""

import logging
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.figure import Figure

from fmd_sharing.core.geometry import RINGS

from .histograms import Histogram1D, SharingHistograms, TerminateResult

logger = logging.getLogger(__name__)

# One colour per ring, FMD1I ... FMD3O
RING_COLORS = {
    "FMD1I": "#D62728",
    "FMD2I": "#2CA02C",
    "FMD2O": "#98DF8A",
    "FMD3I": "#1F77B4",
    "FMD3O": "#AEC7E8",
}


def plot_diagnostics(
    histograms: SharingHistograms,
    result: TerminateResult | None = None,
    output_dir: Path | None = None,
    save_plots: bool = False,
    show: bool = False,
) -> list[Figure]:
    """
    Generate the diagnostic plots of a sharing run.

    Parameters
    ----------
    histograms : SharingHistograms
        Accumulated (possibly merged) histograms
    result : TerminateResult, optional
        Normalised output; adds the per-ring eta distributions and cut plots
    output_dir : Path, optional
        Where to save the figures
    save_plots : bool
        Whether to save plots to disk
    show : bool
        Display the figures

    Returns
    -------
    list of Figure
    """
    logger.info("Generating diagnostic plots")

    figures = [
        _plot_energy_loss(histograms),
        _plot_cluster_spectra(histograms),
    ]
    if result is not None:
        figures.append(_plot_sums(result.sums))
        if result.low_cuts is not None and result.high_cuts is not None:
            figures.append(_plot_cuts(result))

    if save_plots:
        if output_dir is None:
            raise ValueError("An output directory is needed to save the plots")
        _save_all_plots(figures, output_dir)

    if show:
        plt.show()
    return figures


def _step(ax, hist: Histogram1D, **kwargs) -> None:
    ax.stairs(hist.contents, hist.edges, **kwargs)


def _log_scale(ax, *hists: Histogram1D) -> None:
    """Log y axis, only when there is something positive to show."""
    if any(hist.contents.max() > 0 for hist in hists):
        ax.set_yscale("log")


def _plot_energy_loss(histograms: SharingHistograms) -> Figure:
    """Signal distributions before and after the sharing correction."""
    fig, axes = plt.subplots(len(RINGS), 1, figsize=(8, 12), sharex=True)
    for ax, ring in zip(axes, RINGS, strict=True):
        histos = histograms.rings[ring.name]
        color = RING_COLORS[ring.name]
        _step(ax, histos.before, color="black", linestyle="--", label="Reconstruction")
        _step(ax, histos.after, color=color, fill=True, alpha=0.5, label="Corrected")
        _log_scale(ax, histos.before, histos.after)
        ax.set_ylabel(ring.name)
        ax.grid(alpha=0.3)
        if ring.index == 0:
            ax.legend(loc="upper right")
    axes[-1].set_xlabel(r"$\Delta E/\Delta E_{mip}$")
    fig.suptitle("Energy loss before and after sharing correction")
    fig.tight_layout()
    return fig


def _plot_cluster_spectra(histograms: SharingHistograms) -> Figure:
    """Single, double and triple strip cluster spectra per ring."""
    fig, axes = plt.subplots(len(RINGS), 1, figsize=(8, 12), sharex=True)
    for ax, ring in zip(axes, RINGS, strict=True):
        histos = histograms.rings[ring.name]
        _step(ax, histos.single, color="#1F77B4", label="Single")
        _step(ax, histos.double, color="#FF7F0E", label="Double")
        _step(ax, histos.triple, color="#2CA02C", label="Triple")
        _log_scale(ax, histos.single, histos.double, histos.triple)
        ax.set_ylabel(ring.name)
        ax.grid(alpha=0.3)
        if ring.index == 0:
            ax.legend(loc="upper right")
    axes[-1].set_xlabel(r"$\Delta/\Delta_{mip}$")
    fig.suptitle("Energy loss by cluster size")
    fig.tight_layout()
    return fig


def _plot_sums(sums: dict[str, Histogram1D]) -> Figure:
    """Summed signal per unit eta and event, one curve per ring."""
    fig, ax = plt.subplots(figsize=(9, 5))
    for name, hist in sums.items():
        _step(ax, hist, color=RING_COLORS.get(name, "gray"), label=name, linewidth=1.5)
    ax.set_xlabel(r"$\eta$")
    ax.set_ylabel(r"$\sum \Delta/\Delta_{mip}$")
    ax.set_title("Sum of ring signals")
    ax.legend()
    ax.grid(alpha=0.3)
    fig.tight_layout()
    return fig


def _plot_cuts(result: TerminateResult) -> Figure:
    """Low and high cuts as a function of eta."""
    fig, ax = plt.subplots(figsize=(9, 5))
    assert result.low_cuts is not None and result.high_cuts is not None
    centers = result.low_cuts.eta_axis.centers
    for ring in RINGS:
        color = RING_COLORS[ring.name]
        low = result.low_cuts.column(ring)
        high = result.high_cuts.column(ring)
        ax.plot(centers, np.where(low > 0, low, np.nan), color=color, linestyle=":")
        ax.plot(
            centers, np.where(high > 0, high, np.nan), color=color, label=ring.name
        )
    ax.set_xlabel(r"$\eta$")
    ax.set_ylabel(r"Cut ($\Delta E/\Delta E_{mip}$)")
    ax.set_title("Cuts used (solid: high, dotted: low)")
    ax.legend()
    ax.grid(alpha=0.3)
    fig.tight_layout()
    return fig


def _save_all_plots(figures: list[Figure], output_dir: Path) -> list[Path]:
    """Save the given figures as PNG files."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    saved: list[Path] = []
    for i, fig in enumerate(figures):
        filename = output_dir / f"sharing_diagnostic_{i + 1}.png"
        fig.savefig(filename, dpi=150, bbox_inches="tight")
        logger.info(f"Saved plot to {filename}")
        saved.append(filename)
    return saved
