"""Low and high multiplicity cuts as a function of ring and pseudo-rapidity."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

import numpy as np

from fmd_sharing.core.eloss_fits import CalibrationError, ELossFits, EtaAxis
from fmd_sharing.core.geometry import RINGS, Ring
from fmd_sharing.core.utils.log_utils import log
from fmd_sharing.types import FloatArray


@dataclass
class MultCuts:
    """
    How to derive a signal cut.

    The first applicable rule wins:

    1. a positive fixed cut for the ring;
    2. ``mpv_fraction > 0``: that fraction of the most probable value;
    3. ``n_xi < 0``: the lower bound of the energy-loss fit range;
    4. otherwise Δp - n_xi (ξ + σ), σ only with ``include_sigma``.
    """

    fixed: float | Mapping[str, float] = 0.0
    n_xi: float = 0.0
    include_sigma: bool = False
    mpv_fraction: float = 0.0

    def fixed_cut(self, ring: Ring) -> float:
        if isinstance(self.fixed, Mapping):
            return float(self.fixed.get(ring.name, 0.0))
        return float(self.fixed)

    @property
    def needs_fits(self) -> bool:
        return any(self.fixed_cut(ring) <= 0 for ring in RINGS)

    def method(self, ring: Ring) -> str:
        if self.fixed_cut(ring) > 0:
            return f"fixed {self.fixed_cut(ring):g}"
        if self.mpv_fraction > 0:
            return f"{self.mpv_fraction:g} x MPV"
        if self.n_xi < 0:
            return "fit range"
        sigma = " + sigma" if self.include_sigma else ""
        return f"MPV - {self.n_xi:g} (xi{sigma})"

    def get_mult_cut(
        self, ring: Ring, eta: float, fits: ELossFits | None = None
    ) -> float:
        fixed = self.fixed_cut(ring)
        if fixed > 0:
            return fixed
        if fits is None:
            raise CalibrationError(
                f"Cut for {ring.name} needs energy-loss fits ({self.method(ring)})"
            )
        if self.mpv_fraction > 0:
            return fits.mpv_fraction(ring, eta, self.mpv_fraction)
        if self.n_xi < 0:
            return fits.low_cut
        return fits.lower_bound(ring, eta, self.n_xi, self.include_sigma)

    def per_bin(self, ring: Ring, fits: ELossFits) -> FloatArray:
        """Cut at the centre of every eta bin of the fits."""
        return np.array(
            [self.get_mult_cut(ring, float(eta), fits) for eta in fits.eta_axis.centers]
        )

    def cut_per_strip(
        self,
        ring: Ring,
        eta: FloatArray,
        fits: ELossFits | None = None,
        per_bin: FloatArray | None = None,
    ) -> FloatArray:
        """
        Cuts for an array of eta values (one per strip).

        Outside the eta range of the fits the cut is NaN, so that no
        comparison against it succeeds.
        """
        eta = np.asarray(eta, dtype=float)
        fixed = self.fixed_cut(ring)
        if fixed > 0:
            return np.full(eta.shape, fixed)
        if fits is None:
            raise CalibrationError(
                f"Cut for {ring.name} needs energy-loss fits ({self.method(ring)})"
            )
        if self.mpv_fraction <= 0 and self.n_xi < 0:
            return np.full(eta.shape, fits.low_cut)

        if per_bin is None:
            per_bin = self.per_bin(ring, fits)
        n_bins = fits.eta_axis.n_bins
        bins = np.asarray(fits.eta_axis.find_bin(eta))
        inside = (bins >= 0) & (bins < n_bins)
        return np.where(inside, per_bin[np.clip(bins, 0, n_bins - 1)], np.nan)


def default_low_cuts() -> MultCuts:
    return MultCuts(fixed=0.15)


def default_high_cuts() -> MultCuts:
    return MultCuts(n_xi=1.0, include_sigma=True)


@dataclass
class CutTable:
    """Cut values on an (eta bin, ring) grid, rings in the canonical order."""

    name: str
    eta_axis: EtaAxis
    values: FloatArray | None = None

    def __post_init__(self) -> None:
        if self.values is None:
            self.values = np.zeros((self.eta_axis.n_bins, len(RINGS)))
        self.values = np.asarray(self.values, dtype=float)
        if self.values.shape != (self.eta_axis.n_bins, len(RINGS)):
            raise ValueError(
                f"{self.name}: shape {self.values.shape} does not match "
                f"({self.eta_axis.n_bins}, {len(RINGS)})"
            )

    def column(self, ring: Ring) -> FloatArray:
        return self.values[:, ring.index]

    def scaled(self, factor: float) -> CutTable:
        return CutTable(self.name, self.eta_axis, self.values * factor)


def build_cut_tables(
    low: MultCuts,
    high: MultCuts,
    eta_axis: EtaAxis,
    fits: ELossFits | None = None,
) -> tuple[CutTable, CutTable]:
    """
    Evaluate the low and high cuts at the centre of every eta bin.

    The binning of the fits takes precedence over ``eta_axis``.  Cuts that
    are not positive (including missing fits) are left at zero.
    """
    axis = fits.eta_axis if fits is not None else eta_axis
    low_table = CutTable("lowCuts", axis)
    high_table = CutTable("highCuts", axis)

    for ring in RINGS:
        for ibin, eta in enumerate(axis.centers):
            hcut = high.get_mult_cut(ring, float(eta), fits)
            lcut = low.get_mult_cut(ring, float(eta), fits)
            if hcut > 0:
                high_table.values[ibin, ring.index] = hcut
            if lcut > 0:
                low_table.values[ibin, ring.index] = lcut

        n_missing = int(np.sum(high_table.column(ring) <= 0))
        if n_missing:
            log.debug(f"{ring.name}: no high cut in {n_missing}/{axis.n_bins} eta bins")

    return low_table, high_table
