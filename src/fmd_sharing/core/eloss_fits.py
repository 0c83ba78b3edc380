"""
Energy-loss fit parameters used to derive the sharing cuts.

For every ring and pseudo-rapidity bin the energy-loss distribution is
described by the most probable value Δp, the Landau width ξ and a Gaussian
smearing σ.  The fits themselves are produced elsewhere; this module only
stores, reads and queries them.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
from astropy.io import fits

from fmd_sharing.core.geometry import RINGS, Ring
from fmd_sharing.core.utils.log_utils import log
from fmd_sharing.types import FloatArray


class CalibrationError(RuntimeError):
    """Raised when calibration parameters are missing or unusable."""


@dataclass(frozen=True)
class EtaAxis:
    """Fixed-width pseudo-rapidity binning."""

    n_bins: int
    eta_min: float
    eta_max: float

    def __post_init__(self) -> None:
        if self.n_bins <= 0:
            raise ValueError(f"Eta axis needs at least one bin, got {self.n_bins}")
        if self.eta_max <= self.eta_min:
            raise ValueError(
                f"Invalid eta axis range [{self.eta_min}, {self.eta_max}]"
            )

    @property
    def width(self) -> float:
        return (self.eta_max - self.eta_min) / self.n_bins

    @property
    def centers(self) -> FloatArray:
        return self.eta_min + (np.arange(self.n_bins) + 0.5) * self.width

    @property
    def edges(self) -> FloatArray:
        return np.linspace(self.eta_min, self.eta_max, self.n_bins + 1)

    def find_bin(self, eta):
        """0-based bin index; -1 for underflow and n_bins for overflow."""
        idx = np.floor((np.asarray(eta, dtype=float) - self.eta_min) / self.width)
        idx = np.clip(idx, -1, self.n_bins).astype(int)
        return int(idx) if idx.ndim == 0 else idx


@dataclass(frozen=True)
class FitParameters:
    delta: float
    xi: float
    sigma: float


@dataclass
class RingELossFit:
    """Fit parameters of one ring, one entry per eta bin (NaN = no fit)."""

    delta: FloatArray
    xi: FloatArray
    sigma: FloatArray

    def __post_init__(self) -> None:
        self.delta = np.asarray(self.delta, dtype=float)
        self.xi = np.asarray(self.xi, dtype=float)
        self.sigma = np.asarray(self.sigma, dtype=float)
        if not (self.delta.shape == self.xi.shape == self.sigma.shape):
            raise ValueError("delta, xi and sigma must have the same length")

    @property
    def valid(self):
        return np.isfinite(self.delta) & (self.delta > 0)


class ELossFits:
    """Energy-loss fits for all rings on a common eta axis."""

    def __init__(
        self,
        eta_axis: EtaAxis,
        rings: dict[str, RingELossFit],
        low_cut: float = 0.4,
        max_search: int = 3,
    ) -> None:
        for name, fit in rings.items():
            if fit.delta.shape != (eta_axis.n_bins,):
                raise ValueError(
                    f"{name}: {fit.delta.shape[0]} fit bins for an eta axis of "
                    f"{eta_axis.n_bins} bins"
                )
        self.eta_axis = eta_axis
        self.rings = rings
        self.low_cut = low_cut
        self.max_search = max_search

    def _ring_fit(self, ring: Ring) -> RingELossFit:
        try:
            return self.rings[ring.name]
        except KeyError:
            raise CalibrationError(f"No energy-loss fits for {ring.name}") from None

    def find_fit(self, ring: Ring, eta: float) -> FitParameters | None:
        """
        Fit parameters at ``eta``.

        If the bin holding ``eta`` has no fit, the closest fitted bin within
        ``max_search`` bins is used instead.
        """
        fit = self._ring_fit(ring)
        b = self.eta_axis.find_bin(eta)
        if b < 0 or b >= self.eta_axis.n_bins:
            return None
        valid = fit.valid
        for distance in range(self.max_search + 1):
            for candidate in (b - distance, b + distance):
                if 0 <= candidate < self.eta_axis.n_bins and valid[candidate]:
                    return FitParameters(
                        float(fit.delta[candidate]),
                        float(fit.xi[candidate]),
                        float(fit.sigma[candidate]),
                    )
        return None

    def lower_bound(
        self, ring: Ring, eta: float, n_xi: float, include_sigma: bool = True
    ) -> float:
        """Δp - n_xi (ξ + σ); NaN if there is no fit."""
        params = self.find_fit(ring, eta)
        if params is None:
            return float("nan")
        width = params.xi + (params.sigma if include_sigma else 0.0)
        return params.delta - n_xi * width

    def mpv_fraction(self, ring: Ring, eta: float, fraction: float) -> float:
        params = self.find_fit(ring, eta)
        if params is None:
            return float("nan")
        return fraction * params.delta

    # --- persistence ---
    def write(self, path: Path | str) -> Path:
        path = Path(path)
        primary = fits.PrimaryHDU()
        primary.header["ETANBINS"] = self.eta_axis.n_bins
        primary.header["ETAMIN"] = self.eta_axis.eta_min
        primary.header["ETAMAX"] = self.eta_axis.eta_max
        primary.header["LOWCUT"] = (self.low_cut, "Lower bound of the fit range")
        hdus: list = [primary]
        for name, fit in self.rings.items():
            hdus.append(
                fits.BinTableHDU.from_columns(
                    [
                        fits.Column(name="DELTA", format="D", array=fit.delta),
                        fits.Column(name="XI", format="D", array=fit.xi),
                        fits.Column(name="SIGMA", format="D", array=fit.sigma),
                    ],
                    name=name,
                )
            )
        path.parent.mkdir(parents=True, exist_ok=True)
        fits.HDUList(hdus).writeto(path, overwrite=True)
        log.info(f"Saved energy-loss fits to {path}")
        return path

    @classmethod
    def read(cls, path: Path | str, max_search: int = 3) -> ELossFits:
        path = Path(path)
        if not path.exists():
            raise CalibrationError(f"Energy-loss fit file not found: {path}")

        with fits.open(path) as hdul:
            header = hdul[0].header
            try:
                axis = EtaAxis(
                    int(header["ETANBINS"]),
                    float(header["ETAMIN"]),
                    float(header["ETAMAX"]),
                )
            except KeyError as err:
                raise CalibrationError(f"{path.name}: missing eta axis {err}") from err
            low_cut = float(header.get("LOWCUT", 0.4))

            rings: dict[str, RingELossFit] = {}
            for ring in RINGS:
                if ring.name not in hdul:
                    raise CalibrationError(f"{path.name}: no fits for {ring.name}")
                data = hdul[ring.name].data
                rings[ring.name] = RingELossFit(
                    delta=np.array(data["DELTA"], dtype=float),
                    xi=np.array(data["XI"], dtype=float),
                    sigma=np.array(data["SIGMA"], dtype=float),
                )

        log.info(
            f"Loaded energy-loss fits from {path} "
            f"({axis.n_bins} eta bins in [{axis.eta_min}, {axis.eta_max}])"
        )
        return cls(axis, rings, low_cut=low_cut, max_search=max_search)
