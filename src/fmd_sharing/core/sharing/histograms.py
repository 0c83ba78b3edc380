"""Diagnostic histograms of the sharing filter."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
from astropy.io import fits

from fmd_sharing.core.cuts import CutTable
from fmd_sharing.core.eloss_fits import EtaAxis
from fmd_sharing.core.geometry import RINGS, Ring, ring_by_name
from fmd_sharing.core.utils.log_utils import log
from fmd_sharing.types import FloatArray


def _bin_index(values, n_bins: int, low: float, high: float):
    """Fixed-width bin index of ``values``; -1 for under/overflow."""
    values = np.asarray(values, dtype=float)
    idx = np.floor((values - low) / (high - low) * n_bins)
    inside = np.isfinite(idx) & (idx >= 0) & (idx < n_bins)
    return np.where(inside, idx, -1).astype(int)


@dataclass
class Histogram1D:
    """Fixed-width 1D histogram; entries outside [low, high) are dropped."""

    name: str
    title: str
    n_bins: int
    low: float
    high: float
    contents: FloatArray | None = None
    sumw2: FloatArray | None = None

    def __post_init__(self) -> None:
        if self.contents is None:
            self.contents = np.zeros(self.n_bins)
        self.contents = np.asarray(self.contents, dtype=float)

    @property
    def edges(self) -> FloatArray:
        return np.linspace(self.low, self.high, self.n_bins + 1)

    @property
    def centers(self) -> FloatArray:
        edges = self.edges
        return 0.5 * (edges[:-1] + edges[1:])

    @property
    def bin_width(self) -> float:
        return (self.high - self.low) / self.n_bins

    @property
    def entries(self) -> float:
        return float(self.contents.sum())

    def fill(self, x, weights=None) -> None:
        x = np.atleast_1d(np.asarray(x, dtype=float))
        w = (
            np.ones_like(x)
            if weights is None
            else np.broadcast_to(np.asarray(weights, dtype=float), x.shape)
        )
        idx = _bin_index(x, self.n_bins, self.low, self.high)
        keep = idx >= 0
        np.add.at(self.contents, idx[keep], w[keep])
        if self.sumw2 is not None:
            np.add.at(self.sumw2, idx[keep], w[keep] ** 2)

    def scale(self, factor: float, width: bool = False) -> None:
        """Scale contents; with ``width`` also divide by the bin width."""
        if width:
            factor /= self.bin_width
        self.contents *= factor
        if self.sumw2 is not None:
            self.sumw2 *= factor**2

    def add(self, other: Histogram1D) -> None:
        if (other.n_bins, other.low, other.high) != (self.n_bins, self.low, self.high):
            raise ValueError(f"Incompatible binning when adding {other.name} to {self.name}")
        self.contents += other.contents
        if self.sumw2 is not None and other.sumw2 is not None:
            self.sumw2 += other.sumw2


@dataclass
class Histogram2D:
    """Fixed-width 2D histogram, contents indexed [x bin, y bin]."""

    name: str
    title: str
    nx: int
    x_low: float
    x_high: float
    ny: int
    y_low: float
    y_high: float
    contents: FloatArray | None = None
    sumw2: FloatArray | None = None

    def __post_init__(self) -> None:
        if self.contents is None:
            self.contents = np.zeros((self.nx, self.ny))
        self.contents = np.asarray(self.contents, dtype=float)

    @property
    def entries(self) -> float:
        return float(self.contents.sum())

    def enable_sumw2(self) -> None:
        if self.sumw2 is None:
            self.sumw2 = self.contents.copy()

    def fill(self, x, y, weights=None) -> None:
        x = np.atleast_1d(np.asarray(x, dtype=float))
        y = np.atleast_1d(np.asarray(y, dtype=float))
        w = (
            np.ones_like(x)
            if weights is None
            else np.broadcast_to(np.asarray(weights, dtype=float), x.shape)
        )
        ix = _bin_index(x, self.nx, self.x_low, self.x_high)
        iy = _bin_index(y, self.ny, self.y_low, self.y_high)
        keep = (ix >= 0) & (iy >= 0)
        np.add.at(self.contents, (ix[keep], iy[keep]), w[keep])
        if self.sumw2 is not None:
            np.add.at(self.sumw2, (ix[keep], iy[keep]), w[keep] ** 2)

    def scale(self, factor: float) -> None:
        self.contents *= factor
        if self.sumw2 is not None:
            self.sumw2 *= factor**2

    def add(self, other: Histogram2D) -> None:
        if self.contents.shape != other.contents.shape:
            raise ValueError(f"Incompatible binning when adding {other.name} to {self.name}")
        self.contents += other.contents
        if self.sumw2 is not None and other.sumw2 is not None:
            self.sumw2 += other.sumw2

    def projection_x(self, name: str | None = None) -> Histogram1D:
        """Sum over all y bins."""
        return Histogram1D(
            name=name or f"{self.name}_px",
            title=self.title,
            n_bins=self.nx,
            low=self.x_low,
            high=self.x_high,
            contents=self.contents.sum(axis=1),
            sumw2=None if self.sumw2 is None else self.sumw2.sum(axis=1),
        )


Histogram = Histogram1D | Histogram2D

# FITS keywords of the filter switches stored with the histograms
PARAMETER_KEYWORDS = {
    "angle": "ANGLE",
    "lowSignal": "LOWSIGNL",
    "simple": "SIMPLMRG",
    "sumThree": "SUMTHREE",
}


class RingHistograms:
    """Energy-loss and correlation histograms of one ring."""

    def __init__(self, ring: Ring) -> None:
        self.ring = ring
        n_strips = ring.n_strips
        # Signal range and binning of the correlation plots
        lo, hi = -1.0, 15.0
        n = 320

        self.before = Histogram1D(
            "esdEloss", f"Energy loss in {ring.name} (reconstruction)", 640, lo, hi
        )
        self.after = Histogram1D(
            "anaEloss", f"Energy loss in {ring.name} (sharing corrected)", 640, lo, hi
        )
        self.single = Histogram1D("singleEloss", "Energy loss (single strips)", 600, 0, 15)
        self.double = Histogram1D("doubleEloss", "Energy loss (two strips)", 600, 0, 15)
        self.triple = Histogram1D("tripleEloss", "Energy loss (three strips)", 600, 0, 15)
        self.single_per_strip = Histogram2D(
            "singlePerStrip", "SinglePerStrip", 600, 0, 15, n_strips, 0, n_strips
        )
        self.before_after = Histogram2D(
            "beforeAfter", "Before and after correlation", n, lo, hi, n, lo, hi
        )
        self.neighbors_before = Histogram2D(
            "neighborsBefore", "Correlation of neighbors before", n, lo, hi, n, lo, hi
        )
        self.neighbors_after = Histogram2D(
            "neighborsAfter", "Correlation of neighbors after", n, lo, hi, n, lo, hi
        )
        self.summed = Histogram2D(
            "summed", "Summed signal", 200, -4, 6, ring.n_sectors, 0, 2 * np.pi
        )
        self.summed.enable_sumw2()

    @property
    def name(self) -> str:
        return self.ring.name

    def all(self) -> list[Histogram]:
        return [
            self.before,
            self.after,
            self.single,
            self.double,
            self.triple,
            self.single_per_strip,
            self.before_after,
            self.neighbors_before,
            self.neighbors_after,
            self.summed,
        ]

    def get(self, name: str) -> Histogram:
        for hist in self.all():
            if hist.name == name:
                return hist
        raise KeyError(f"{self.ring.name} has no histogram {name!r}")

    def merge(self, other: RingHistograms) -> None:
        for mine, theirs in zip(self.all(), other.all(), strict=True):
            mine.add(theirs)


@dataclass
class TerminateResult:
    """Histograms normalised at the end of a run."""

    n_events: int
    sums: dict[str, Histogram1D]
    summed: dict[str, Histogram2D]
    low_cuts: CutTable | None = None
    high_cuts: CutTable | None = None

    def write(self, path: Path | str) -> Path:
        path = Path(path)
        primary = fits.PrimaryHDU()
        primary.header["NEVENTS"] = self.n_events
        hdus: list = [primary]
        for table in (self.low_cuts, self.high_cuts):
            if table is not None:
                hdus.append(_cut_table_to_hdu(table))
        for name, hist in self.sums.items():
            hdus.extend(_histogram_to_hdus(name, hist))
        path.parent.mkdir(parents=True, exist_ok=True)
        fits.HDUList(hdus).writeto(path, overwrite=True)
        log.info(f"Saved normalised results to {path}")
        return path


@dataclass
class SharingHistograms:
    """All diagnostics of a sharing run, mergeable across jobs."""

    rings: dict[str, RingHistograms] = field(
        default_factory=lambda: {ring.name: RingHistograms(ring) for ring in RINGS}
    )
    low_cuts: CutTable | None = None
    high_cuts: CutTable | None = None
    parameters: dict[str, bool] = field(default_factory=dict)
    extra_dead: list[str] = field(default_factory=list)
    n_files: int = 1
    n_events: int = 0

    def ring(self, name: str | Ring) -> RingHistograms:
        key = name.name if isinstance(name, Ring) else ring_by_name(name).name
        return self.rings[key]

    def merge(self, other: SharingHistograms) -> None:
        """Add ``other`` into this object; cut tables are summed as well."""
        for name, histos in self.rings.items():
            histos.merge(other.rings[name])
        for attr in ("low_cuts", "high_cuts"):
            mine, theirs = getattr(self, attr), getattr(other, attr)
            if mine is None:
                setattr(self, attr, deepcopy(theirs))
            elif theirs is not None:
                if mine.values.shape != theirs.values.shape:
                    raise ValueError(f"Cannot merge {attr}: different eta binning")
                mine.values = mine.values + theirs.values
        self.n_files += other.n_files
        self.n_events += other.n_events

    def terminate(self, n_events: int | None = None) -> TerminateResult | None:
        """
        Normalise the run.

        The (eta, phi) sums are scaled to one event and projected on eta per
        unit eta; the cut tables are averaged over the merged files.
        """
        if n_events is None:
            n_events = self.n_events
        if n_events <= 0:
            log.warning(f"Cannot normalise to {n_events} events")
            return None

        low_cuts = high_cuts = None
        if self.low_cuts is not None:
            low_cuts = self.low_cuts.scaled(1.0 / self.n_files)
        else:
            log.warning("low cuts histogram not found in input")
        if self.high_cuts is not None:
            high_cuts = self.high_cuts.scaled(1.0 / self.n_files)
        else:
            log.warning("high cuts histogram not found in input")

        sums: dict[str, Histogram1D] = {}
        summed: dict[str, Histogram2D] = {}
        for name, histos in self.rings.items():
            scaled = deepcopy(histos.summed)
            scaled.scale(1.0 / n_events)
            summed[name] = scaled
            projection = scaled.projection_x(name)
            projection.scale(1.0, width=True)
            projection.title = name
            sums[name] = projection

        return TerminateResult(
            n_events=n_events,
            sums=sums,
            summed=summed,
            low_cuts=low_cuts,
            high_cuts=high_cuts,
        )

    # --- persistence ---
    def write(self, path: Path | str) -> Path:
        path = Path(path)
        primary = fits.PrimaryHDU()
        primary.header["NFILES"] = self.n_files
        primary.header["NEVENTS"] = self.n_events
        for key, value in self.parameters.items():
            primary.header[PARAMETER_KEYWORDS.get(key, key[:8].upper())] = bool(value)
        hdus: list = [primary]

        for table in (self.low_cuts, self.high_cuts):
            if table is not None:
                hdus.append(_cut_table_to_hdu(table))

        if self.extra_dead:
            hdus.append(
                fits.BinTableHDU.from_columns(
                    [fits.Column(name="STRIP", format="16A", array=self.extra_dead)],
                    name="EXTRADEAD",
                )
            )

        for name, histos in self.rings.items():
            for hist in histos.all():
                hdus.extend(_histogram_to_hdus(name, hist))

        path.parent.mkdir(parents=True, exist_ok=True)
        fits.HDUList(hdus).writeto(path, overwrite=True)
        log.info(f"Saved sharing histograms to {path}")
        return path

    @classmethod
    def read(cls, path: Path | str) -> SharingHistograms:
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Histogram file not found: {path}")

        result = cls()
        with fits.open(path) as hdul:
            header = hdul[0].header
            result.n_files = int(header.get("NFILES", 1))
            result.n_events = int(header.get("NEVENTS", 0))
            for key, keyword in PARAMETER_KEYWORDS.items():
                if keyword in header:
                    result.parameters[key] = bool(header[keyword])

            for hdu in hdul[1:]:
                kind = hdu.header.get("CONTENT", "")
                if kind == "CUTS":
                    table = _cut_table_from_hdu(hdu)
                    if table.name == "lowCuts":
                        result.low_cuts = table
                    else:
                        result.high_cuts = table
                elif hdu.name == "EXTRADEAD":
                    result.extra_dead = [str(s).strip() for s in hdu.data["STRIP"]]
                elif kind == "HIST":
                    hist = result.ring(hdu.header["RING"]).get(hdu.header["HISTNAME"])
                    hist.contents = np.array(hdu.data, dtype=float)
                elif kind == "SUMW2":
                    hist = result.ring(hdu.header["RING"]).get(hdu.header["HISTNAME"])
                    hist.sumw2 = np.array(hdu.data, dtype=float)

        log.debug(f"Read sharing histograms from {path} ({result.n_files} files)")
        return result


def _cut_table_to_hdu(table: CutTable) -> fits.ImageHDU:
    hdu = fits.ImageHDU(data=table.values, name=table.name.upper())
    hdu.header["CONTENT"] = "CUTS"
    hdu.header["CUTNAME"] = table.name
    hdu.header["ETANBINS"] = table.eta_axis.n_bins
    hdu.header["ETAMIN"] = table.eta_axis.eta_min
    hdu.header["ETAMAX"] = table.eta_axis.eta_max
    for ring in RINGS:
        hdu.header[f"RING{ring.index + 1}"] = ring.name
    return hdu


def _cut_table_from_hdu(hdu) -> CutTable:
    header = hdu.header
    axis = EtaAxis(
        int(header["ETANBINS"]), float(header["ETAMIN"]), float(header["ETAMAX"])
    )
    return CutTable(header["CUTNAME"], axis, np.array(hdu.data, dtype=float))


def _histogram_to_hdus(ring_name: str, hist: Histogram) -> list[fits.ImageHDU]:
    hdu = fits.ImageHDU(data=hist.contents, name=f"{ring_name}_{hist.name}".upper())
    header = hdu.header
    header["CONTENT"] = "HIST"
    header["RING"] = ring_name
    header["HISTNAME"] = hist.name
    header["TITLE"] = hist.title
    hdus = [hdu]
    if hist.sumw2 is not None:
        errors = fits.ImageHDU(
            data=hist.sumw2, name=f"{ring_name}_{hist.name}_SUMW2".upper()
        )
        errors.header["CONTENT"] = "SUMW2"
        errors.header["RING"] = ring_name
        errors.header["HISTNAME"] = hist.name
        hdus.append(errors)
    return hdus
