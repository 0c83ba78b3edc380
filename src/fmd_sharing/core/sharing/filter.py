"""
Sharing filter.

A particle crossing the FMD at an angle can deposit its energy in two or
three neighbouring strips.  The filter scans the strips of every sector and
sums such shared signals into a single strip, zeroing the strips it consumed.

Input:
    - FMDEvent from the reconstruction

Output:
    - FMDEvent with the shared signals merged (flagged as angle corrected)

Calibration used:
    - ELossFits, for cuts derived from the energy-loss distributions
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from fmd_sharing.core.cuts import build_cut_tables
from fmd_sharing.core.dead_strips import DeadStrips
from fmd_sharing.core.eloss_fits import CalibrationError, ELossFits, EtaAxis
from fmd_sharing.core.event import FMDEvent
from fmd_sharing.core.geometry import (
    INVALID_MULT,
    RINGS,
    Ring,
    angle_correct,
    angle_decorrect,
    eta_from_strip,
    eta_to_cos,
    incidence_cos,
)
from fmd_sharing.core.utils.log_utils import log
from fmd_sharing.types import BoolArray, FloatArray

from .config import SharingConfig
from .histograms import RingHistograms, SharingHistograms


@dataclass
class RingCounts:
    single: int = 0
    double: int = 0
    triple: int = 0

    def add(self, other: RingCounts) -> None:
        self.single += other.single
        self.double += other.double
        self.triple += other.triple


@dataclass
class SharingCounts:
    """Number of single, double and triple strip clusters per ring."""

    per_ring: dict[str, RingCounts] = field(
        default_factory=lambda: {ring.name: RingCounts() for ring in RINGS}
    )

    @property
    def single(self) -> int:
        return sum(c.single for c in self.per_ring.values())

    @property
    def double(self) -> int:
        return sum(c.double for c in self.per_ring.values())

    @property
    def triple(self) -> int:
        return sum(c.triple for c in self.per_ring.values())

    def add(self, other: SharingCounts) -> None:
        for name, counts in other.per_ring.items():
            self.per_ring[name].add(counts)


class _Fills:
    """Values collected while scanning a ring, histogrammed in one go."""

    def __init__(self) -> None:
        self.before: list[float] = []
        self.after: list[float] = []
        self.single: list[float] = []
        self.single_strip: list[int] = []
        self.double: list[float] = []
        self.triple: list[float] = []
        self.neighbors_before: list[tuple[float, float]] = []
        self.neighbors_after: list[tuple[float, float]] = []
        self.before_after: list[tuple[float, float]] = []
        self.summed: list[tuple[float, float, float]] = []

    def flush(self, histos: RingHistograms) -> None:
        histos.before.fill(self.before)
        histos.after.fill(self.after)
        histos.single.fill(self.single)
        histos.single_per_strip.fill(self.single, self.single_strip)
        histos.double.fill(self.double)
        histos.triple.fill(self.triple)
        for hist, pairs in (
            (histos.neighbors_before, self.neighbors_before),
            (histos.neighbors_after, self.neighbors_after),
            (histos.before_after, self.before_after),
        ):
            if pairs:
                x, y = zip(*pairs, strict=True)
                hist.fill(x, y)
        if self.summed:
            eta, phi, weight = zip(*self.summed, strict=True)
            histos.summed.fill(eta, phi, weight)


@dataclass
class FilterResult:
    output: FMDEvent
    counts: SharingCounts


class SharingFilter:
    """
    Merge signals shared between adjacent strips.

    Parameters
    ----------
    config : SharingConfig
        Filter settings and cut definitions.
    fits : ELossFits, optional
        Energy-loss fits, required when a cut is derived from them.
    dead : DeadStrips, optional
        Extra strips to be treated as dead.
    """

    def __init__(
        self,
        config: SharingConfig | None = None,
        fits: ELossFits | None = None,
        dead: DeadStrips | None = None,
    ) -> None:
        self.config = config if config is not None else SharingConfig()
        self.fits = fits
        self.dead = dead if dead is not None else DeadStrips()
        self.histograms = SharingHistograms(parameters=self.config.parameters())
        self.totals = SharingCounts()

        self._dead_masks: dict[str, BoolArray] = {}
        self._low_per_bin: dict[str, FloatArray] = {}
        self._high_per_bin: dict[str, FloatArray] = {}
        self._ready = False

    # --- setup ---
    def setup_for_data(self, eta_axis: EtaAxis | None = None) -> None:
        """
        Prepare the filter before the first event.

        Fills the low/high cut tables, on the eta axis of the fits if any,
        otherwise on ``eta_axis`` (or the configured axis).
        """
        if self.config.needs_fits and self.fits is None:
            raise CalibrationError(
                "Energy-loss fits are required by the configured cuts"
            )

        axis = eta_axis if eta_axis is not None else self.config.eta_axis
        low_table, high_table = build_cut_tables(
            self.config.low_cuts, self.config.high_cuts, axis, self.fits
        )
        self.histograms.low_cuts = low_table
        self.histograms.high_cuts = high_table
        self.histograms.extra_dead = self.dead.labels()

        for ring in RINGS:
            self._dead_masks[ring.name] = self.dead.mask(ring)
            if self.fits is not None:
                if self.config.low_cuts.fixed_cut(ring) <= 0:
                    self._low_per_bin[ring.name] = self.config.low_cuts.per_bin(
                        ring, self.fits
                    )
                if self.config.high_cuts.fixed_cut(ring) <= 0:
                    self._high_per_bin[ring.name] = self.config.high_cuts.per_bin(
                        ring, self.fits
                    )

        if self.dead:
            log.info(f"{len(self.dead)} extra dead strips")
        log.debug(
            f"Cut tables on {low_table.eta_axis.n_bins} eta bins "
            f"[{low_table.eta_axis.eta_min}, {low_table.eta_axis.eta_max}]"
        )
        self._ready = True

    # --- signal helpers ---
    def signal_in_strip(self, event: FMDEvent, ring: Ring) -> FloatArray:
        """
        Signals of a ring, angle corrected or not as the filter requires.

        Invalid and empty strips are returned unchanged.
        """
        mult = event.multiplicity[ring.name]
        if self.config.correct_angles == event.angle_corrected:
            return mult.copy()

        eta = event.eta[ring.name]
        if self.config.correct_angles:
            converted = angle_correct(mult, eta)
        else:
            converted = angle_decorrect(mult, eta)
        untouched = (mult == INVALID_MULT) | (mult == 0)
        return np.where(untouched, mult, converted)

    def _cuts(self, ring: Ring, eta: FloatArray) -> tuple[FloatArray, FloatArray]:
        low = self.config.low_cuts.cut_per_strip(
            ring, eta, self.fits, self._low_per_bin.get(ring.name)
        )
        high = self.config.high_cuts.cut_per_strip(
            ring, eta, self.fits, self._high_per_bin.get(ring.name)
        )
        return low, high

    # --- main entry ---
    def filter(self, event: FMDEvent) -> FilterResult:
        """
        Filter one event.

        Returns the merged event and the number of clusters of each size.
        """
        if not self._ready:
            self.setup_for_data()

        out_mult: dict[str, FloatArray] = {}
        out_eta: dict[str, FloatArray] = {}
        counts = SharingCounts()

        for ring in RINGS:
            mult, eta = self._filter_ring(
                event, ring, self.histograms.rings[ring.name], counts.per_ring[ring.name]
            )
            out_mult[ring.name] = mult
            out_eta[ring.name] = eta

        self.histograms.n_events += 1
        self.totals.add(counts)
        if self.config.debug > 0:
            log.debug(
                f"single={counts.single:9d}, double={counts.double:9d}, "
                f"triple={counts.triple:9d}"
            )

        output = FMDEvent(
            multiplicity=out_mult,
            eta=out_eta,
            phi={name: phi.copy() for name, phi in event.phi.items()},
            angle_corrected=True,
            zvtx=event.zvtx,
        )
        return FilterResult(output=output, counts=counts)

    def _filter_ring(
        self,
        event: FMDEvent,
        ring: Ring,
        histos: RingHistograms,
        counts: RingCounts,
    ) -> tuple[FloatArray, FloatArray]:
        cfg = self.config
        n_sectors, n_strips = ring.shape

        signal = self.signal_in_strip(event, ring)
        eta_in = event.eta[ring.name]
        phi_rad = np.radians(event.phi[ring.name])

        # The output keeps the eta of sector 0 for every strip
        out_eta = np.tile(eta_in[0], (n_sectors, 1))

        if cfg.recalculate_eta:
            strips = np.arange(n_strips)
            eta_used = np.stack(
                [eta_from_strip(ring, s, strips, event.zvtx) for s in range(n_sectors)]
            )
            eta_corr = eta_to_cos(eta_used) / eta_to_cos(eta_in)
        else:
            eta_used = eta_in
            eta_corr = None

        low_cut, high_cut = self._cuts(ring, eta_used)
        # Emitted signals are angle corrected unless already done on input
        emit_cos = None if cfg.correct_angles else incidence_cos(eta_used)
        dead = self._dead_masks.get(ring.name)
        if dead is None:
            dead = self.dead.mask(ring)

        out = np.zeros(ring.shape)
        fills = _Fills()

        for s in range(n_sectors):
            row = signal[s].tolist()
            etas = eta_used[s].tolist()
            phi_row = phi_rad[s].tolist()
            lows = low_cut[s].tolist()
            highs = high_cut[s].tolist()
            dead_row = dead[s].tolist()
            corr_row = eta_corr[s].tolist() if eta_corr is not None else None
            cos_row = emit_cos[s].tolist() if emit_cos is not None else None
            out_row = out[s]

            # The current strip was consumed by the previous cluster
            used = False
            # Pending sum of a 2- or 3-strip cluster
            e_total = -1.0
            # Two consecutive strips between the low and high cut
            two_low = False

            for t in range(n_strips):
                out_row[t] = 0.0
                mult = row[t]
                mult_next = row[t + 1] if t < n_strips - 1 else 0.0
                mult_next_next = row[t + 2] if t < n_strips - 2 else 0.0
                if mult_next == INVALID_MULT:
                    mult_next = 0.0
                if mult_next_next == INVALID_MULT:
                    mult_next_next = 0.0
                if not cfg.three_strip_sharing:
                    mult_next_next = 0.0

                eta = etas[t]
                phi = phi_row[t]

                if corr_row is not None and mult > 0 and mult != INVALID_MULT:
                    corr = corr_row[t]
                    mult *= corr
                    mult_next *= corr
                    mult_next_next *= corr

                if mult == INVALID_MULT and cfg.invalid_is_empty:
                    mult = 0.0

                if mult == INVALID_MULT or dead_row[t]:
                    out_row[t] = INVALID_MULT
                    fills.before.append(-1.0)
                    mult = INVALID_MULT

                if mult == INVALID_MULT or mult == 0:
                    if mult == 0:
                        fills.summed.append((eta, phi, 0.0))
                    # Flush a pending cluster as is; never merge across a dead strip
                    if e_total > 0 and t > 0:
                        out_row[t - 1] = e_total
                    e_total = -1.0
                    used = False
                    two_low = False
                    continue

                fills.before.append(mult)
                if t < n_strips - 1:
                    fills.neighbors_before.append((mult, mult_next))

                low = lows[t]
                high = highs[t]
                this_valid = mult > low
                next_valid = mult_next > low
                this_small = mult < high
                next_small = mult_next < high

                etot = 0.0
                if e_total > 0:
                    # One candidate already pending: try to add a third strip
                    if cfg.three_strip_sharing and next_valid and (next_small or two_low):
                        e_total += mult_next
                        used = True
                        fills.triple.append(e_total)
                        counts.triple += 1
                        two_low = False
                    else:
                        used = False
                        fills.double.append(e_total)
                        counts.double += 1
                    etot = e_total
                    e_total = -1.0
                else:
                    if used:
                        used = False
                        continue

                    if this_valid:
                        etot = mult

                    if this_valid and next_valid and (this_small or next_small):
                        if this_small and next_small:
                            two_low = True

                        if mult > mult_next and mult_next_next < low:
                            etot = mult + mult_next
                            used = True
                            fills.double.append(etot)
                            counts.double += 1
                        else:
                            etot = 0.0
                            e_total = mult + mult_next
                    elif etot > 0:
                        fills.single.append(etot)
                        fills.single_strip.append(t)
                        counts.single += 1

                merged = etot * cos_row[t] if cos_row is not None else etot

                if t != 0:
                    fills.neighbors_after.append((out_row[t - 1], merged))
                fills.before_after.append((mult, merged))
                if merged > 0:
                    fills.after.append(merged)
                fills.summed.append((eta, phi, merged))

                out_row[t] = merged

        fills.flush(histos)
        return out, out_eta

    def terminate(self, n_events: int | None = None):
        """Normalise the accumulated histograms, see SharingHistograms.terminate."""
        return self.histograms.terminate(n_events)
