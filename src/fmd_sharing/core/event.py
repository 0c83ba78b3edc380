"""Per-event FMD strip data."""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from fmd_sharing.core.geometry import RINGS, Ring, sector_phi
from fmd_sharing.types import FloatArray


@dataclass
class FMDEvent:
    """
    Strip signals of one event.

    Every mapping is keyed by ring name (``FMD1I`` ... ``FMD3O``) and holds
    a (sectors, strips) array.  ``phi`` is in degrees.
    """

    multiplicity: dict[str, FloatArray]
    eta: dict[str, FloatArray]
    phi: dict[str, FloatArray] = field(default_factory=dict)
    angle_corrected: bool = True
    zvtx: float = 0.0

    def __post_init__(self) -> None:
        for ring in RINGS:
            if ring.name not in self.multiplicity:
                raise ValueError(f"Missing multiplicity for ring {ring.name}")
            self.multiplicity[ring.name] = _as_ring_array(
                self.multiplicity[ring.name], ring, "multiplicity"
            )
            if ring.name not in self.eta:
                raise ValueError(f"Missing eta for ring {ring.name}")
            self.eta[ring.name] = _as_ring_array(self.eta[ring.name], ring, "eta")
            if ring.name in self.phi:
                self.phi[ring.name] = _as_ring_array(self.phi[ring.name], ring, "phi")
            else:
                self.phi[ring.name] = _as_ring_array(sector_phi(ring), ring, "phi")

    @classmethod
    def empty(cls, angle_corrected: bool = True, zvtx: float = 0.0) -> FMDEvent:
        """Event with all signals zero and eta zero."""
        return cls(
            multiplicity={ring.name: np.zeros(ring.shape) for ring in RINGS},
            eta={ring.name: np.zeros(ring.shape) for ring in RINGS},
            angle_corrected=angle_corrected,
            zvtx=zvtx,
        )


def _as_ring_array(values, ring: Ring, what: str) -> FloatArray:
    """
    Broadcast ``values`` to the (sectors, strips) shape of ``ring``.

    Accepted shapes are (sectors, strips), (strips,) for per-strip values and
    (sectors, 1) or (sectors,) when ``what`` is phi.
    """
    arr = np.asarray(values, dtype=float)
    if arr.shape == ring.shape:
        return arr.copy()
    if arr.ndim == 1 and what == "phi" and arr.shape[0] == ring.n_sectors:
        return np.repeat(arr[:, np.newaxis], ring.n_strips, axis=1)
    if arr.ndim == 1 and arr.shape[0] == ring.n_strips:
        return np.tile(arr, (ring.n_sectors, 1))
    if arr.shape == (ring.n_sectors, 1):
        return np.repeat(arr, ring.n_strips, axis=1)
    raise ValueError(
        f"Unexpected {what} shape {arr.shape} for {ring.name}, expected {ring.shape}"
    )
