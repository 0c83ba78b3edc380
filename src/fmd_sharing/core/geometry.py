"""
FMD ring layout, strip addressing and angle helpers.

The Forward Multiplicity Detector is made of three sub-detectors holding
five rings of silicon sensors.  Inner rings have 20 sectors of 512 strips,
outer rings 40 sectors of 256 strips.  FMD1 has only an inner ring.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from fmd_sharing.types import FloatArray

# Signal value used by the reconstruction for invalid or dead channels
INVALID_MULT = 1024.0


@dataclass(frozen=True)
class Ring:
    """One FMD ring, e.g. FMD2O."""

    detector: int
    ring_id: str
    index: int

    @property
    def inner(self) -> bool:
        return self.ring_id == "I"

    @property
    def n_sectors(self) -> int:
        return 20 if self.inner else 40

    @property
    def n_strips(self) -> int:
        return 512 if self.inner else 256

    @property
    def shape(self) -> tuple[int, int]:
        return (self.n_sectors, self.n_strips)

    @property
    def name(self) -> str:
        return f"FMD{self.detector}{self.ring_id}"

    def __str__(self) -> str:
        return self.name


RINGS: tuple[Ring, ...] = (
    Ring(1, "I", 0),
    Ring(2, "I", 1),
    Ring(2, "O", 2),
    Ring(3, "I", 3),
    Ring(3, "O", 4),
)

# Radial extent (cm) of the strips
_RADIUS = {"I": (4.5213, 17.2), "O": (15.4, 28.0)}

# Nominal z position (cm) of each ring
_Z_POSITION = {
    (1, "I"): 320.266,
    (2, "I"): 83.666,
    (2, "O"): 74.966,
    (3, "I"): -63.066,
    (3, "O"): -74.966,
}


def _normalize_ring_id(ring_id: str) -> str:
    rid = str(ring_id).upper()
    if rid not in ("I", "O"):
        raise ValueError(f"Invalid ring identifier: {ring_id!r}")
    return rid


def get_ring(detector: int, ring_id: str) -> Ring:
    """Return the ring FMD<detector><ring_id>."""
    rid = _normalize_ring_id(ring_id)
    for ring in RINGS:
        if ring.detector == detector and ring.ring_id == rid:
            return ring
    raise ValueError(f"Invalid ring FMD{detector}{rid}")


def ring_by_name(name: str) -> Ring:
    """Return the ring from its name (``FMD2I``, case insensitive)."""
    key = name.strip().upper()
    for ring in RINGS:
        if ring.name == key:
            return ring
    raise ValueError(f"Unknown ring name: {name!r}")


def check_address(detector: int, ring_id: str, sector: int, strip: int) -> str | None:
    """
    Validate a strip address.

    Returns
    -------
    str or None
        A description of the problem, or None if the address is valid.
    """
    if detector < 1 or detector > 3:
        return f"Invalid detector FMD{detector}"
    try:
        rid = _normalize_ring_id(ring_id)
    except ValueError:
        return f"Invalid ring FMD{detector}{ring_id}"
    inner = rid == "I"
    if detector == 1 and not inner:
        return f"Invalid ring FMD{detector}{rid}"
    if sector < 0 or (inner and sector >= 20) or (not inner and sector >= 40):
        return f"Invalid sector FMD{detector}{rid}[{sector:02d}]"
    if strip < 0 or (inner and strip >= 512) or (not inner and strip >= 256):
        return f"Invalid strip FMD{detector}{rid}[{sector:02d},{strip:03d}]"
    return None


def pack_strip(detector: int, ring_id: str, sector: int, strip: int) -> int:
    """Pack a strip address into a unique integer."""
    q = 0 if _normalize_ring_id(ring_id) == "I" else 1
    return (
        ((strip & 0x1FF) << 0)
        | ((sector & 0x3F) << 9)
        | ((q & 0x01) << 15)
        | ((detector & 0x03) << 16)
    )


def unpack_strip(packed: int) -> tuple[int, str, int, int]:
    """Inverse of :func:`pack_strip`."""
    strip = packed & 0x1FF
    sector = (packed >> 9) & 0x3F
    ring_id = "I" if ((packed >> 15) & 0x01) == 0 else "O"
    detector = (packed >> 16) & 0x03
    return detector, ring_id, sector, strip


def strip_label(detector: int, ring_id: str, sector: int, strip: int) -> str:
    return f"FMD{detector}{ring_id.upper()}[{sector:02d},{strip:03d}]"


def strip_radius(ring: Ring, strip):
    """Radius (cm) of the inner edge of a strip."""
    r_min, r_max = _RADIUS[ring.ring_id]
    return r_min + (r_max - r_min) / ring.n_strips * np.asarray(strip, dtype=float)


def eta_from_strip(ring: Ring, sector: int, strip, zvtx: float):
    """
    Pseudo-rapidity of a strip seen from a vertex at ``zvtx`` (cm).

    Sensors on even hybrids sit 0.5 cm closer to the interaction point.
    """
    radius = strip_radius(ring, strip)
    z = _Z_POSITION[(ring.detector, ring.ring_id)]
    hybrid = sector // 2
    if hybrid % 2 == 0:
        z -= 0.5
    theta = np.arctan2(radius, z - zvtx)
    return -np.log(np.tan(0.5 * theta))


def sector_phi(ring: Ring) -> FloatArray:
    """Azimuth (degrees) at the centre of each sector of a ring."""
    width = 360.0 / ring.n_sectors
    return (np.arange(ring.n_sectors, dtype=float) + 0.5) * width


def incidence_cos(eta):
    """Cosine of the incidence angle of a particle at pseudo-rapidity ``eta``."""
    eta = np.asarray(eta, dtype=float)
    theta = 2 * np.arctan(np.exp(-eta))
    return np.cos(np.where(eta < 0, theta - np.pi, theta))


def angle_correct(mult, eta):
    """Project a signal onto the particle incidence angle."""
    result = mult * incidence_cos(eta)
    return float(result) if np.ndim(result) == 0 else result


def angle_decorrect(mult, eta):
    """Undo :func:`angle_correct`."""
    result = mult / incidence_cos(eta)
    return float(result) if np.ndim(result) == 0 else result


def eta_to_cos(eta):
    """Cosine of the polar angle corresponding to ``|eta|``."""
    return np.cos(2 * np.arctan(np.exp(-np.abs(eta))))
