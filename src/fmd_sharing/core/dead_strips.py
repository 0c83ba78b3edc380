"""Extra dead strips declared on top of those flagged by the reconstruction."""

import re
from pathlib import Path

import numpy as np

from fmd_sharing.core.geometry import (
    Ring,
    check_address,
    pack_strip,
    strip_label,
    unpack_strip,
)
from fmd_sharing.core.utils.io_utils import _read_list_file
from fmd_sharing.core.utils.log_utils import log
from fmd_sharing.types import BoolArray

# FMD2I[03,120] or FMD3O[00-05,010-020]
_ENTRY = re.compile(
    r"^FMD(?P<det>\d)(?P<ring>[IOio])\s*\[\s*"
    r"(?P<s1>\d+)(?:\s*-\s*(?P<s2>\d+))?\s*,\s*"
    r"(?P<t1>\d+)(?:\s*-\s*(?P<t2>\d+))?\s*\]$"
)


class DeadStrips:
    """Set of strips to be treated as dead by the sharing filter."""

    def __init__(self) -> None:
        self._ids: set[int] = set()

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, detector: int, ring_id: str, sector: int, strip: int) -> bool:
        """
        Mark a single strip as dead.

        Malformed addresses are reported as warnings and ignored.

        Returns
        -------
        bool
            True if the strip was added.
        """
        problem = check_address(detector, ring_id, sector, strip)
        if problem is not None:
            log.warning(problem)
            return False
        self._ids.add(pack_strip(detector, ring_id, sector, strip))
        return True

    def add_region(
        self,
        detector: int,
        ring_id: str,
        sector_first: int,
        sector_last: int,
        strip_first: int,
        strip_last: int,
    ) -> int:
        """Add all strips of FMD<d><r>[s1..s2, t1..t2], both ends inclusive."""
        n_added = 0
        for sector in range(sector_first, sector_last + 1):
            for strip in range(strip_first, strip_last + 1):
                n_added += self.add(detector, ring_id, sector, strip)
        return n_added

    def is_dead(self, detector: int, ring_id: str, sector: int, strip: int) -> bool:
        return pack_strip(detector, ring_id, sector, strip) in self._ids

    def mask(self, ring: Ring) -> BoolArray:
        """Boolean (sectors, strips) array, True for dead strips of ``ring``."""
        result = np.zeros(ring.shape, dtype=bool)
        for packed in self._ids:
            det, rid, sector, strip = unpack_strip(packed)
            if det == ring.detector and rid == ring.ring_id:
                result[sector, strip] = True
        return result

    def labels(self) -> list[str]:
        return [strip_label(*unpack_strip(packed)) for packed in sorted(self._ids)]

    def parse(self, entry: str) -> int:
        """Add the strips described by one ``FMD2I[03,120]`` style entry."""
        match = _ENTRY.match(entry.strip())
        if match is None:
            raise ValueError(f"Malformed dead strip entry: {entry!r}")
        s1 = int(match["s1"])
        s2 = int(match["s2"]) if match["s2"] is not None else s1
        t1 = int(match["t1"])
        t2 = int(match["t2"]) if match["t2"] is not None else t1
        return self.add_region(int(match["det"]), match["ring"], s1, s2, t1, t2)

    @classmethod
    def load(cls, path: Path | str) -> "DeadStrips":
        """Read a dead strip list file (one entry per line, '#' comments)."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Dead strip list not found: {path}")

        dead = cls()
        for lineno, line in enumerate(_read_list_file(path), start=1):
            try:
                dead.parse(line)
            except ValueError as err:
                raise ValueError(f"{path.name}: entry {lineno}: {err}") from err
        log.info(f"Loaded {len(dead)} dead strips from {path}")
        return dead
