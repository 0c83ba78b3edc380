"""
Global pytest configuration for the FMD sharing filter tests.

Provides small event builders, fixed-cut configurations and a synthetic set
of energy-loss fits, so that no real data is needed.
"""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest

from fmd_sharing.core.cuts import MultCuts
from fmd_sharing.core.eloss_fits import ELossFits, EtaAxis, RingELossFit
from fmd_sharing.core.event import FMDEvent
from fmd_sharing.core.geometry import RINGS
from fmd_sharing.core.sharing import SharingConfig
from fmd_sharing.core.utils.io_utils import write_events


@pytest.fixture
def make_event():
    """
    Factory building an event from a {(ring, sector, strip): signal} mapping.

    All other strips are empty and every strip has the same eta.
    """

    def _make(signals=None, eta=2.0, angle_corrected=True, zvtx=0.0):
        mult = {ring.name: np.zeros(ring.shape) for ring in RINGS}
        for (name, sector, strip), value in (signals or {}).items():
            mult[name][sector, strip] = value
        return FMDEvent(
            multiplicity=mult,
            eta={ring.name: np.full(ring.shape, eta) for ring in RINGS},
            angle_corrected=angle_corrected,
            zvtx=zvtx,
        )

    return _make


@pytest.fixture
def fixed_config():
    """Fixed cuts (low 0.15, high 1.0), sharing on angle corrected signals."""

    def _make(**kwargs):
        options = {
            "correct_angles": True,
            "low_cuts": MultCuts(fixed=0.15),
            "high_cuts": MultCuts(fixed=1.0),
        }
        options.update(kwargs)
        return SharingConfig(**options)

    return _make


@pytest.fixture
def eloss_fits():
    """
    Fits on 10 unit-wide eta bins in [-4, 6]: delta=1, xi=0.1, sigma=0.05.

    Bin 7 (eta in [3, 4)) has no fit.
    """
    axis = EtaAxis(10, -4.0, 6.0)
    rings = {}
    for ring in RINGS:
        delta = np.ones(axis.n_bins)
        delta[7] = np.nan
        rings[ring.name] = RingELossFit(
            delta=delta,
            xi=np.full(axis.n_bins, 0.1),
            sigma=np.full(axis.n_bins, 0.05),
        )
    return ELossFits(axis, rings, low_cut=0.4, max_search=0)


@pytest.fixture
def event_file(tmp_path, make_event):
    """FITS file holding two small events."""
    events = [
        make_event({("FMD1I", 0, 10): 1.2}),
        make_event({("FMD2O", 3, 20): 0.6, ("FMD2O", 3, 21): 0.7}, zvtx=1.5),
    ]
    return write_events(tmp_path / "events" / "run1.fits", events)
