import glob
import json
from collections.abc import Iterable, Iterator, Sequence
from pathlib import Path

import numpy as np
from astropy.io import fits

from fmd_sharing.core.event import FMDEvent
from fmd_sharing.core.geometry import RINGS
from fmd_sharing.core.utils.log_utils import log


# --- Input resolution helpers ---
def _is_json_list(text: str) -> bool:
    """Return True if string looks like a JSON list."""
    t = text.strip()
    return t.startswith("[") and t.endswith("]")


def _read_list_file(path: Path) -> list[str]:
    """Read a text file containing one entry per line, skipping blanks and comments."""
    lines: list[str] = []
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        lines.append(line)
    return lines


def resolve_event_input(spec: str | Sequence[str]) -> tuple[list[Path], str]:
    """
    Normalize 'spec' into a list of FITS event files and detect the source type.

    Accepted forms:
      - Directory path (glob '*.fits')
      - Single .fits file
      - JSON list string '["/path/a.fits", "/path/b.fits"]'
      - Text file (.lst, .list, .txt)
      - Python list/tuple (already resolved)
      - Glob pattern ('/data/*.fits')

    Returns
    -------
    files : list[Path]
        Valid FITS files.
    source : str
        Human readable description of the input form.
    """
    paths: list[Path] = []
    source: str = "unknown"

    # Case 1: already a list-like (Sequence[str])
    if isinstance(spec, (list, tuple)):
        paths = [Path(p) for p in spec]
        source = "explicit Python list"

    # Case 2: string input
    else:
        raw_str = str(spec).strip()
        p = Path(raw_str)

        if p.is_dir():
            paths = sorted(Path(x) for x in glob.glob(str(p / "*.fits")))
            source = "directory glob (*.fits)"
        elif p.is_file():
            if p.suffix.lower() == ".fits":
                paths = [p]
                source = "single FITS file"
            else:
                items = _read_list_file(p)
                paths = [Path(x) for x in items]
                source = f"text file list ({p.name})"
        elif _is_json_list(raw_str):
            try:
                items = json.loads(raw_str)
                if not isinstance(items, list):
                    raise ValueError("JSON payload is not a list.")
                paths = [Path(x) for x in items]
                source = "JSON list"
            except Exception as err:
                log.error("Failed to parse JSON list of event files.")
                raise ValueError("Invalid JSON list of event files.") from err
        else:
            paths = sorted(Path(x) for x in glob.glob(raw_str))
            source = "glob pattern"

    missing = [str(p) for p in paths if not p.exists()]
    if missing:
        raise FileNotFoundError(
            f"Some event files do not exist: {missing[:3]}{' ...' if len(missing) > 3 else ''}"
        )

    fits_files = [p for p in paths if p.suffix.lower() == ".fits"]
    if not fits_files:
        raise FileNotFoundError("No FITS files found in the provided event specification.")

    # De-duplicate while preserving order
    seen: set[Path] = set()
    unique: list[Path] = []
    for p in fits_files:
        if p not in seen:
            seen.add(p)
            unique.append(p)
    return unique, source


# --- Event files ---
def _per_event(data: np.ndarray | None, n_events: int, name: str) -> list:
    """Split a cube into per-event planes; planes/vectors are shared by all events."""
    if data is None:
        return [None] * n_events
    arr = np.asarray(data, dtype=float)
    if arr.ndim == 3:
        if arr.shape[0] != n_events:
            raise ValueError(
                f"{name}: {arr.shape[0]} planes for {n_events} events"
            )
        return [arr[i] for i in range(n_events)]
    return [arr] * n_events


def read_events(path: Path | str) -> Iterator[FMDEvent]:
    """
    Read the events stored in an FMD event file.

    Layout: primary header ``ANGCORR``; table ``EVENTS`` with column ``ZVTX``;
    per ring ``<RING>_MULT`` (events, sectors, strips), ``<RING>_ETA`` and
    optionally ``<RING>_PHI``, either as cubes or shared by all events.
    """
    path = Path(path)
    try:
        hdul = fits.open(path)
    except OSError as err:
        log.error(f"Unable to read FITS file: {path} - {err}")
        raise

    with hdul:
        angle_corrected = bool(hdul[0].header.get("ANGCORR", True))
        if "EVENTS" not in hdul:
            raise ValueError(f"{path.name}: missing EVENTS table")
        zvtx = np.asarray(hdul["EVENTS"].data["ZVTX"], dtype=float)
        n_events = len(zvtx)

        mult: dict[str, list] = {}
        eta: dict[str, list] = {}
        phi: dict[str, list] = {}
        for ring in RINGS:
            mult_ext = f"{ring.name}_MULT"
            eta_ext = f"{ring.name}_ETA"
            phi_ext = f"{ring.name}_PHI"
            if mult_ext not in hdul or eta_ext not in hdul:
                raise ValueError(f"{path.name}: missing data for ring {ring.name}")
            cube = np.asarray(hdul[mult_ext].data, dtype=float)
            if cube.ndim != 3:
                raise ValueError(
                    f"{mult_ext}: expected (events, sectors, strips), got {cube.shape}"
                )
            mult[ring.name] = _per_event(cube, n_events, mult_ext)
            eta[ring.name] = _per_event(hdul[eta_ext].data, n_events, eta_ext)
            phi_data = hdul[phi_ext].data if phi_ext in hdul else None
            phi[ring.name] = _per_event(phi_data, n_events, phi_ext)

    log.debug(f"Read {n_events} events from {path}")
    for i in range(n_events):
        yield FMDEvent(
            multiplicity={name: planes[i] for name, planes in mult.items()},
            eta={name: planes[i] for name, planes in eta.items()},
            phi={
                name: planes[i] for name, planes in phi.items() if planes[i] is not None
            },
            angle_corrected=angle_corrected,
            zvtx=float(zvtx[i]),
        )


def write_events(path: Path | str, events: Iterable[FMDEvent]) -> Path:
    """Write events to ``path`` in the layout understood by :func:`read_events`."""
    path = Path(path)
    events = list(events)
    if not events:
        raise ValueError("No events to write")

    primary = fits.PrimaryHDU()
    primary.header["ANGCORR"] = (
        bool(events[0].angle_corrected),
        "Signals are angle corrected",
    )
    primary.header["NEVENTS"] = len(events)
    hdus: list = [primary]

    hdus.append(
        fits.BinTableHDU.from_columns(
            [
                fits.Column(
                    name="ZVTX",
                    format="D",
                    unit="cm",
                    array=np.array([ev.zvtx for ev in events], dtype=float),
                )
            ],
            name="EVENTS",
        )
    )
    for ring in RINGS:
        for suffix, attr in (("MULT", "multiplicity"), ("ETA", "eta"), ("PHI", "phi")):
            cube = np.stack([getattr(ev, attr)[ring.name] for ev in events])
            hdus.append(fits.ImageHDU(data=cube, name=f"{ring.name}_{suffix}"))

    path.parent.mkdir(parents=True, exist_ok=True)
    fits.HDUList(hdus).writeto(path, overwrite=True)
    log.debug(f"Wrote {len(events)} events to {path}")
    return path
