from __future__ import annotations

import json

import numpy as np
import pytest
from astropy.io import fits

from fmd_sharing.core.event import FMDEvent
from fmd_sharing.core.utils import io_utils


def test_is_json_list_detection():
    assert io_utils._is_json_list('["a.fits"]')
    assert not io_utils._is_json_list("{not a list}")


def test_read_list_file_skips_comments(tmp_path):
    listing = tmp_path / "files.lst"
    listing.write_text("\n# comment\nfirst.fits\n\nsecond.fits\n")
    assert io_utils._read_list_file(listing) == ["first.fits", "second.fits"]


def test_resolve_directory_glob(tmp_path):
    (tmp_path / "b.fits").touch()
    (tmp_path / "a.fits").touch()
    (tmp_path / "notes.txt").touch()

    files, source = io_utils.resolve_event_input(str(tmp_path))

    assert source == "directory glob (*.fits)"
    assert [p.name for p in files] == ["a.fits", "b.fits"]


def test_resolve_json_list_and_dedup(tmp_path):
    file_a = tmp_path / "a.fits"
    file_b = tmp_path / "b.fits"
    file_a.touch()
    file_b.touch()

    files, source = io_utils.resolve_event_input(
        json.dumps([str(file_a), str(file_a), str(file_b)])
    )
    assert source == "JSON list"
    assert files == [file_a, file_b]


def test_resolve_text_list(tmp_path):
    event = tmp_path / "run.fits"
    event.touch()
    listing = tmp_path / "runs.txt"
    listing.write_text(f"{event}\n")

    files, source = io_utils.resolve_event_input(str(listing))
    assert source == "text file list (runs.txt)"
    assert files == [event]


def test_resolve_errors(tmp_path):
    with pytest.raises(ValueError, match="Invalid JSON list"):
        io_utils.resolve_event_input("[not json]")
    with pytest.raises(FileNotFoundError, match="do not exist"):
        io_utils.resolve_event_input([str(tmp_path / "missing.fits")])
    with pytest.raises(FileNotFoundError, match="No FITS files"):
        io_utils.resolve_event_input(str(tmp_path))


def test_write_read_events(tmp_path, make_event):
    events = [
        make_event({("FMD1I", 0, 10): 1.2}, zvtx=-2.0),
        make_event({("FMD3O", 39, 255): 0.7}, eta=-2.0),
    ]
    path = io_utils.write_events(tmp_path / "events.fits", events)

    loaded = list(io_utils.read_events(path))

    assert len(loaded) == 2
    assert loaded[0].zvtx == pytest.approx(-2.0)
    assert loaded[0].multiplicity["FMD1I"][0, 10] == pytest.approx(1.2)
    assert loaded[1].multiplicity["FMD3O"][39, 255] == pytest.approx(0.7)
    np.testing.assert_allclose(loaded[1].eta["FMD2O"], -2.0)
    np.testing.assert_allclose(loaded[1].phi["FMD2O"], events[1].phi["FMD2O"])
    assert loaded[0].angle_corrected


def test_read_events_shared_eta_plane(tmp_path):
    """Eta stored once as a (sectors, strips) plane is used for every event."""
    event = FMDEvent.empty()
    hdus = [fits.PrimaryHDU()]
    hdus.append(
        fits.BinTableHDU.from_columns(
            [fits.Column(name="ZVTX", format="D", array=np.array([0.0, 1.0]))],
            name="EVENTS",
        )
    )
    for name, mult in event.multiplicity.items():
        hdus.append(fits.ImageHDU(np.stack([mult, mult]), name=f"{name}_MULT"))
        hdus.append(fits.ImageHDU(np.full(mult.shape, 1.5), name=f"{name}_ETA"))
    path = tmp_path / "shared.fits"
    fits.HDUList(hdus).writeto(path)

    loaded = list(io_utils.read_events(path))
    assert len(loaded) == 2
    np.testing.assert_allclose(loaded[1].eta["FMD1I"], 1.5)
    assert loaded[1].phi["FMD1I"][0, 0] == pytest.approx(9.0)


def test_read_events_missing_ring(tmp_path):
    hdus = [
        fits.PrimaryHDU(),
        fits.BinTableHDU.from_columns(
            [fits.Column(name="ZVTX", format="D", array=np.zeros(1))], name="EVENTS"
        ),
    ]
    path = tmp_path / "broken.fits"
    fits.HDUList(hdus).writeto(path)

    with pytest.raises(ValueError, match="missing data for ring FMD1I"):
        list(io_utils.read_events(path))


def test_write_events_empty(tmp_path):
    with pytest.raises(ValueError):
        io_utils.write_events(tmp_path / "none.fits", [])


def test_event_shape_validation():
    event = FMDEvent.empty()
    event.multiplicity["FMD1I"] = np.zeros((3, 3))
    with pytest.raises(ValueError, match="Unexpected multiplicity shape"):
        FMDEvent(multiplicity=event.multiplicity, eta=event.eta)
