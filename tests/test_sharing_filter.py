import logging

import numpy as np
import pytest

from fmd_sharing.core.cuts import MultCuts
from fmd_sharing.core.dead_strips import DeadStrips
from fmd_sharing.core.eloss_fits import CalibrationError
from fmd_sharing.core.geometry import (
    INVALID_MULT,
    RINGS,
    eta_from_strip,
    eta_to_cos,
    incidence_cos,
    ring_by_name,
)
from fmd_sharing.core.sharing import SharingConfig, SharingFilter


def _run(config, event, dead=None, fits=None):
    sharing = SharingFilter(config=config, fits=fits, dead=dead)
    result = sharing.filter(event)
    return sharing, result


def test_single_strip_is_kept(fixed_config, make_event):
    sharing, result = _run(fixed_config(), make_event({("FMD1I", 0, 10): 1.2}))

    out = result.output.multiplicity["FMD1I"]
    assert out[0, 10] == pytest.approx(1.2)
    assert np.count_nonzero(out) == 1
    counts = result.counts.per_ring["FMD1I"]
    assert (counts.single, counts.double, counts.triple) == (1, 0, 0)
    assert sharing.histograms.ring("FMD1I").single.entries == 1


def test_signal_below_low_cut_is_dropped(fixed_config, make_event):
    _, result = _run(fixed_config(), make_event({("FMD2I", 4, 100): 0.1}))

    assert not result.output.multiplicity["FMD2I"].any()
    assert result.counts.single == 0


def test_two_small_strips_merge_into_second(fixed_config, make_event):
    event = make_event({("FMD1I", 0, 10): 0.6, ("FMD1I", 0, 11): 0.7})
    _, result = _run(fixed_config(), event)

    out = result.output.multiplicity["FMD1I"]
    assert out[0, 10] == 0
    assert out[0, 11] == pytest.approx(1.3)
    assert result.counts.double == 1


def test_larger_first_strip_takes_neighbour(fixed_config, make_event):
    event = make_event({("FMD3O", 5, 10): 0.8, ("FMD3O", 5, 11): 0.5})
    _, result = _run(fixed_config(), event)

    out = result.output.multiplicity["FMD3O"]
    assert out[5, 10] == pytest.approx(1.3)
    assert out[5, 11] == 0
    assert result.counts.per_ring["FMD3O"].double == 1


def test_three_strip_merge(fixed_config, make_event):
    event = make_event(
        {("FMD1I", 0, 10): 0.5, ("FMD1I", 0, 11): 0.6, ("FMD1I", 0, 12): 0.4}
    )
    _, result = _run(fixed_config(), event)

    out = result.output.multiplicity["FMD1I"]
    assert out[0, 11] == pytest.approx(1.5)
    assert out[0, 10] == 0 and out[0, 12] == 0
    assert result.counts.triple == 1
    assert result.counts.double == 0


def test_three_strip_merge_disabled(fixed_config, make_event):
    event = make_event(
        {("FMD1I", 0, 10): 0.5, ("FMD1I", 0, 11): 0.6, ("FMD1I", 0, 12): 0.4}
    )
    _, result = _run(fixed_config(three_strip_sharing=False), event)

    out = result.output.multiplicity["FMD1I"]
    assert out[0, 11] == pytest.approx(1.1)
    assert out[0, 12] == pytest.approx(0.4)
    assert result.counts.triple == 0
    assert (result.counts.double, result.counts.single) == (1, 1)


def test_large_signals_are_not_merged(fixed_config, make_event):
    event = make_event({("FMD2O", 0, 50): 3.0, ("FMD2O", 0, 51): 2.0})
    _, result = _run(fixed_config(), event)

    out = result.output.multiplicity["FMD2O"]
    assert out[0, 50] == pytest.approx(3.0)
    assert out[0, 51] == pytest.approx(2.0)
    assert result.counts.single == 2


def test_invalid_strip_is_propagated(fixed_config, make_event):
    _, result = _run(fixed_config(), make_event({("FMD2I", 1, 7): INVALID_MULT}))
    assert result.output.multiplicity["FMD2I"][1, 7] == INVALID_MULT


def test_invalid_is_empty(fixed_config, make_event):
    config = fixed_config(invalid_is_empty=True)
    _, result = _run(config, make_event({("FMD2I", 1, 7): INVALID_MULT}))
    assert result.output.multiplicity["FMD2I"][1, 7] == 0


def test_dead_strip_flushes_pending_cluster(fixed_config, make_event):
    dead = DeadStrips()
    dead.add(1, "I", 0, 11)
    event = make_event({("FMD1I", 0, 10): 0.6, ("FMD1I", 0, 11): 0.7})
    sharing, result = _run(fixed_config(), event, dead=dead)

    out = result.output.multiplicity["FMD1I"]
    # The pending pair is written to the strip before the dead one
    assert out[0, 10] == pytest.approx(1.3)
    assert out[0, 11] == INVALID_MULT
    assert sharing.histograms.extra_dead == ["FMD1I[00,011]"]


def test_output_is_angle_corrected(fixed_config, make_event):
    config = fixed_config(correct_angles=False)
    event = make_event({("FMD1I", 0, 10): 1.2}, eta=2.0, angle_corrected=False)
    _, result = _run(config, event)

    assert result.output.angle_corrected
    expected = 1.2 * float(incidence_cos(2.0))
    assert result.output.multiplicity["FMD1I"][0, 10] == pytest.approx(expected)


def test_input_is_decorrected_before_sharing(fixed_config, make_event):
    config = fixed_config(correct_angles=False)
    event = make_event({("FMD1I", 0, 10): 0.9}, eta=2.0, angle_corrected=True)
    sharing, result = _run(config, event)

    raw = 0.9 / float(incidence_cos(2.0))
    signal = sharing.signal_in_strip(event, RINGS[0])
    assert signal[0, 10] == pytest.approx(raw)
    assert result.output.multiplicity["FMD1I"][0, 10] == pytest.approx(0.9)


def test_output_eta_taken_from_first_sector(fixed_config, make_event):
    event = make_event()
    event.eta["FMD2O"][1:] = 5.0
    _, result = _run(fixed_config(), event)

    assert np.all(result.output.eta["FMD2O"] == 2.0)
    np.testing.assert_array_equal(result.output.phi["FMD2O"], event.phi["FMD2O"])


def test_cuts_from_fits(make_event, eloss_fits):
    config = SharingConfig(correct_angles=True)
    sharing, result = _run(
        config, make_event({("FMD1I", 0, 10): 0.6, ("FMD1I", 0, 11): 0.7}), fits=eloss_fits
    )

    # high cut = 1 - (0.1 + 0.05)
    high = sharing.histograms.high_cuts
    assert high.column(RINGS[0])[6] == pytest.approx(0.85)
    assert result.output.multiplicity["FMD1I"][0, 11] == pytest.approx(1.3)


def test_missing_fits_raise(make_event):
    sharing = SharingFilter(config=SharingConfig())
    with pytest.raises(CalibrationError):
        sharing.filter(make_event())


def test_counts_accumulate_over_events(fixed_config, make_event):
    sharing = SharingFilter(config=fixed_config())
    sharing.filter(make_event({("FMD1I", 0, 10): 1.2}))
    sharing.filter(make_event({("FMD3I", 2, 30): 1.2, ("FMD3O", 2, 30): 1.1}))

    assert sharing.histograms.n_events == 2
    assert sharing.totals.single == 3
    assert sharing.totals.per_ring["FMD3O"].single == 1


def test_summed_histogram_and_terminate(fixed_config, make_event):
    sharing = SharingFilter(config=fixed_config())
    sharing.filter(make_event({("FMD1I", 0, 10): 1.2}))
    sharing.filter(make_event())

    result = sharing.terminate()
    assert result.n_events == 2
    sums = result.sums["FMD1I"]
    # 1.2 spread over 2 events, per unit eta
    assert sums.contents.sum() * sums.bin_width == pytest.approx(0.6)


def test_parameters_follow_config():
    config = SharingConfig(
        low_cuts=MultCuts(fixed=0.2),
        high_cuts=MultCuts(fixed=1.0),
        three_strip_sharing=False,
        use_simple_merging=True,
    )
    sharing = SharingFilter(config=config)
    assert sharing.histograms.parameters == {
        "angle": False,
        "lowSignal": False,
        "simple": True,
        "sumThree": False,
    }


def test_flushed_pair_is_not_angle_corrected(fixed_config, make_event):
    dead = DeadStrips()
    dead.add(1, "I", 0, 11)
    config = fixed_config(correct_angles=False)
    event = make_event(
        {("FMD1I", 0, 10): 0.6, ("FMD1I", 0, 11): 0.7}, eta=2.0, angle_corrected=False
    )
    _, result = _run(config, event, dead=dead)

    out = result.output.multiplicity["FMD1I"]
    assert out[0, 10] == pytest.approx(1.3)
    assert out[0, 11] == INVALID_MULT


def test_two_low_pair_allows_large_third_strip(fixed_config, make_event):
    event = make_event(
        {("FMD2I", 2, 40): 0.5, ("FMD2I", 2, 41): 0.6, ("FMD2I", 2, 42): 2.0}
    )
    _, result = _run(fixed_config(), event)

    out = result.output.multiplicity["FMD2I"]
    assert out[2, 41] == pytest.approx(3.1)
    assert out[2, 40] == 0 and out[2, 42] == 0
    assert result.counts.triple == 1


def test_large_third_strip_needs_two_low_pair(fixed_config, make_event):
    event = make_event(
        {("FMD2I", 2, 40): 0.5, ("FMD2I", 2, 41): 1.2, ("FMD2I", 2, 42): 2.0}
    )
    _, result = _run(fixed_config(), event)

    out = result.output.multiplicity["FMD2I"]
    assert out[2, 41] == pytest.approx(1.7)
    assert out[2, 42] == pytest.approx(2.0)
    assert (result.counts.triple, result.counts.double, result.counts.single) == (
        0,
        1,
        1,
    )


def test_recalculate_eta_scales_signals(fixed_config, make_event):
    ring = ring_by_name("FMD3O")
    config = fixed_config(recalculate_eta=True)
    event = make_event(
        {("FMD3O", 4, 10): 1.2, ("FMD3O", 4, 11): 0.3}, eta=-2.0, zvtx=5.0
    )
    _, result = _run(config, event)

    eta_new = float(eta_from_strip(ring, 4, 10, 5.0))
    corr = float(eta_to_cos(eta_new) / eta_to_cos(-2.0))
    out = result.output.multiplicity["FMD3O"]
    # Both strips are scaled with the ratio of the first one
    assert out[4, 10] == pytest.approx(1.5 * corr)
    assert out[4, 11] == 0
    assert result.counts.double == 1
    np.testing.assert_allclose(result.output.eta["FMD3O"], -2.0)


def test_correlation_histograms(fixed_config, make_event):
    event = make_event({("FMD1I", 0, 10): 0.6, ("FMD1I", 0, 11): 0.7})
    sharing, _ = _run(fixed_config(), event)

    histos = sharing.histograms.ring("FMD1I")
    assert histos.before.entries == 2
    assert histos.neighbors_before.entries == 2
    assert histos.neighbors_after.entries == 2
    assert histos.before_after.entries == 2
    assert histos.after.entries == 1
    assert histos.after.centers[np.argmax(histos.after.contents)] == pytest.approx(
        1.3, abs=0.025
    )
    assert histos.double.entries == 1
    assert sharing.histograms.ring("FMD2I").before_after.entries == 0


def test_debug_level_logs_counts(fixed_config, make_event, caplog):
    event = make_event({("FMD1I", 0, 10): 1.2})
    with caplog.at_level(logging.DEBUG, logger="fmd_sharing"):
        _run(fixed_config(), event)
        quiet = [r for r in caplog.records if "single=" in r.message]
        _run(fixed_config(debug=1), event)
    loud = [r for r in caplog.records if "single=" in r.message]

    assert quiet == []
    assert len(loud) == 1
