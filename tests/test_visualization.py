import matplotlib.pyplot as plt
import pytest

from fmd_sharing.core.sharing import SharingFilter, SharingHistograms
from fmd_sharing.core.sharing.visualization import plot_diagnostics


@pytest.fixture
def filtered(fixed_config, make_event):
    sharing = SharingFilter(config=fixed_config())
    sharing.filter(make_event({("FMD1I", 0, 10): 0.6, ("FMD1I", 0, 11): 0.7}))
    sharing.filter(make_event({("FMD3O", 3, 100): 1.4}))
    return sharing


def test_plot_diagnostics_figures(filtered):
    assert len(plot_diagnostics(filtered.histograms)) == 2
    assert len(plot_diagnostics(filtered.histograms, filtered.terminate())) == 4
    plt.close("all")


def test_plot_diagnostics_saves_png(tmp_path, filtered):
    figures = plot_diagnostics(
        filtered.histograms,
        filtered.terminate(),
        output_dir=tmp_path / "plots",
        save_plots=True,
    )
    for fig in figures:
        plt.close(fig)

    saved = sorted(p.name for p in (tmp_path / "plots").glob("*.png"))
    assert saved == [f"sharing_diagnostic_{i}.png" for i in range(1, 5)]


def test_plot_diagnostics_needs_output_dir(filtered):
    with pytest.raises(ValueError, match="output directory"):
        plot_diagnostics(filtered.histograms, save_plots=True)
    plt.close("all")


def test_log_scale_only_for_filled_rings(filtered):
    empty = plot_diagnostics(SharingHistograms())
    assert all(ax.get_yscale() == "linear" for ax in empty[0].axes)

    figures = plot_diagnostics(filtered.histograms)
    energy_loss = figures[0].axes
    assert energy_loss[0].get_yscale() == "log"
    assert energy_loss[1].get_yscale() == "linear"
    plt.close("all")
