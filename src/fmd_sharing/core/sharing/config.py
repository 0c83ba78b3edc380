"""Configuration of the sharing filter."""

import logging
from dataclasses import dataclass, field

from rich.console import Console
from rich.table import Table

from fmd_sharing.core.cuts import MultCuts, default_high_cuts, default_low_cuts
from fmd_sharing.core.eloss_fits import EtaAxis
from fmd_sharing.core.geometry import RINGS

logger = logging.getLogger(__name__)


@dataclass
class SharingConfig:
    """Configuration of the sharing filter."""

    # Work on angle corrected signals inside the filter
    correct_angles: bool = False

    # Merging
    three_strip_sharing: bool = True
    zero_shared_hits_below_threshold: bool = False
    use_simple_merging: bool = False

    # Input handling
    recalculate_eta: bool = False
    invalid_is_empty: bool = False

    # Cuts
    low_cuts: MultCuts = field(default_factory=default_low_cuts)
    high_cuts: MultCuts = field(default_factory=default_high_cuts)

    # Binning of the cut tables when no energy-loss fits are given
    eta_axis: EtaAxis = field(default_factory=lambda: EtaAxis(200, -4.0, 6.0))

    debug: int = 0

    def __post_init__(self):
        """Validate and report the configuration."""
        for name in ("low_cuts", "high_cuts"):
            if not isinstance(getattr(self, name), MultCuts):
                raise ValueError(f"{name} must be a MultCuts instance")
        if self.debug < 0:
            raise ValueError(f"Debug level must be positive, got {self.debug}")

        logger.info(
            "Sharing configuration: "
            f"angles={'corrected' if self.correct_angles else 'uncorrected'}, "
            f"three-strip={self.three_strip_sharing}, "
            f"recalculate-eta={self.recalculate_eta}"
        )

    @property
    def needs_fits(self) -> bool:
        return self.low_cuts.needs_fits or self.high_cuts.needs_fits

    def parameters(self) -> dict[str, bool]:
        """Switches stored together with the output histograms."""
        return {
            "angle": self.correct_angles,
            "lowSignal": self.zero_shared_hits_below_threshold,
            "simple": self.use_simple_merging,
            "sumThree": self.three_strip_sharing,
        }

    def describe(self, console: Console) -> None:
        """Print the configuration and the cut method of every ring."""
        table = Table(
            title="Sharing filter",
            show_header=False,
            title_style="bold cyan",
            expand=False,
        )
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        table.add_row("Debug", str(self.debug))
        table.add_row("Use corrected angles", str(self.correct_angles))
        table.add_row("Zero below threshold", str(self.zero_shared_hits_below_threshold))
        table.add_row("Use simple sharing", str(self.use_simple_merging))
        table.add_row("Consider invalid null", str(self.invalid_is_empty))
        table.add_row("Allow 3 strip merging", str(self.three_strip_sharing))
        table.add_row("Recalculate eta", str(self.recalculate_eta))
        console.print(table)

        cuts = Table(title="Cuts", header_style="bold magenta")
        cuts.add_column("Ring", style="bold")
        cuts.add_column("Low cut", style="green")
        cuts.add_column("High cut", style="yellow")
        for ring in RINGS:
            cuts.add_row(
                ring.name, self.low_cuts.method(ring), self.high_cuts.method(ring)
            )
        console.print(cuts)
