"""Run the sharing filter over event files."""

from collections.abc import Sequence
from pathlib import Path
from typing import Any, TypedDict

from fmd_sharing.core.dead_strips import DeadStrips
from fmd_sharing.core.eloss_fits import ELossFits
from fmd_sharing.core.sharing import SharingConfig, SharingCounts, SharingFilter
from fmd_sharing.core.sharing.histograms import SharingHistograms
from fmd_sharing.core.utils.io_utils import read_events, write_events
from fmd_sharing.core.utils.log_utils import log


class SharingOutputs(TypedDict):
    n_events: int
    event_files: list[Path]
    histogram_file: Path
    counts: SharingCounts


def run_sharing(
    input_files: Sequence[Path],
    output_dir: Path,
    config: SharingConfig,
    fits_file: Path | None = None,
    dead_file: Path | None = None,
    write_output_events: bool = True,
    progress: Any | None = None,
    task_id: Any | None = None,
) -> SharingOutputs:
    """
    Filter every event of ``input_files``.

    Merged events are written next to each other in ``output_dir`` as
    ``<input stem>_shared.fits``; the diagnostics of the whole run go to
    ``sharing_histograms.fits``.
    """
    if not input_files:
        raise FileNotFoundError("No event files to process")

    fits = ELossFits.read(fits_file) if fits_file is not None else None
    dead = DeadStrips.load(dead_file) if dead_file is not None else DeadStrips()

    sharing = SharingFilter(config=config, fits=fits, dead=dead)
    sharing.setup_for_data()

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    event_files: list[Path] = []
    n_events = 0
    for idx, path in enumerate(input_files):
        if progress is not None and task_id is not None:
            progress.update(
                task_id,
                completed=idx,
                total=len(input_files),
                description=f"[cyan]Filtering file {idx + 1}/{len(input_files)}...",
            )

        merged = []
        n_file = 0
        for event in read_events(path):
            result = sharing.filter(event)
            n_file += 1
            if write_output_events:
                merged.append(result.output)
        n_events += n_file

        if n_file == 0:
            log.warning(f"No events in {path.name}")
            continue
        if merged:
            event_files.append(
                write_events(output_dir / f"{Path(path).stem}_shared.fits", merged)
            )
        log.info(f"Filtered {n_file} events from {path.name}")

    if progress is not None and task_id is not None:
        progress.update(task_id, completed=len(input_files), total=len(input_files))

    histogram_file = sharing.histograms.write(output_dir / "sharing_histograms.fits")
    log.info(
        f"Processed {n_events} events: single={sharing.totals.single}, "
        f"double={sharing.totals.double}, triple={sharing.totals.triple}"
    )
    return {
        "n_events": n_events,
        "event_files": event_files,
        "histogram_file": histogram_file,
        "counts": sharing.totals,
    }


def merge_histogram_files(paths: Sequence[Path]) -> SharingHistograms:
    """Add up the histograms of several runs."""
    if not paths:
        raise FileNotFoundError("No histogram files to merge")
    merged = SharingHistograms.read(paths[0])
    for path in paths[1:]:
        merged.merge(SharingHistograms.read(path))
    log.info(f"Merged {len(paths)} histogram files ({merged.n_events} events)")
    return merged
