from __future__ import annotations

import logging
from typing import Callable, Sequence

import numpy as np

from memory_merge.analysis.pixel_metrics import changed_mask
from memory_merge.compose.candidates import CellAccumulator
from memory_merge.grid.regions import GridCellRegion

log = logging.getLogger("memory_merge")

FrameLoader = Callable[[int], np.ndarray]


class FrameCache:
    """Decoded output-size frames keyed by frame index."""

    def __init__(self, loader: FrameLoader) -> None:
        self._loader = loader
        self._frames: dict[int, np.ndarray] = {}

    def get(self, frame_index: int) -> np.ndarray:
        frame = self._frames.get(frame_index)
        if frame is None:
            frame = self._loader(frame_index)
            self._frames[frame_index] = frame
        return frame

    def __len__(self) -> int:
        return len(self._frames)

    def clear(self) -> None:
        self._frames.clear()


def fill_unresolved(
    composite: np.ndarray,
    baseline: np.ndarray,
    regions: Sequence[GridCellRegion],
    accumulators: Sequence[CellAccumulator],
    cache: FrameCache,
    threshold: float,
) -> int:
    """Patch copy-rect pixels still matching the baseline from runner-up frames.

    Runner-ups are tried in rank order; a pixel is taken from the first one
    that differs from the baseline there.  Pixels already differing from the
    baseline are left alone.  Mutates *composite* and returns the number of
    pixels filled.
    """
    filled = 0
    for region, acc in zip(regions, accumulators):
        if len(acc.candidates) < 2:
            continue

        rows, cols = region.copy_rect.slices
        target = composite[rows, cols]
        base = baseline[rows, cols]
        for candidate in acc.runners_up:
            unresolved = ~changed_mask(target, base, threshold)
            if not unresolved.any():
                break
            fallback = cache.get(candidate.frame_index)[rows, cols]
            take = unresolved & changed_mask(fallback, base, threshold)
            target[take] = fallback[take]
            filled += int(np.count_nonzero(take))

    if filled:
        log.info("Filled %d unresolved pixels from runner-up frames", filled)
    return filled
