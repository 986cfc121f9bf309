"""Whole-frame per-pixel merges that ignore the card grid.

Each strategy starts from the baseline frame and walks every sampled frame
once at output resolution.  They are cheaper than the card-grid pipeline but
blend flip animations and overlays into the result.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np

from memory_merge.analysis.frame_analyzer import frame_time, sampled_frame_count, scaled_size
from memory_merge.analysis.pixel_metrics import brightness_map, delta_map
from memory_merge.config import Config
from memory_merge.media.source import FrameSource
from memory_merge.pipeline.progress import ProgressReporter, should_report

log = logging.getLogger("memory_merge")


class _Merger:
    def __init__(self, baseline: np.ndarray, threshold: float) -> None:
        self.baseline = baseline
        self.threshold = threshold
        self.result = baseline.copy()

    def add(self, frame: np.ndarray) -> None:
        raise NotImplementedError

    def finish(self) -> np.ndarray:
        return self.result


class LastValueMerger(_Merger):
    """Changed pixels take the value of the latest frame that changed them."""

    def add(self, frame: np.ndarray) -> None:
        mask = delta_map(frame, self.baseline) > self.threshold
        self.result[mask] = frame[mask]


class MaxDifferenceMerger(_Merger):
    """Changed pixels keep the value that differed most from the baseline."""

    def __init__(self, baseline: np.ndarray, threshold: float) -> None:
        super().__init__(baseline, threshold)
        self._best = np.zeros(baseline.shape[:2], dtype=np.float32)

    def add(self, frame: np.ndarray) -> None:
        diff = delta_map(frame, self.baseline)
        mask = (diff > self.threshold) & (diff > self._best)
        self._best[mask] = diff[mask]
        self.result[mask] = frame[mask]


class MaxBrightnessMerger(_Merger):
    """Changed pixels keep the brightest value seen, starting from the baseline's."""

    def __init__(self, baseline: np.ndarray, threshold: float) -> None:
        super().__init__(baseline, threshold)
        self._best = brightness_map(baseline)

    def add(self, frame: np.ndarray) -> None:
        brightness = brightness_map(frame)
        mask = (delta_map(frame, self.baseline) > self.threshold) & (brightness > self._best)
        self._best[mask] = brightness[mask]
        self.result[mask] = frame[mask]


class MedianMerger(_Merger):
    """Per-channel upper median of every changed value; untouched pixels keep the baseline.

    Holds every changed value in memory, so it is meant for short recordings.
    """

    def __init__(self, baseline: np.ndarray, threshold: float) -> None:
        super().__init__(baseline, threshold)
        self._frames: list[np.ndarray] = []
        self._masks: list[np.ndarray] = []

    def add(self, frame: np.ndarray) -> None:
        self._frames.append(frame[..., :3].copy())
        self._masks.append(delta_map(frame, self.baseline) > self.threshold)

    def finish(self) -> np.ndarray:
        if not self._frames:
            return self.result

        stack = np.stack(self._frames).astype(np.float32)  # (N, H, W, 3)
        masks = np.stack(self._masks)                       # (N, H, W)
        counts = masks.sum(axis=0)
        # Unchanged samples sort to the end, so the upper median of the
        # changed values sits at index count // 2.
        stack[~masks] = np.inf
        stack.sort(axis=0)
        pick = (counts // 2)[None, :, :, None]
        median = np.take_along_axis(stack, np.broadcast_to(pick, (1,) + stack.shape[1:]), axis=0)[0]

        has_values = counts > 0
        self.result[has_values, :3] = median[has_values].astype(np.uint8)
        return self.result


MERGERS: dict[str, Callable[[np.ndarray, float], _Merger]] = {
    "last-value": LastValueMerger,
    "max-difference": MaxDifferenceMerger,
    "median": MedianMerger,
    "max-brightness": MaxBrightnessMerger,
}


def merge_pixels(
    source: FrameSource,
    cfg: Config,
    on_progress: Optional[Callable[[int, int], None]] = None,
) -> np.ndarray:
    """Run the per-pixel strategy named by ``cfg.strategy`` over all sampled frames."""
    try:
        factory = MERGERS[cfg.strategy]
    except KeyError:
        raise ValueError(f"Not a per-pixel merge strategy: {cfg.strategy}") from None

    size = scaled_size(source.width, source.height, cfg.scale_down)
    frame_count = sampled_frame_count(source.duration, cfg.sampling_fps)
    # Same scale as the card-grid pipeline: two units per sampled frame
    progress = ProgressReporter(2 * frame_count, on_progress)
    progress.report(0)

    baseline = source.seek(source.duration - cfg.baseline_offset_s, size)
    merger = factory(baseline, cfg.threshold)
    log.info("Per-pixel %s merge over %d frames", cfg.strategy, frame_count)

    for index in range(frame_count):
        merger.add(source.seek(frame_time(index, cfg.sampling_fps), size))
        done = index + 1
        if should_report(done, frame_count, cfg.progress_update_interval):
            progress.report(2 * done)

    return merger.finish()
