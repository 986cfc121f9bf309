from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from memory_merge.analysis.frame_analyzer import AnalysisResult, frame_time
from memory_merge.analysis.pixel_metrics import brightness_map, delta_map
from memory_merge.compose.candidates import CellAccumulator
from memory_merge.config import CellScoring, Config
from memory_merge.grid.regions import GridCellRegion, Rect, round_half_up
from memory_merge.media.source import FrameSource
from memory_merge.pipeline.progress import ProgressReporter, should_report

log = logging.getLogger("memory_merge")


@dataclass(frozen=True)
class CellScore:
    changed_ratio: float
    local_motion_ratio: float
    brightness_variance: float
    score: float


@dataclass(frozen=True)
class MergeResult:
    image: np.ndarray
    accumulators: list[CellAccumulator]
    merge_frames: list[int]


def score_cell(
    frame: np.ndarray,
    region: GridCellRegion,
    baseline: np.ndarray,
    previous: Optional[np.ndarray],
    fallback_motion: float,
    scoring: CellScoring,
    threshold: float,
    motion_threshold: float,
) -> Optional[CellScore]:
    """Score how clearly *frame* shows a revealed card in *region*.

    Returns ``None`` when too little of the cell differs from the baseline or
    when the cell is still moving too much (mid-flip).  Without a *previous*
    frame, *fallback_motion* stands in for the local motion ratio.
    """
    rows, cols = region.eval_rect.slices
    count = float(region.eval_pixel_count)
    patch = frame[rows, cols]

    changed = np.count_nonzero(delta_map(patch, baseline[rows, cols]) > threshold)
    changed_ratio = changed / count
    if changed_ratio < scoring.min_diff_ratio:
        return None

    if previous is not None:
        moving = np.count_nonzero(delta_map(patch, previous[rows, cols]) > motion_threshold)
        local_motion = moving / count
    else:
        local_motion = fallback_motion
    if local_motion > scoring.max_local_motion_ratio:
        return None

    brightness = brightness_map(patch)
    mean = float(brightness.sum()) / count
    variance = max(0.0, float(np.square(brightness).sum()) / count - mean * mean)
    penalty = 1.0 / (1.0 + local_motion * scoring.motion_penalty_scale)

    return CellScore(
        changed_ratio=changed_ratio,
        local_motion_ratio=local_motion,
        brightness_variance=variance,
        score=changed_ratio * variance * penalty,
    )


def copy_rect_pixels(source: np.ndarray, target: np.ndarray, rect: Rect) -> None:
    rows, cols = rect.slices
    target[rows, cols] = source[rows, cols]


def composite_cells(
    source: FrameSource,
    analysis: AnalysisResult,
    merge_frames: Sequence[int],
    regions: Sequence[GridCellRegion],
    cfg: Config,
    progress: Optional[ProgressReporter] = None,
) -> MergeResult:
    """Second pass: keep, per cell, the pixels of the best-scoring merge frame."""
    composite = analysis.baseline.copy()
    baseline = analysis.baseline
    accumulators = [CellAccumulator() for _ in regions]
    frame_count = analysis.frame_count
    merge_count = len(merge_frames)
    limit = cfg.scoring.candidate_limit

    log.info("Merging %d frames over %d cells", merge_count, len(regions))

    previous: Optional[np.ndarray] = None
    for merge_index, frame_index in enumerate(merge_frames):
        frame = source.seek(frame_time(frame_index, cfg.sampling_fps), analysis.output_size)
        fallback_motion = analysis.metrics[frame_index].motion_ratio

        for cell_index, region in enumerate(regions):
            scored = score_cell(
                frame, region, baseline, previous, fallback_motion,
                cfg.scoring, cfg.threshold, cfg.motion_threshold,
            )
            if scored is None:
                continue
            acc, improved = accumulators[cell_index].update(frame_index, scored.score, limit)
            accumulators[cell_index] = acc
            if improved:
                copy_rect_pixels(frame, composite, region.copy_rect)

        done = merge_index + 1
        if progress is not None and should_report(done, merge_count, cfg.progress_update_interval):
            progress.report(frame_count + max(1, round_half_up(done / merge_count * frame_count)))

        previous = frame

    resolved = sum(1 for acc in accumulators if acc.best_frame_index >= 0)
    log.info("Resolved %d/%d cells", resolved, len(regions))
    return MergeResult(image=composite, accumulators=accumulators, merge_frames=list(merge_frames))
