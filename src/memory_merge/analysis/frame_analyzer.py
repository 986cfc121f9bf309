from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from memory_merge.analysis.pixel_metrics import changed_ratio
from memory_merge.config import Config
from memory_merge.media.source import DegenerateVideoError, FrameSource
from memory_merge.pipeline.progress import ProgressReporter, should_report

log = logging.getLogger("memory_merge")


@dataclass(frozen=True)
class FrameMetrics:
    baseline_ratio: float  # fraction of pixels differing from the baseline frame
    motion_ratio: float    # fraction of pixels differing from the previous sampled frame


@dataclass(frozen=True)
class AnalysisResult:
    metrics: list[FrameMetrics]
    baseline: np.ndarray           # baseline frame at output size
    analysis_baseline: np.ndarray  # baseline frame at analysis size
    output_size: tuple[int, int]   # (width, height)
    analysis_size: tuple[int, int]

    @property
    def frame_count(self) -> int:
        return len(self.metrics)


def scaled_size(width: int, height: int, scale: float) -> tuple[int, int]:
    """``(width, height)`` scaled by *scale*, floored, at least 1x1."""
    return max(1, int(math.floor(width * scale))), max(1, int(math.floor(height * scale)))


def sampled_frame_count(duration: float, sampling_fps: float) -> int:
    return max(1, int(math.floor(duration * sampling_fps)))


def frame_time(index: int, sampling_fps: float) -> float:
    return index / sampling_fps


def analyze_frames(
    source: FrameSource,
    cfg: Config,
    progress: Optional[ProgressReporter] = None,
) -> AnalysisResult:
    """Single pass over the sampled frames computing baseline and motion ratios.

    The baseline is the frame ``baseline_offset_s`` before the end of the video,
    where the board is usually back to all cards face down.
    """
    if source.duration <= 0:
        raise DegenerateVideoError("Video has non-positive duration")
    if source.width <= 0 or source.height <= 0:
        raise DegenerateVideoError(f"Video has degenerate frame size {source.width}x{source.height}")

    output_size = scaled_size(source.width, source.height, cfg.scale_down)
    analysis_size = scaled_size(source.width, source.height, cfg.effective_analysis_scale)
    frame_count = sampled_frame_count(source.duration, cfg.sampling_fps)

    if progress is not None:
        progress.report(1)

    baseline_time = source.duration - cfg.baseline_offset_s
    analysis_baseline = source.seek(baseline_time, analysis_size)
    baseline = source.seek(baseline_time, output_size)

    log.info(
        "Analysing %d frames at %.1f fps (%dx%d analysis, %dx%d output)",
        frame_count, cfg.sampling_fps, *analysis_size, *output_size,
    )

    metrics: list[FrameMetrics] = []
    previous: Optional[np.ndarray] = None
    for index in range(frame_count):
        current = source.seek(frame_time(index, cfg.sampling_fps), analysis_size)

        baseline_ratio = changed_ratio(current, analysis_baseline, cfg.threshold)
        motion_ratio = 0.0 if previous is None else changed_ratio(current, previous, cfg.motion_threshold)
        metrics.append(FrameMetrics(baseline_ratio=baseline_ratio, motion_ratio=motion_ratio))
        previous = current

        log.debug("frame %d: baseline=%.4f motion=%.4f", index, baseline_ratio, motion_ratio)

        done = index + 1
        if progress is not None and should_report(done, frame_count, cfg.progress_update_interval):
            progress.report(done)

    return AnalysisResult(
        metrics=metrics,
        baseline=baseline,
        analysis_baseline=analysis_baseline,
        output_size=output_size,
        analysis_size=analysis_size,
    )
