from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from memory_merge.analysis.active_range import detect_active_range, select_merge_frames
from memory_merge.analysis.frame_analyzer import analyze_frames, frame_time, sampled_frame_count, scaled_size
from memory_merge.compose.compositor import MergeResult, composite_cells
from memory_merge.compose.fallback import FrameCache, fill_unresolved
from memory_merge.compose.sharpen import apply_sharpen
from memory_merge.compose.strategies import merge_pixels
from memory_merge.config import Config
from memory_merge.grid.regions import build_grid_regions, is_valid_layout
from memory_merge.media.source import FrameSource, OpenCVFrameSource, VideoSourceError
from memory_merge.output.report import CellReport, RunSummary
from memory_merge.pipeline.progress import ProgressCallback, ProgressReporter

log = logging.getLogger("memory_merge")


@dataclass(frozen=True)
class ProcessResult:
    image: bytes
    summary: RunSummary


def encode_image(image: np.ndarray, image_format: str = "png") -> bytes:
    ext = ".png" if image_format == "png" else ".jpg"
    ok, buf = cv2.imencode(ext, image)
    if not ok:
        raise RuntimeError(f"Unable to encode result image as {image_format}")
    return buf.tobytes()


def _cell_reports(merge: MergeResult, cols: int) -> list[CellReport]:
    reports: list[CellReport] = []
    for index, acc in enumerate(merge.accumulators):
        resolved = acc.best_frame_index >= 0
        reports.append(CellReport(
            cell=index,
            row=index // cols,
            col=index % cols,
            best_frame=acc.best_frame_index if resolved else None,
            best_score=acc.best_score if resolved else None,
            candidates=[{"frame": c.frame_index, "score": c.score} for c in acc.candidates],
        ))
    return reports


def run_card_grid(
    source: FrameSource,
    cfg: Config,
    on_progress: Optional[ProgressCallback] = None,
) -> tuple[np.ndarray, RunSummary]:
    """Analyse, pick the active range, merge per card, fill gaps and sharpen."""
    frame_count = sampled_frame_count(source.duration, cfg.sampling_fps)
    progress = ProgressReporter(2 * frame_count, on_progress)
    progress.report(0)

    analysis = analyze_frames(source, cfg, progress)
    rules = cfg.active_range
    active = detect_active_range(analysis.metrics, rules)
    merge_frames = select_merge_frames(analysis.metrics, active, rules)
    log.info(
        "Active range %d..%d of %d frames, %d merge frames",
        active.start, active.end, analysis.frame_count, len(merge_frames),
    )

    width, height = analysis.output_size
    regions = build_grid_regions(
        width, height, cfg.grid_rows, cfg.grid_cols,
        cfg.layout, cfg.copy_buffer, cfg.scoring.eval_inset_ratio,
    )
    merge = composite_cells(source, analysis, merge_frames, regions, cfg, progress)

    cache = FrameCache(lambda index: source.seek(frame_time(index, cfg.sampling_fps), analysis.output_size))
    try:
        filled = fill_unresolved(merge.image, analysis.baseline, regions, merge.accumulators, cache, cfg.threshold)
    finally:
        cache.clear()

    progress.finish()
    image = apply_sharpen(merge.image, cfg.sharpen_strength)

    summary = RunSummary(
        strategy=cfg.strategy,
        source_size=[source.width, source.height],
        output_size=[width, height],
        frame_count=analysis.frame_count,
        duration_s=round(source.duration, 3),
        layout_mode="percent" if is_valid_layout(cfg.layout, cfg.grid_rows, cfg.grid_cols) else "uniform",
        active_range=[active.start, active.end],
        merge_frames=merge.merge_frames,
        filled_pixels=filled,
        cells=_cell_reports(merge, cfg.grid_cols),
    )
    return image, summary


def run_strategy(
    source: FrameSource,
    cfg: Config,
    on_progress: Optional[ProgressCallback] = None,
) -> tuple[np.ndarray, RunSummary]:
    """Dispatch on ``cfg.strategy``."""
    if cfg.strategy == "card-grid":
        return run_card_grid(source, cfg, on_progress)

    image = merge_pixels(source, cfg, on_progress)
    width, height = scaled_size(source.width, source.height, cfg.scale_down)
    summary = RunSummary(
        strategy=cfg.strategy,
        source_size=[source.width, source.height],
        output_size=[width, height],
        frame_count=sampled_frame_count(source.duration, cfg.sampling_fps),
        duration_s=round(source.duration, 3),
    )
    return image, summary


def process_video(
    video_bytes: bytes,
    on_progress: Optional[ProgressCallback] = None,
    cfg: Optional[Config] = None,
    suffix: Optional[str] = None,
) -> ProcessResult:
    """Decode *video_bytes* and return the merged image with a run summary.

    Decode failures propagate as :class:`VideoSourceError` subclasses.
    """
    cfg = cfg or Config()
    cfg.validate()

    with OpenCVFrameSource.from_bytes(video_bytes, suffix=suffix) as source:
        image, summary = run_strategy(source, cfg, on_progress)

    return ProcessResult(image=encode_image(image, cfg.output_format), summary=summary)


def process_video_to_image(
    video_bytes: bytes,
    on_progress: Optional[ProgressCallback] = None,
    cfg: Optional[Config] = None,
) -> bytes:
    """Merge the revealed cards of a memory-game recording into one encoded image."""
    return process_video(video_bytes, on_progress, cfg).image


def process_video_file(
    path: Path,
    on_progress: Optional[ProgressCallback] = None,
    cfg: Optional[Config] = None,
) -> ProcessResult:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise VideoSourceError(f"Unable to read video file {path}: {exc}") from exc
    return process_video(data, on_progress, cfg, suffix=path.suffix or None)
