from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from memory_merge.config import Config
from memory_merge.logging_utils import attach_run_log, detach_run_log
from memory_merge.media.source import VideoSourceError
from memory_merge.output.naming import output_name
from memory_merge.output.report import write_report
from memory_merge.pipeline.processor import process_video_file
from memory_merge.pipeline.progress import LoggingProgress
from memory_merge.run_id import generate_run_id

log = logging.getLogger("memory_merge")

VIDEO_SUFFIXES = (".mp4", ".webm", ".mov", ".mkv")


@dataclass
class BatchOutcome:
    out_dir: Path
    saved: List[Path] = field(default_factory=list)
    failed: List[Path] = field(default_factory=list)


def list_videos(directory: Path) -> list[Path]:
    """Video files directly inside *directory*, sorted by name."""
    return sorted(
        (p for p in directory.iterdir() if p.is_file() and p.suffix.lower() in VIDEO_SUFFIXES),
        key=lambda p: p.name,
    )


def process_one(video: Path, out_file: Path, cfg: Config, report: bool = False) -> Path:
    """Merge *video* into *out_file*, optionally with a JSON report beside it."""
    result = process_video_file(video, LoggingProgress(video.name), cfg)
    out_file.parent.mkdir(parents=True, exist_ok=True)
    out_file.write_bytes(result.image)
    if report:
        write_report(out_file.with_suffix(".json"), result.summary)
    return out_file


def run_batch(
    input_dir: Path,
    output_root: Path,
    cfg: Config,
    report: bool = False,
    run_id: Optional[str] = None,
) -> BatchOutcome:
    """Process every video in *input_dir* into ``output_root/<run id>/``.

    A failing video is logged and skipped; the others still run.
    """
    videos = list_videos(input_dir)
    if not videos:
        raise RuntimeError(
            f"No videos found in {input_dir} (looked for {', '.join(VIDEO_SUFFIXES)})"
        )

    out_dir = output_root / (run_id or generate_run_id())
    out_dir.mkdir(parents=True, exist_ok=True)
    outcome = BatchOutcome(out_dir=out_dir)
    run_log = attach_run_log(out_dir)
    try:
        log.info("Processing %d videos from %s", len(videos), input_dir)
        for index, video in enumerate(videos):
            name = output_name(video, cfg.output_format)
            try:
                process_one(video, out_dir / name, cfg, report=report)
            except (VideoSourceError, RuntimeError, OSError) as exc:
                log.error("[%d/%d] Failed %s: %s", index + 1, len(videos), video.name, exc)
                outcome.failed.append(video)
                continue
            outcome.saved.append(out_dir / name)
            log.info("[%d/%d] Saved %s", index + 1, len(videos), name)

        log.info(
            "Done — %d saved, %d failed. Run output directory: %s",
            len(outcome.saved), len(outcome.failed), out_dir,
        )
    finally:
        detach_run_log(run_log)
    return outcome
