from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from memory_merge.config import (
    MERGE_STRATEGIES,
    ActiveRangeRules,
    CardAreaBufferPercent,
    CardLayoutPercent,
    CellScoring,
    Config,
)
from memory_merge.logging_utils import setup_logging
from memory_merge.media.source import VideoSourceError
from memory_merge.output.naming import output_name
from memory_merge.pipeline.batch import process_one, run_batch


def build_parser() -> argparse.ArgumentParser:
    d = Config()
    layout = CardLayoutPercent()
    buffer = CardAreaBufferPercent()
    rules = ActiveRangeRules()
    scoring = CellScoring()

    p = argparse.ArgumentParser(
        prog="memory-merge",
        description="Merge the revealed cards of a memory-game screen recording into one image.",
    )
    p.add_argument("input", type=Path, help="Video file, or a directory of videos for batch mode.")
    p.add_argument(
        "--out", dest="out", type=Path, default=None,
        help="Output image (single file) or output root (batch, default artifacts/output).",
    )
    p.add_argument("--strategy", choices=MERGE_STRATEGIES, default=d.strategy)
    p.add_argument("--format", dest="output_format", choices=["png", "jpg"], default=d.output_format)
    p.add_argument("--report", action="store_true", help="Write a JSON run summary next to each image.")
    p.add_argument("-v", "--verbose", action="store_true")

    # Sampling / resolution
    p.add_argument("--fps", dest="sampling_fps", type=float, default=d.sampling_fps)
    p.add_argument("--scale", dest="scale_down", type=float, default=d.scale_down)
    p.add_argument("--analysis-scale", dest="analysis_scale_down", type=float, default=d.analysis_scale_down)
    p.add_argument("--baseline-offset-s", type=float, default=d.baseline_offset_s)

    # Thresholds
    p.add_argument("--threshold", type=float, default=d.threshold)
    p.add_argument("--motion-threshold", type=float, default=d.motion_threshold)

    # Active range
    p.add_argument("--min-baseline-ratio", type=float, default=rules.min_baseline_ratio)
    p.add_argument("--max-baseline-ratio", type=float, default=rules.max_baseline_ratio)
    p.add_argument("--min-motion-ratio", type=float, default=rules.min_motion_ratio)
    p.add_argument("--min-active-streak", type=int, default=rules.min_active_streak)
    p.add_argument("--margin-frames", type=int, default=rules.margin_frames)

    # Grid
    p.add_argument("--rows", dest="grid_rows", type=int, default=d.grid_rows)
    p.add_argument("--cols", dest="grid_cols", type=int, default=d.grid_cols)
    p.add_argument(
        "--layout", type=float, nargs=6,
        metavar=("LEFT", "TOP", "CARD_W", "CARD_H", "GAP_X", "GAP_Y"),
        default=[layout.left, layout.top, layout.card_width, layout.card_height, layout.gap_x, layout.gap_y],
    )
    p.add_argument(
        "--copy-buffer", type=float, nargs=4,
        metavar=("LEFT", "RIGHT", "TOP", "BOTTOM"),
        default=[buffer.left, buffer.right, buffer.top, buffer.bottom],
    )

    # Cell scoring
    p.add_argument("--min-diff-ratio", type=float, default=scoring.min_diff_ratio)
    p.add_argument("--max-local-motion-ratio", type=float, default=scoring.max_local_motion_ratio)
    p.add_argument("--candidates", dest="candidate_limit", type=int, default=scoring.candidate_limit)
    p.add_argument("--sharpen", dest="sharpen_strength", type=float, default=d.sharpen_strength)
    p.add_argument("--progress-interval", dest="progress_update_interval", type=int, default=d.progress_update_interval)

    return p


def config_from_args(args: argparse.Namespace) -> Config:
    base = ActiveRangeRules()
    base_scoring = CellScoring()
    return Config(
        sampling_fps=args.sampling_fps,
        baseline_offset_s=args.baseline_offset_s,
        scale_down=args.scale_down,
        analysis_scale_down=args.analysis_scale_down,
        threshold=args.threshold,
        motion_threshold=args.motion_threshold,
        grid_rows=args.grid_rows,
        grid_cols=args.grid_cols,
        layout=CardLayoutPercent(*args.layout),
        copy_buffer=CardAreaBufferPercent(*args.copy_buffer),
        active_range=ActiveRangeRules(
            min_baseline_ratio=args.min_baseline_ratio,
            max_baseline_ratio=args.max_baseline_ratio,
            min_motion_ratio=args.min_motion_ratio,
            min_active_streak=args.min_active_streak,
            margin_frames=args.margin_frames,
            relaxed_motion_fraction=base.relaxed_motion_fraction,
            relaxed_baseline_divisor=base.relaxed_baseline_divisor,
        ),
        scoring=CellScoring(
            eval_inset_ratio=base_scoring.eval_inset_ratio,
            min_diff_ratio=args.min_diff_ratio,
            max_local_motion_ratio=args.max_local_motion_ratio,
            motion_penalty_scale=base_scoring.motion_penalty_scale,
            candidate_limit=args.candidate_limit,
        ),
        sharpen_strength=args.sharpen_strength,
        strategy=args.strategy,
        output_format=args.output_format,
        progress_update_interval=args.progress_update_interval,
    )


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    log = setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    cfg = config_from_args(args)
    try:
        cfg.validate()
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        sys.exit(2)

    source: Path = args.input
    if source.is_dir():
        try:
            outcome = run_batch(source, args.out or Path("artifacts/output"), cfg, report=args.report)
        except RuntimeError as exc:
            log.error(str(exc))
            sys.exit(1)
        if outcome.failed:
            sys.exit(1)
        return

    if not source.is_file():
        print(f"Input not found: {source}", file=sys.stderr)
        sys.exit(2)

    out_file = args.out or source.with_name(output_name(source, cfg.output_format))
    try:
        process_one(source, out_file, cfg, report=args.report)
    except (VideoSourceError, RuntimeError, OSError) as exc:
        log.error("Video processing failed: %s", exc)
        sys.exit(1)
    log.info("Saved %s", out_file)


if __name__ == "__main__":
    main()
