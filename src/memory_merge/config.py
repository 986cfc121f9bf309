from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

MergeStrategy = Literal[
    "card-grid", "last-value", "max-difference", "median", "max-brightness",
]
ImageFormat = Literal["png", "jpg"]

MERGE_STRATEGIES: tuple[str, ...] = (
    "card-grid", "last-value", "max-difference", "median", "max-brightness",
)


@dataclass(frozen=True)
class CardLayoutPercent:
    """Card grid geometry as fractions of the processed frame."""

    left: float = 0.07525
    top: float = 0.2295
    card_width: float = 0.092
    card_height: float = 0.22425
    gap_x: float = 0.01625
    gap_y: float = 0.02775


@dataclass(frozen=True)
class CardAreaBufferPercent:
    """Extra copy padding around each card, as a ratio of the card size."""

    left: float = 0.015
    right: float = 0.015
    top: float = 0.04
    bottom: float = 0.02

    def is_valid(self) -> bool:
        return self.left >= 0 and self.right >= 0 and self.top >= 0 and self.bottom >= 0


@dataclass(frozen=True)
class ActiveRangeRules:
    min_baseline_ratio: float = 0.015
    max_baseline_ratio: float = 0.35
    min_motion_ratio: float = 0.005
    min_active_streak: int = 2
    margin_frames: int = 2
    # Relaxed tier: motion must exceed this fraction of the peak motion ratio
    relaxed_motion_fraction: float = 0.35
    # Relaxed tier: baseline floor is min_baseline_ratio divided by this
    relaxed_baseline_divisor: float = 2.0


@dataclass(frozen=True)
class CellScoring:
    eval_inset_ratio: float = 0.12
    min_diff_ratio: float = 0.08
    max_local_motion_ratio: float = 0.25
    motion_penalty_scale: float = 25.0
    candidate_limit: int = 3


@dataclass(frozen=True)
class Config:
    # Sampling
    sampling_fps: float = 10.0
    baseline_offset_s: float = 0.1

    # Resolution
    scale_down: float = 0.5
    analysis_scale_down: float = 0.25

    # Pixel thresholds (0-255, mean absolute channel difference)
    threshold: float = 30.0
    motion_threshold: float = 14.0

    # Grid
    grid_rows: int = 3
    grid_cols: int = 8
    layout: CardLayoutPercent = field(default_factory=CardLayoutPercent)
    copy_buffer: CardAreaBufferPercent = field(default_factory=CardAreaBufferPercent)

    # Heuristics
    active_range: ActiveRangeRules = field(default_factory=ActiveRangeRules)
    scoring: CellScoring = field(default_factory=CellScoring)

    # Output
    sharpen_strength: float = 0.35
    strategy: MergeStrategy = "card-grid"
    output_format: ImageFormat = "png"

    # Progress
    progress_update_interval: int = 5

    @property
    def effective_analysis_scale(self) -> float:
        """Analysis frames are never decoded larger than output frames."""
        return min(self.scale_down, self.analysis_scale_down)

    def validate(self) -> None:
        """Raise ``ValueError`` for settings the pipeline cannot run with."""
        if self.sampling_fps <= 0:
            raise ValueError("sampling_fps must be > 0")
        if not 0 < self.scale_down <= 1:
            raise ValueError("scale_down must be in (0, 1]")
        if not 0 < self.analysis_scale_down <= 1:
            raise ValueError("analysis_scale_down must be in (0, 1]")
        if self.grid_rows < 1 or self.grid_cols < 1:
            raise ValueError("grid_rows and grid_cols must be >= 1")
        if self.scoring.candidate_limit < 1:
            raise ValueError("candidate_limit must be >= 1")
        if self.progress_update_interval < 1:
            raise ValueError("progress_update_interval must be >= 1")
        if self.strategy not in MERGE_STRATEGIES:
            raise ValueError(f"unknown merge strategy: {self.strategy}")
        if self.output_format not in ("png", "jpg"):
            raise ValueError(f"unsupported output format: {self.output_format}")
