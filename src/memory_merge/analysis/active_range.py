from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from memory_merge.analysis.frame_analyzer import FrameMetrics
from memory_merge.config import ActiveRangeRules

log = logging.getLogger("memory_merge")

FramePredicate = Callable[[FrameMetrics], bool]


@dataclass(frozen=True)
class ActiveRange:
    """Inclusive frame-index bounds of the gameplay window."""

    start: int
    end: int

    def indices(self) -> range:
        return range(self.start, self.end + 1)

    def __len__(self) -> int:
        return self.end - self.start + 1


def baseline_in_band(m: FrameMetrics, rules: ActiveRangeRules) -> bool:
    return rules.min_baseline_ratio <= m.baseline_ratio <= rules.max_baseline_ratio


def strict_predicate(rules: ActiveRangeRules) -> FramePredicate:
    """Board differs moderately from baseline and something is moving."""
    return lambda m: baseline_in_band(m, rules) and m.motion_ratio >= rules.min_motion_ratio


def relaxed_predicate(metrics: Sequence[FrameMetrics], rules: ActiveRangeRules) -> FramePredicate:
    """Motion well above the recording's own peak, with a halved baseline floor."""
    peak_motion = max((m.motion_ratio for m in metrics), default=0.0)
    motion_floor = max(rules.min_motion_ratio, rules.relaxed_motion_fraction * peak_motion)
    baseline_floor = rules.min_baseline_ratio / rules.relaxed_baseline_divisor
    return lambda m: m.motion_ratio > motion_floor and m.baseline_ratio >= baseline_floor


def confirmed_range(
    flags: Sequence[bool], min_streak: int, margin: int,
) -> Optional[ActiveRange]:
    """First-to-last index of runs at least *min_streak* long, padded by *margin*.

    Returns ``None`` when no run qualifies.
    """
    streak = 0
    first = -1
    last = -1
    for index, flag in enumerate(flags):
        if not flag:
            streak = 0
            continue
        streak += 1
        if streak >= min_streak:
            if first == -1:
                first = index - streak + 1
            last = index

    if first == -1:
        return None
    return ActiveRange(
        start=max(0, first - margin),
        end=min(len(flags) - 1, last + margin),
    )


def detect_active_range(metrics: Sequence[FrameMetrics], rules: ActiveRangeRules) -> ActiveRange:
    """Find the gameplay window: strict rule, then motion-relaxed rule, then everything."""
    if not metrics:
        return ActiveRange(0, 0)

    min_streak = max(1, rules.min_active_streak)
    tiers = (
        ("strict", strict_predicate(rules)),
        ("relaxed", relaxed_predicate(metrics, rules)),
    )
    for name, predicate in tiers:
        found = confirmed_range([predicate(m) for m in metrics], min_streak, rules.margin_frames)
        if found is not None:
            if name != "strict":
                log.warning("No strict active streak found, using %s range %d..%d", name, found.start, found.end)
            return found

    log.warning("No active streak found, using all %d frames", len(metrics))
    return ActiveRange(0, len(metrics) - 1)


def select_merge_frames(
    metrics: Sequence[FrameMetrics], active: ActiveRange, rules: ActiveRangeRules,
) -> list[int]:
    """Frames in *active* that look like board content; never empty."""
    in_band = [i for i in active.indices() if baseline_in_band(metrics[i], rules)]
    if in_band:
        return in_band

    relaxed = relaxed_predicate(metrics, rules)
    moving = [i for i in active.indices() if relaxed(metrics[i])]
    if moving:
        log.warning("No merge frames in baseline band, using %d high-motion frames", len(moving))
        return moving

    log.warning("No merge frames matched, using all %d frames of the active range", len(active))
    return list(active.indices())
