from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Sequence


@dataclass(frozen=True)
class CardCandidate:
    frame_index: int
    score: float


def push_candidate(
    candidates: Sequence[CardCandidate], candidate: CardCandidate, limit: int,
) -> tuple[CardCandidate, ...]:
    """Insert *candidate* into a top-*limit* list sorted by descending score.

    An entry for the same frame keeps the higher of the two scores.
    """
    merged: list[CardCandidate] = []
    seen = False
    for existing in candidates:
        if existing.frame_index == candidate.frame_index:
            seen = True
            if candidate.score > existing.score:
                existing = replace(existing, score=candidate.score)
        merged.append(existing)
    if not seen:
        merged.append(candidate)

    merged.sort(key=lambda c: c.score, reverse=True)
    return tuple(merged[:limit])


@dataclass(frozen=True)
class CellAccumulator:
    """Running best score and ranked candidates for one grid cell."""

    best_score: float = -1.0
    best_frame_index: int = -1
    candidates: tuple[CardCandidate, ...] = ()

    def update(self, frame_index: int, score: float, limit: int) -> tuple[CellAccumulator, bool]:
        """Fold one scored frame in; the flag is True when it beat the running best."""
        ranked = push_candidate(self.candidates, CardCandidate(frame_index, score), limit)
        if score > self.best_score:
            return CellAccumulator(score, frame_index, ranked), True
        return replace(self, candidates=ranked), False

    @property
    def runners_up(self) -> tuple[CardCandidate, ...]:
        return self.candidates[1:]
