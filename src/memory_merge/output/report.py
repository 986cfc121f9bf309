from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class CellReport:
    cell: int
    row: int
    col: int
    best_frame: Optional[int]
    best_score: Optional[float]
    candidates: List[Dict[str, float]] = field(default_factory=list)


@dataclass(frozen=True)
class RunSummary:
    strategy: str
    source_size: List[int]
    output_size: List[int]
    frame_count: int
    duration_s: float
    layout_mode: Optional[str] = None
    active_range: Optional[List[int]] = None
    merge_frames: List[int] = field(default_factory=list)
    filled_pixels: int = 0
    cells: List[CellReport] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def write_report(path: Path, summary: RunSummary) -> None:
    """Serialise *summary* as pretty-printed JSON to *path*."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(summary.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
