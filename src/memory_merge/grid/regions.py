from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from memory_merge.config import CardAreaBufferPercent, CardLayoutPercent

log = logging.getLogger("memory_merge")


@dataclass(frozen=True)
class Rect:
    """Integer pixel bounds, half-open on the right and bottom edges."""

    left: int
    top: int
    right: int
    bottom: int

    @property
    def width(self) -> int:
        return self.right - self.left

    @property
    def height(self) -> int:
        return self.bottom - self.top

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def slices(self) -> tuple[slice, slice]:
        """``(rows, cols)`` slices for indexing an (H, W, C) array."""
        return slice(self.top, self.bottom), slice(self.left, self.right)

    def contains(self, other: Rect) -> bool:
        return (
            self.left <= other.left
            and self.top <= other.top
            and other.right <= self.right
            and other.bottom <= self.bottom
        )


@dataclass(frozen=True)
class GridCellRegion:
    copy_rect: Rect
    eval_rect: Rect
    eval_pixel_count: int


def _clamp(value: int, lo: int, hi: int) -> int:
    return max(lo, min(value, hi))


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def is_valid_layout(layout: CardLayoutPercent, rows: int, cols: int) -> bool:
    """True when the layout describes a grid that fits inside the frame."""
    if layout.card_width <= 0 or layout.card_height <= 0:
        return False
    if layout.gap_x < 0 or layout.gap_y < 0 or layout.left < 0 or layout.top < 0:
        return False

    total_width = layout.left + cols * layout.card_width + (cols - 1) * layout.gap_x
    total_height = layout.top + rows * layout.card_height + (rows - 1) * layout.gap_y
    return total_width <= 1 and total_height <= 1


def _eval_rect(nominal: Rect, inset_ratio: float) -> Rect:
    """Inset *nominal* on every side, keeping at least one pixel."""
    cell_w = max(1, nominal.width)
    cell_h = max(1, nominal.height)
    inset_x = int(math.floor(cell_w * inset_ratio))
    inset_y = int(math.floor(cell_h * inset_ratio))

    left = _clamp(nominal.left + inset_x, nominal.left, nominal.right - 1)
    right = _clamp(nominal.right - inset_x, left + 1, nominal.right)
    top = _clamp(nominal.top + inset_y, nominal.top, nominal.bottom - 1)
    bottom = _clamp(nominal.bottom - inset_y, top + 1, nominal.bottom)
    return Rect(left, top, right, bottom)


def _make_region(copy_rect: Rect, nominal: Rect, inset_ratio: float) -> GridCellRegion:
    ev = _eval_rect(nominal, inset_ratio)
    return GridCellRegion(
        copy_rect=copy_rect,
        eval_rect=ev,
        eval_pixel_count=max(1, ev.area),
    )


def build_uniform_grid_regions(
    width: int,
    height: int,
    rows: int,
    cols: int,
    eval_inset_ratio: float = 0.12,
) -> list[GridCellRegion]:
    """Partition the whole frame evenly into ``rows x cols`` cells, row-major."""
    if rows < 1 or cols < 1:
        raise ValueError("rows and cols must be >= 1")

    x_edges = [round_half_up(i / cols * width) for i in range(cols + 1)]
    y_edges = [round_half_up(j / rows * height) for j in range(rows + 1)]

    regions: list[GridCellRegion] = []
    for row in range(rows):
        for col in range(cols):
            left, right = x_edges[col], x_edges[col + 1]
            top, bottom = y_edges[row], y_edges[row + 1]
            # Frames smaller than the grid collapse some cells; keep them 1px wide
            left = min(left, width - 1)
            right = max(right, left + 1)
            top = min(top, height - 1)
            bottom = max(bottom, top + 1)
            nominal = Rect(left, top, right, bottom)
            regions.append(_make_region(nominal, nominal, eval_inset_ratio))
    return regions


def build_grid_regions(
    width: int,
    height: int,
    rows: int,
    cols: int,
    layout: CardLayoutPercent,
    buffer: CardAreaBufferPercent,
    eval_inset_ratio: float = 0.12,
) -> list[GridCellRegion]:
    """Build one evaluation/copy region pair per card from a percentage layout.

    Falls back to :func:`build_uniform_grid_regions` when *layout* does not fit
    inside the frame.
    """
    if rows < 1 or cols < 1:
        raise ValueError("rows and cols must be >= 1")

    if not is_valid_layout(layout, rows, cols):
        log.warning("Card layout %s does not fit the frame, using uniform %dx%d grid", layout, rows, cols)
        return build_uniform_grid_regions(width, height, rows, cols, eval_inset_ratio)

    pad = buffer.is_valid()
    max_left = max(0, width - 2)
    max_top = max(0, height - 2)

    regions: list[GridCellRegion] = []
    for row in range(rows):
        for col in range(cols):
            left_pct = layout.left + col * (layout.card_width + layout.gap_x)
            top_pct = layout.top + row * (layout.card_height + layout.gap_y)

            left = _clamp(round_half_up(left_pct * width), 0, max_left)
            right = _clamp(round_half_up((left_pct + layout.card_width) * width), left + 1, width)
            top = _clamp(round_half_up(top_pct * height), 0, max_top)
            bottom = _clamp(round_half_up((top_pct + layout.card_height) * height), top + 1, height)
            nominal = Rect(left, top, right, bottom)

            if pad:
                cell_w = max(1, nominal.width)
                cell_h = max(1, nominal.height)
                copy_left = _clamp(left - round_half_up(cell_w * buffer.left), 0, max_left)
                copy_right = _clamp(right + round_half_up(cell_w * buffer.right), copy_left + 1, width)
                copy_top = _clamp(top - round_half_up(cell_h * buffer.top), 0, max_top)
                copy_bottom = _clamp(bottom + round_half_up(cell_h * buffer.bottom), copy_top + 1, height)
                copy_rect = Rect(copy_left, copy_top, copy_right, copy_bottom)
            else:
                copy_rect = nominal

            regions.append(_make_region(copy_rect, nominal, eval_inset_ratio))
    return regions
