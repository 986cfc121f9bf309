"""Runner-up filling of pixels the winning frame left face-down."""
from __future__ import annotations

import numpy as np

from memory_merge.compose.candidates import CardCandidate, CellAccumulator
from memory_merge.compose.fallback import FrameCache, fill_unresolved
from memory_merge.grid.regions import build_uniform_grid_regions

H = W = 8


def _acc(*pairs):
    candidates = tuple(CardCandidate(f, s) for f, s in pairs)
    return CellAccumulator(best_score=pairs[0][1], best_frame_index=pairs[0][0], candidates=candidates)


def _frames():
    top_right = np.zeros((H, W, 3), dtype=np.uint8)
    top_right[:4, 4:] = 100
    top_right[:, :4] = 90  # differs from baseline where the composite is already resolved
    right = np.zeros((H, W, 3), dtype=np.uint8)
    right[:, 4:] = 50
    return {3: top_right, 4: right}


class _Loader:
    def __init__(self, frames):
        self.frames = frames
        self.calls = []

    def __call__(self, index):
        self.calls.append(index)
        return self.frames[index]


def test_fills_in_rank_order_and_keeps_resolved_pixels():
    baseline = np.zeros((H, W, 3), dtype=np.uint8)
    composite = baseline.copy()
    composite[:, :4] = 200
    regions = build_uniform_grid_regions(W, H, 1, 1)
    loader = _Loader(_frames())

    filled = fill_unresolved(
        composite, baseline, regions, [_acc((1, 0.9), (3, 0.5), (4, 0.2))], FrameCache(loader), 30,
    )

    assert np.all(composite[:, :4] == 200)
    assert np.all(composite[:4, 4:] == 100)
    assert np.all(composite[4:, 4:] == 50)
    assert filled == 32
    assert loader.calls == [3, 4]


def test_runner_up_matching_baseline_leaves_pixel_alone():
    baseline = np.zeros((H, W, 3), dtype=np.uint8)
    composite = baseline.copy()
    faint = np.full((H, W, 3), 20, dtype=np.uint8)  # within threshold of baseline
    regions = build_uniform_grid_regions(W, H, 1, 1)

    filled = fill_unresolved(
        composite, baseline, regions, [_acc((1, 0.9), (2, 0.5))], FrameCache(lambda i: faint), 30,
    )
    assert filled == 0
    assert np.all(composite == 0)


def test_cells_with_single_candidate_skipped():
    baseline = np.zeros((H, W, 3), dtype=np.uint8)
    composite = baseline.copy()
    loader = _Loader(_frames())
    regions = build_uniform_grid_regions(W, H, 1, 1)

    fill_unresolved(composite, baseline, regions, [_acc((3, 0.9))], FrameCache(loader), 30)
    assert loader.calls == []
    assert np.all(composite == 0)


def test_frames_shared_between_cells_decoded_once():
    baseline = np.zeros((H, W, 3), dtype=np.uint8)
    composite = baseline.copy()
    loader = _Loader(_frames())
    regions = build_uniform_grid_regions(W, H, 1, 2)
    cache = FrameCache(loader)

    fill_unresolved(
        composite, baseline, regions, [_acc((1, 0.9), (4, 0.5)), _acc((2, 0.9), (4, 0.4))], cache, 30,
    )
    assert loader.calls == [4]
    assert len(cache) == 1
    cache.clear()
    assert len(cache) == 0
