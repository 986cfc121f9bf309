from __future__ import annotations

import numpy as np


def pixel_delta(first: np.ndarray, second: np.ndarray, pos: tuple[int, int]) -> float:
    """Mean absolute difference of the three colour channels at *pos* ``(row, col)``.

    A fourth (alpha) channel is ignored.
    """
    a = first[pos][:3].astype(np.int16)
    b = second[pos][:3].astype(np.int16)
    return float(np.abs(a - b).sum()) / 3.0


def pixel_brightness(pixels: np.ndarray, pos: tuple[int, int]) -> float:
    """Mean of the three colour channels at *pos* ``(row, col)``."""
    return float(pixels[pos][:3].astype(np.int16).sum()) / 3.0


def delta_map(first: np.ndarray, second: np.ndarray) -> np.ndarray:
    """Per-pixel ``pixel_delta`` over two equally-shaped images, as float32 (H, W)."""
    a = first[..., :3].astype(np.int16)
    b = second[..., :3].astype(np.int16)
    return np.abs(a - b).sum(axis=-1, dtype=np.int32).astype(np.float32) / 3.0


def brightness_map(pixels: np.ndarray) -> np.ndarray:
    """Per-pixel ``pixel_brightness`` as float64 (H, W)."""
    return pixels[..., :3].sum(axis=-1, dtype=np.int32).astype(np.float64) / 3.0


def changed_mask(first: np.ndarray, second: np.ndarray, threshold: float) -> np.ndarray:
    """Boolean mask of pixels whose delta is strictly above *threshold*."""
    return delta_map(first, second) > threshold


def changed_ratio(first: np.ndarray, second: np.ndarray, threshold: float) -> float:
    """Fraction of pixels whose delta is strictly above *threshold*."""
    mask = changed_mask(first, second, threshold)
    if mask.size == 0:
        return 0.0
    return float(np.count_nonzero(mask)) / float(mask.size)
