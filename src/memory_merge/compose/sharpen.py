from __future__ import annotations

import cv2
import numpy as np


def sharpen_kernel(strength: float) -> np.ndarray:
    """3x3 unsharp-mask kernel: centre ``1 + 4s``, four neighbours ``-s``."""
    s = float(strength)
    return np.array(
        [
            [0.0, -s, 0.0],
            [-s, 1.0 + 4.0 * s, -s],
            [0.0, -s, 0.0],
        ],
        dtype=np.float32,
    )


def apply_sharpen(image: np.ndarray, strength: float) -> np.ndarray:
    """Sharpen the interior of *image*; border pixels are returned unchanged.

    No-op (a copy) when *strength* <= 0 or the image is smaller than 3x3.
    """
    h, w = image.shape[:2]
    out = image.copy()
    if strength <= 0 or w < 3 or h < 3:
        return out

    colour = image[..., :3].astype(np.float32)
    filtered = cv2.filter2D(colour, -1, sharpen_kernel(strength), borderType=cv2.BORDER_REPLICATE)
    sharpened = np.clip(np.floor(filtered + 0.5), 0, 255).astype(np.uint8)
    out[1:-1, 1:-1, :3] = sharpened[1:-1, 1:-1]
    return out
