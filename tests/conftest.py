"""Shared helpers: synthetic memory-game boards and in-memory frame sources."""
from __future__ import annotations

import math
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterable, List, Optional

import cv2
import numpy as np

from memory_merge.config import CardLayoutPercent, Config
from memory_merge.media.source import FrameSeekError, resize_frame

BOARD_W = 320
BOARD_H = 120
ROWS = 3
COLS = 8
FACE_DOWN = (90, 90, 90)

# Fits nothing, so every test board uses the uniform grid
UNIFORM_LAYOUT = CardLayoutPercent(left=0.9, top=0.0, card_width=0.2, card_height=0.2, gap_x=0.0, gap_y=0.0)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

def make_config(**overrides) -> Config:
    """Full-resolution, unsharpened config on the uniform 3x8 grid."""
    cfg = Config(
        sampling_fps=10.0,
        scale_down=1.0,
        analysis_scale_down=1.0,
        layout=UNIFORM_LAYOUT,
        sharpen_strength=0.0,
    )
    return replace(cfg, **overrides)


# ---------------------------------------------------------------------------
# Board generators
# ---------------------------------------------------------------------------

def cell_bounds(cell: int, width: int = BOARD_W, height: int = BOARD_H) -> tuple[int, int, int, int]:
    """``(left, top, right, bottom)`` of *cell* on the uniform grid."""
    row, col = divmod(cell, COLS)
    cw, ch = width // COLS, height // ROWS
    return col * cw, row * ch, (col + 1) * cw, (row + 1) * ch


def card_face(cell: int, w: int, h: int, block: int = 4) -> np.ndarray:
    """High-contrast checkerboard unique to *cell*, far from the face-down colour."""
    a = np.array((min(255, 30 + 3 * cell), 30, 230), dtype=np.uint8)
    b = np.array((250, 250, 250), dtype=np.uint8)
    yy, xx = np.mgrid[0:h, 0:w]
    checker = ((yy // block + xx // block) % 2).astype(bool)
    face = np.empty((h, w, 3), dtype=np.uint8)
    face[checker] = a
    face[~checker] = b
    return face


def make_board(
    revealed: Iterable[int] = (),
    width: int = BOARD_W,
    height: int = BOARD_H,
    block: int = 4,
) -> np.ndarray:
    """Face-down board with the given cells turned face up."""
    img = np.full((height, width, 3), FACE_DOWN, dtype=np.uint8)
    for cell in revealed:
        left, top, right, bottom = cell_bounds(cell, width, height)
        img[top:bottom, left:right] = card_face(cell, right - left, bottom - top, block)
    return img


def make_game_frames(lead_in: int = 5, tail: int = 5, block: int = 4) -> List[np.ndarray]:
    """Recording where each card turns up in turn and stays up for two frames.

    Frame ``lead_in + k`` shows cells ``k`` and ``k - 1``; the board is face
    down before and after.
    """
    cells = ROWS * COLS
    frames = [make_board(block=block) for _ in range(lead_in)]
    for k in range(cells + 1):
        frames.append(make_board([c for c in (k - 1, k) if 0 <= c < cells], block=block))
    frames.extend(make_board(block=block) for _ in range(tail))
    return frames


# ---------------------------------------------------------------------------
# Frame sources
# ---------------------------------------------------------------------------

class ArrayFrameSource:
    """In-memory ``FrameSource`` over a list of frames at *fps*."""

    def __init__(self, frames: List[np.ndarray], fps: float = 10.0, fail_at: Optional[int] = None) -> None:
        self.frames = frames
        self.fps = fps
        self.fail_at = fail_at
        self.seeks: List[int] = []
        self.closed = False

    @property
    def duration(self) -> float:
        return len(self.frames) / self.fps

    @property
    def width(self) -> int:
        return self.frames[0].shape[1]

    @property
    def height(self) -> int:
        return self.frames[0].shape[0]

    def seek(self, time_s: float, size=None) -> np.ndarray:
        target = min(max(time_s, 0.0), max(self.duration - 0.001, 0.0))
        index = min(int(math.ceil(target * self.fps - 1e-6)), len(self.frames) - 1)
        self.seeks.append(index)
        if self.fail_at is not None and index == self.fail_at:
            raise FrameSeekError(f"Unable to seek video frame at {target:.3f}s")
        return resize_frame(self.frames[index].copy(), size)

    def close(self) -> None:
        self.closed = True


# ---------------------------------------------------------------------------
# Real video files
# ---------------------------------------------------------------------------

def write_mjpg_video(path: Path, frames: List[np.ndarray], fps: float = 10.0) -> Path:
    """Encode *frames* as an MJPG AVI, which every OpenCV build can read back."""
    h, w = frames[0].shape[:2]
    writer = cv2.VideoWriter(str(path), cv2.VideoWriter_fourcc(*"MJPG"), fps, (w, h))
    assert writer.isOpened(), "OpenCV cannot write MJPG video"
    try:
        for frame in frames:
            writer.write(frame)
    finally:
        writer.release()
    return path


def game_video_bytes(block: int = 8) -> bytes:
    """Bytes of an MJPG AVI of :func:`make_game_frames`."""
    with tempfile.TemporaryDirectory() as td:
        path = write_mjpg_video(Path(td) / "game.avi", make_game_frames(block=block))
        return path.read_bytes()


def progress_recorder() -> tuple[list, Callable[[int, int], None]]:
    calls: list = []

    def on_progress(current: int, total: int) -> None:
        calls.append((current, total))

    return calls, on_progress


def solved_board(block: int = 4) -> np.ndarray:
    return make_board(range(ROWS * COLS), block=block)


