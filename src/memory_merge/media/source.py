from __future__ import annotations

import bisect
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol, Sequence

import cv2
import numpy as np

log = logging.getLogger("memory_merge")

# Seeks are clamped to ``duration - _END_EPSILON_S`` so the last request still
# lands on a decodable frame.
_END_EPSILON_S = 0.001

# Reported rates above this are container timebases, not frame rates
# (MediaRecorder WebM typically reports 1000).
_MAX_PLAUSIBLE_FPS = 240.0

# Relative gap between the fps-based and timestamp-based durations beyond
# which the timestamps are used.
_DURATION_TOLERANCE = 0.1


class VideoSourceError(RuntimeError):
    """The video could not be opened or decoded."""


class FrameSeekError(VideoSourceError):
    """A specific timestamp could not be decoded."""


class DegenerateVideoError(VideoSourceError):
    """The video has a non-positive duration or frame size."""


class FrameSource(Protocol):
    """Random access to decoded frames of one video.

    ``seek`` returns an (H, W, 3) uint8 BGR array for the nearest decodable
    frame at or after *time_s*, resized to *size* ``(width, height)`` when given.
    """

    @property
    def duration(self) -> float: ...

    @property
    def width(self) -> int: ...

    @property
    def height(self) -> int: ...

    def seek(self, time_s: float, size: Optional[tuple[int, int]] = None) -> np.ndarray: ...

    def close(self) -> None: ...


def sniff_suffix(data: bytes) -> Optional[str]:
    """File extension matching the container signature of *data*, if recognised."""
    if data[:4] == b"RIFF" and data[8:12] == b"AVI ":
        return ".avi"
    if data[:4] == b"\x1a\x45\xdf\xa3":
        return ".webm" if b"webm" in data[:64] else ".mkv"
    if data[4:8] == b"ftyp":
        return ".mov" if data[8:10] == b"qt" else ".mp4"
    return None


def resize_frame(frame: np.ndarray, size: Optional[tuple[int, int]]) -> np.ndarray:
    """Resize *frame* to *size* ``(width, height)``; area interpolation when shrinking."""
    if size is None:
        return frame
    h, w = frame.shape[:2]
    if (w, h) == tuple(size):
        return frame
    interp = cv2.INTER_AREA if size[0] <= w else cv2.INTER_LINEAR
    return cv2.resize(frame, size, interpolation=interp)


def scan_timestamps(cap: cv2.VideoCapture) -> list[float]:
    """Presentation time (ms) of every frame, grabbed to the end; rewinds *cap*."""
    stamps: list[float] = []
    while cap.grab():
        stamps.append(float(cap.get(cv2.CAP_PROP_POS_MSEC)))
    cap.set(cv2.CAP_PROP_POS_FRAMES, 0)
    return stamps


def timeline_duration(stamps_ms: Sequence[float], fallback_interval_s: float = 0.0) -> float:
    """Seconds spanned by frames shown at *stamps_ms*, including the last frame.

    The last frame is held for the mean frame interval, or *fallback_interval_s*
    when there is only one frame.
    """
    if not stamps_ms:
        return 0.0
    if len(stamps_ms) == 1:
        return fallback_interval_s
    span = (stamps_ms[-1] - stamps_ms[0]) / 1000.0
    return span + span / (len(stamps_ms) - 1)


def frame_at(offsets_ms: Sequence[float], time_ms: float) -> int:
    """Index of the first frame shown at or after *time_ms*, clamped to the last."""
    index = bisect.bisect_left(offsets_ms, time_ms - 1e-3)
    return min(index, len(offsets_ms) - 1)


class OpenCVFrameSource:
    """``FrameSource`` backed by ``cv2.VideoCapture``.

    OpenCV only opens files, so in-memory bytes are spilled to a temporary file
    that lives as long as the source.  Use as a context manager so the capture
    and the temporary file are released on every exit path.

    Containers that carry a timebase instead of a frame rate, or no frame count,
    are scanned once; when their timestamps disagree with the reported rate,
    times map to frames through the timestamps and seeks go by position in ms.
    """

    def __init__(self, path: Path, *, owns_file: bool = False) -> None:
        self._path = path
        self._owns_file = owns_file
        self._cap: Optional[cv2.VideoCapture] = cv2.VideoCapture(str(path))
        self._timestamps: Optional[list[float]] = None
        self._offsets: list[float] = []
        self._last_index = -1
        self._last_frame: Optional[np.ndarray] = None

        if not self._cap.isOpened():
            self.close()
            raise VideoSourceError("Unable to load video metadata")

        self._fps = float(self._cap.get(cv2.CAP_PROP_FPS) or 0.0)
        self._frame_count = int(self._cap.get(cv2.CAP_PROP_FRAME_COUNT) or 0)
        self._width = int(self._cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0)
        self._height = int(self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0)

        if self._fps <= 0 or self._fps > _MAX_PLAUSIBLE_FPS or self._frame_count <= 0:
            stamps = scan_timestamps(self._cap)
            self._frame_count = len(stamps)
            self._use_timeline(stamps)

        if self._frame_count <= 0:
            self.close()
            raise DegenerateVideoError("Video has non-positive duration")
        if self._timestamps is None and self._fps <= 0:
            self.close()
            raise DegenerateVideoError("Video reports no frame rate")
        if self._width <= 0 or self._height <= 0:
            self.close()
            raise DegenerateVideoError(
                f"Video has degenerate frame size {self._width}x{self._height}"
            )

        log.debug(
            "Opened %s: %dx%d, %.2f fps, %d frames, %.3fs%s",
            path.name, self._width, self._height, self._fps, self._frame_count,
            self.duration, " (timestamp seeking)" if self._timestamps is not None else "",
        )

    def _use_timeline(self, stamps: list[float]) -> None:
        if len(stamps) < 2:
            return
        fallback = 1.0 / self._fps if self._fps > 0 else 0.0
        by_stamps = timeline_duration(stamps, fallback)
        by_rate = len(stamps) / self._fps if self._fps > 0 else 0.0
        if by_stamps <= 0:
            return
        if by_rate > 0 and abs(by_stamps - by_rate) <= _DURATION_TOLERANCE * by_stamps:
            return
        log.debug(
            "Frame rate %.2f implies %.3fs but timestamps span %.3fs",
            self._fps, by_rate, by_stamps,
        )
        self._timestamps = stamps
        self._offsets = [s - stamps[0] for s in stamps]

    @classmethod
    def from_bytes(cls, data: bytes, suffix: Optional[str] = None) -> OpenCVFrameSource:
        """Open in-memory video *data*; the container is sniffed, *suffix* is the fallback."""
        if not data:
            raise VideoSourceError("Video stream is empty")
        suffix = sniff_suffix(data) or suffix or ".mp4"
        fd, name = tempfile.mkstemp(prefix="memory_merge_", suffix=suffix)
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        try:
            return cls(Path(name), owns_file=True)
        except Exception:
            Path(name).unlink(missing_ok=True)
            raise

    def __enter__(self) -> OpenCVFrameSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def duration(self) -> float:
        if self._timestamps is not None:
            fallback = 1.0 / self._fps if self._fps > 0 else 0.0
            return timeline_duration(self._timestamps, fallback)
        return self._frame_count / self._fps

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    def seek(self, time_s: float, size: Optional[tuple[int, int]] = None) -> np.ndarray:
        if self._cap is None:
            raise FrameSeekError("Video source is closed")

        target = min(max(time_s, 0.0), max(self.duration - _END_EPSILON_S, 0.0))
        if self._timestamps is not None:
            index = frame_at(self._offsets, target * 1000.0)
        else:
            index = min(int(np.ceil(target * self._fps - 1e-6)), self._frame_count - 1)

        # Re-seeking the frame just read fails on some containers (one-frame files)
        if index != self._last_index or self._last_frame is None:
            self._last_frame = self._decode(index, target)
            self._last_index = index

        frame = resize_frame(self._last_frame, size)
        return frame.copy() if frame is self._last_frame else frame

    def _decode(self, index: int, target: float) -> np.ndarray:
        cap = self._cap
        if cap is None:
            raise FrameSeekError("Video source is closed")
        if self._timestamps is not None:
            cap.set(cv2.CAP_PROP_POS_MSEC, self._timestamps[index])
        else:
            cap.set(cv2.CAP_PROP_POS_FRAMES, index)
        ok, frame = cap.read()
        if not ok or frame is None:
            raise FrameSeekError(f"Unable to seek video frame at {target:.3f}s")
        if frame.ndim == 2:
            frame = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        elif frame.shape[2] == 4:
            frame = cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
        return frame

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None
        self._last_frame = None
        self._last_index = -1
        if self._owns_file:
            self._path.unlink(missing_ok=True)
            self._owns_file = False
