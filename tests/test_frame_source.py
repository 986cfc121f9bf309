"""OpenCVFrameSource against a scripted capture, plus its pure helpers."""
from __future__ import annotations

import tempfile
from pathlib import Path

import cv2
import numpy as np
import pytest

from conftest import make_game_frames, write_mjpg_video
from memory_merge.media import source as source_mod
from memory_merge.media.source import (
    DegenerateVideoError,
    OpenCVFrameSource,
    frame_at,
    timeline_duration,
)


class ScriptedCapture:
    """Stands in for ``cv2.VideoCapture``: frame *i* is filled with value *i*.

    ``stamps`` are the presentation times in ms a real decoder would report.
    """

    def __init__(self, stamps, fps=1000.0, frame_count=0, width=16, height=8):
        self.stamps = list(stamps)
        self.fps = fps
        self.frame_count = frame_count
        self.width = width
        self.height = height
        self.pos = 0
        self.reads = 0
        self.sets = []

    def isOpened(self):
        return True

    def get(self, prop):
        if prop == cv2.CAP_PROP_FPS:
            return self.fps
        if prop == cv2.CAP_PROP_FRAME_COUNT:
            return self.frame_count
        if prop == cv2.CAP_PROP_FRAME_WIDTH:
            return self.width
        if prop == cv2.CAP_PROP_FRAME_HEIGHT:
            return self.height
        if prop == cv2.CAP_PROP_POS_MSEC:
            return self.stamps[self.pos - 1] if self.pos else 0.0
        return 0.0

    def set(self, prop, value):
        self.sets.append((prop, value))
        if prop == cv2.CAP_PROP_POS_FRAMES:
            self.pos = int(value)
        elif prop == cv2.CAP_PROP_POS_MSEC:
            self.pos = next((i for i, s in enumerate(self.stamps) if s >= value), len(self.stamps))
        return True

    def grab(self):
        if self.pos >= len(self.stamps):
            return False
        self.pos += 1
        return True

    def read(self):
        if self.pos >= len(self.stamps):
            return False, None
        frame = np.full((self.height, self.width, 3), self.pos, dtype=np.uint8)
        self.pos += 1
        self.reads += 1
        return True, frame

    def release(self):
        pass


@pytest.fixture
def scripted(monkeypatch):
    """Install a capture factory; returns a function that sets the next capture."""
    holder = {}
    monkeypatch.setattr(source_mod.cv2, "VideoCapture", lambda path: holder["cap"])

    def install(cap: ScriptedCapture) -> ScriptedCapture:
        holder["cap"] = cap
        return cap

    return install


def test_timeline_duration_holds_last_frame():
    assert timeline_duration([0.0, 100.0, 200.0]) == pytest.approx(0.3)
    assert timeline_duration([40.0], fallback_interval_s=0.1) == pytest.approx(0.1)
    assert timeline_duration([]) == 0.0


def test_frame_at_picks_first_frame_at_or_after():
    offsets = [0.0, 100.0, 200.0]
    assert frame_at(offsets, 0.0) == 0
    assert frame_at(offsets, 100.0) == 1
    assert frame_at(offsets, 100.5) == 2
    assert frame_at(offsets, 5000.0) == 2


class TestTimebaseContainer:

    def test_duration_comes_from_timestamps(self, scripted):
        # 30 frames, 100 ms apart, reported as a 1000 fps stream with no count
        scripted(ScriptedCapture([i * 100.0 for i in range(30)]))
        source = OpenCVFrameSource(Path("rec.webm"))
        assert source.duration == pytest.approx(3.0)

    def test_seek_maps_time_through_timestamps(self, scripted):
        cap = scripted(ScriptedCapture([i * 100.0 for i in range(30)]))
        source = OpenCVFrameSource(Path("rec.webm"))
        frame = source.seek(1.0)
        assert int(frame[0, 0, 0]) == 10
        assert cap.sets[-1] == (cv2.CAP_PROP_POS_MSEC, 1000.0)

    def test_variable_frame_spacing(self, scripted):
        scripted(ScriptedCapture([0.0, 50.0, 400.0, 450.0, 900.0]))
        source = OpenCVFrameSource(Path("rec.webm"))
        assert int(source.seek(0.3)[0, 0, 0]) == 2

    def test_consistent_rate_keeps_frame_seeking(self, scripted):
        cap = scripted(ScriptedCapture([i * 100.0 for i in range(30)], fps=10.0, frame_count=0))
        source = OpenCVFrameSource(Path("rec.webm"))
        assert source.duration == pytest.approx(3.0)
        source.seek(1.0)
        assert cap.sets[-1] == (cv2.CAP_PROP_POS_FRAMES, 10)

    def test_no_frames_is_degenerate(self, scripted):
        scripted(ScriptedCapture([]))
        with pytest.raises(DegenerateVideoError):
            OpenCVFrameSource(Path("empty.webm"))


def test_same_index_is_decoded_once(scripted):
    cap = scripted(ScriptedCapture([0.0, 100.0], fps=10.0, frame_count=2))
    source = OpenCVFrameSource(Path("two.avi"))
    first = source.seek(0.0, (8, 4))
    second = source.seek(0.0)
    assert cap.reads == 1
    assert first.shape == (4, 8, 3)
    assert second.shape == (8, 16, 3)
    second[:] = 255
    assert int(source.seek(0.0)[0, 0, 0]) == 0


def test_one_frame_avi_seeks_same_frame_repeatedly():
    with tempfile.TemporaryDirectory() as td:
        path = write_mjpg_video(Path(td) / "one.avi", make_game_frames(lead_in=0, tail=0)[:1])
        with OpenCVFrameSource(path) as source:
            small = source.seek(0.0, (160, 60))
            full = source.seek(0.0)
            again = source.seek(source.duration)
    assert small.shape == (60, 160, 3)
    assert full.shape == again.shape
    assert np.array_equal(full, again)
