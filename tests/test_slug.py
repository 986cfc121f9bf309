from pathlib import Path

from memory_merge.output.naming import output_name, safe_slug


def test_slug_is_filesystem_safe():
    s = safe_slug("Round 1 / Level? * (hard)")
    assert "/" not in s
    assert "?" not in s
    assert "*" not in s
    assert "\\" not in s


def test_slug_collapses_underscores():
    s = safe_slug("a___b___c")
    assert "__" not in s


def test_slug_respects_max_len():
    s = safe_slug("a" * 200, max_len=80)
    assert len(s) <= 80


def test_slug_empty_input():
    assert safe_slug("") == "result"


def test_output_name_uses_video_stem():
    assert output_name(Path("/videos/run 01.webm"), "png") == "run_01.png"
    assert output_name(Path("clip.mp4"), "jpg") == "clip.jpg"
