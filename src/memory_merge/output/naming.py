from __future__ import annotations

import re
from pathlib import Path


def safe_slug(text: str, max_len: int = 200) -> str:
    """Convert *text* to a filesystem-safe slug.

    Unsafe characters are replaced with underscores, consecutive underscores
    are collapsed, and the result is truncated to *max_len* characters.
    Returns ``"result"`` for empty / whitespace-only input.
    """
    slug = re.sub(r'[^\w\-.]', '_', text)
    slug = re.sub(r'_+', '_', slug)
    slug = slug.strip('_')
    slug = slug[:max_len]
    return slug or "result"


def output_name(video_path: Path, image_format: str) -> str:
    """``<slug of video stem>.<ext>`` for the merged image of *video_path*."""
    ext = "png" if image_format == "png" else "jpg"
    return f"{safe_slug(video_path.stem)}.{ext}"
