from __future__ import annotations

from datetime import datetime
from typing import Optional


def generate_run_id(now: Optional[datetime] = None) -> str:
    """Local-time run folder name such as ``20261019-181502``."""
    now = now or datetime.now()
    return now.strftime("%Y%m%d-%H%M%S")
