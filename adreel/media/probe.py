from __future__ import annotations

import json
import math
import subprocess
from pathlib import Path
from typing import Any, Dict, Optional

from adreel.core.logging import get_logger

logger = get_logger(component="duration_prober")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def parse_duration_payload(raw: Dict[str, Any]) -> Optional[int]:
    """Extract whole seconds from ffprobe's ``format.duration`` field.

    Returns ``None`` when the field is absent, ``N/A``, non-numeric or not positive.
    """
    format_info = raw.get("format") or {}
    value = format_info.get("duration")
    if value in (None, "", "N/A"):
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(seconds) or seconds <= 0:
        return None
    return round_half_up(seconds)


def probe_duration(path: Path | str) -> Optional[int]:
    """Return the media duration in whole seconds, or ``None`` when it cannot be read."""
    command = [
        "ffprobe",
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "json",
        str(path),
    ]
    try:
        proc = subprocess.run(command, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except FileNotFoundError:
        logger.warning("ffprobe_missing", path=str(path))
        return None
    except subprocess.CalledProcessError as exc:
        logger.warning("ffprobe_failed", path=str(path), stderr=(exc.stderr or "").strip())
        return None

    try:
        raw = json.loads(proc.stdout or "{}")
    except json.JSONDecodeError:
        logger.warning("ffprobe_output_unparseable", path=str(path))
        return None
    return parse_duration_payload(raw)


__all__ = ["parse_duration_payload", "probe_duration", "round_half_up"]
