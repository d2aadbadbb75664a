"""ASS subtitle helpers."""

import logging
import re
from pathlib import Path

logger = logging.getLogger(__name__)

_ASS_TIME_RE = re.compile(r"(\d+):(\d{2}):(\d{2})\.(\d{2})")

DEFAULT_PADDING_S = 2.0
FALLBACK_DURATION_S = 30.0


def parse_ass_timestamp(value: str) -> float:
    """Parse an ASS ``H:MM:SS.CC`` timestamp to seconds (0.0 if malformed)."""
    match = _ASS_TIME_RE.search(value)
    if not match:
        return 0.0
    hours, minutes, seconds, centis = (int(g) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds + centis / 100


def last_dialogue_end(text: str) -> float:
    """Latest ``Dialogue:`` end time in an ASS document."""
    latest = 0.0
    for line in text.splitlines():
        if not line.startswith("Dialogue:"):
            continue
        # Dialogue: Layer, Start, End, Style, ...
        parts = line.split(",")
        if len(parts) >= 3:
            latest = max(latest, parse_ass_timestamp(parts[2].strip()))
    return latest


def subtitle_duration(
    path: str | Path,
    padding_s: float = DEFAULT_PADDING_S,
    fallback_s: float = FALLBACK_DURATION_S,
) -> float:
    """Duration covering every dialogue line plus padding.

    Falls back to ``fallback_s`` when the file cannot be read.
    """
    try:
        text = Path(path).read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Could not read subtitle file {path}: {e}; using {fallback_s}s")
        return fallback_s
    return last_dialogue_end(text) + padding_s
