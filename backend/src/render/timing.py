"""Cross-fade timing arithmetic.

Each fade begins ``transition_duration`` seconds before the end of the
already-merged timeline, so the offset of fade ``i`` is measured on the
merged timeline rather than on the source clip.
"""

from collections.abc import Sequence


def calculate_transition_offsets(
    clip_durations: Sequence[float],
    transition_duration: float,
) -> list[float]:
    """Compute the xfade offset for every adjacent clip pair.

    ``offset[0] = d[0] - t`` and ``offset[i] = offset[i-1] + d[i] - t``.
    No clamping is applied; identical inputs always give identical outputs.

    Args:
        clip_durations: Declared clip durations in playback order (seconds)
        transition_duration: Cross-fade duration (seconds)

    Returns:
        ``len(clip_durations) - 1`` offsets; empty for a single clip

    Raises:
        ValueError: If no clip durations are given
    """
    if not clip_durations:
        raise ValueError("At least one clip duration is required")

    offsets: list[float] = []
    offset = 0.0
    for duration in clip_durations[:-1]:
        offset = offset + duration - transition_duration
        offsets.append(offset)
    return offsets


def merged_timeline_duration(
    clip_durations: Sequence[float],
    transition_duration: float,
) -> float:
    """Length of the cross-faded timeline before trimming to the song."""
    if not clip_durations:
        return 0.0
    return sum(clip_durations) - transition_duration * (len(clip_durations) - 1)


def find_overlapping_transition(
    clip_durations: Sequence[float],
    transition_duration: float,
) -> int | None:
    """Index of the first pair whose fade would swallow a whole clip.

    Returns None when ``transition_duration`` is shorter than both clips of
    every adjacent pair.
    """
    for i in range(len(clip_durations) - 1):
        if transition_duration >= min(clip_durations[i], clip_durations[i + 1]):
            return i
    return None


def format_seconds(value: float) -> str:
    """Render seconds for an FFmpeg argument (``7.5``, ``15``, ``0.25``)."""
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    return text if text not in ("", "-0") else "0"
