"""
FFmpeg filter graph construction for clip assembly.

The whole transform is one flat ``-filter_complex`` description:

1. Every clip is scaled to the output resolution with square pixels
2. Scaled clips are folded left-to-right through ``xfade`` cross-fades
3. The subtitle track is burned into the merged stream

Input ordering is fixed: clip files first, then the song, then the subtitle
file. Stream labels and the ``-map`` directives depend on it.
"""

from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from src.render.timing import format_seconds

ASPECT_RATIO_CONFIGS: dict[str, tuple[int, int]] = {
    "9:16": (1080, 1920),
    "16:9": (1920, 1080),
}

OUTPUT_LABEL = "vout"


def resolve_resolution(aspect_ratio: str) -> tuple[int, int]:
    """Map an aspect ratio to its (width, height) output resolution."""
    try:
        return ASPECT_RATIO_CONFIGS[aspect_ratio]
    except KeyError:
        raise ValueError(
            f"Unsupported aspect ratio {aspect_ratio!r}; expected one of {sorted(ASPECT_RATIO_CONFIGS)}"
        ) from None


def thumbnail_size(aspect_ratio: str, long_edge: int) -> tuple[int, int]:
    """Preview size with the longer side at ``long_edge``, both sides even."""
    width, height = resolve_resolution(aspect_ratio)
    scale = long_edge / max(width, height)
    return round(width * scale / 2) * 2, round(height * scale / 2) * 2


def escape_filter_value(value: str) -> str:
    """Escape a filter option value (paths) for use inside a filtergraph."""
    return (
        value.replace("\\", "\\\\")
        .replace("'", "\\'")
        .replace(":", "\\:")
        .replace(",", "\\,")
        .replace("[", "\\[")
        .replace("]", "\\]")
        .replace(";", "\\;")
    )


@dataclass(frozen=True)
class InputLayout:
    """Ordered engine inputs: clips, then song, then subtitle."""

    clips: tuple[str, ...]
    song: str
    subtitle: str

    @property
    def song_index(self) -> int:
        return len(self.clips)

    @property
    def subtitle_index(self) -> int:
        return len(self.clips) + 1

    def ordered_inputs(self) -> list[str]:
        return [*self.clips, self.song, self.subtitle]

    def input_args(self) -> list[str]:
        args: list[str] = []
        for path in self.ordered_inputs():
            args.extend(["-i", path])
        return args


@dataclass(frozen=True)
class FilterGraph:
    """A built filter_complex and the labels it exposes."""

    description: str
    merged_label: str
    output_label: str = OUTPUT_LABEL
    transition_count: int = 0


@dataclass(frozen=True)
class _FoldState:
    """Accumulator of the cross-fade fold."""

    label: str
    offset_index: int


def _scale_segment(index: int, width: int, height: int, fps: int | None) -> str:
    chain = f"scale={width}:{height},setsar=1"
    if fps:
        chain += f",fps={fps}"
    return f"[{index}:v]{chain}[v{index}]"


def _fade_step(
    state: _FoldState,
    clip_index: int,
    offsets: Sequence[float],
    transition_duration: float,
    is_last: bool,
) -> tuple[_FoldState, str]:
    """Fold clip ``clip_index`` into the merged stream."""
    offset = offsets[state.offset_index]
    next_label = "merged" if is_last else f"xf{clip_index}"
    segment = (
        f"[{state.label}][v{clip_index}]"
        f"xfade=transition=fade:duration={format_seconds(transition_duration)}"
        f":offset={format_seconds(offset)}[{next_label}]"
    )
    return _FoldState(label=next_label, offset_index=state.offset_index + 1), segment


def build_filter_complex(
    clip_count: int,
    resolution: tuple[int, int],
    offsets: Sequence[float],
    transition_duration: float,
    subtitle_path: str,
    fonts_dir: str | None = None,
    fps: int | None = None,
) -> FilterGraph:
    """
    Build the scale / cross-fade / subtitle filter graph.

    Args:
        clip_count: Number of clip inputs (indices 0..clip_count-1)
        resolution: Target (width, height)
        offsets: Cross-fade offsets, one per adjacent clip pair
        transition_duration: Cross-fade duration in seconds
        subtitle_path: Local path of the ASS subtitle file
        fonts_dir: Optional directory the subtitle renderer loads fonts from
        fps: Optional frame rate every clip is normalized to before fading

    Returns:
        FilterGraph whose output label is ``vout``

    Raises:
        ValueError: If clip_count < 1 or the offset count does not match
    """
    if clip_count < 1:
        raise ValueError("At least one clip is required to build a filter graph")
    if len(offsets) != clip_count - 1:
        raise ValueError(
            f"Expected {clip_count - 1} transition offsets for {clip_count} clips, got {len(offsets)}"
        )

    width, height = resolution
    segments = [_scale_segment(i, width, height, fps) for i in range(clip_count)]

    state = _FoldState(label="v0", offset_index=0)
    for clip_index in range(1, clip_count):
        state, segment = _fade_step(
            state,
            clip_index,
            offsets,
            transition_duration,
            is_last=clip_index == clip_count - 1,
        )
        segments.append(segment)

    subtitle_filter = f"ass={escape_filter_value(subtitle_path)}"
    if fonts_dir:
        subtitle_filter += f":fontsdir={escape_filter_value(fonts_dir)}"
    segments.append(f"[{state.label}]{subtitle_filter}[{OUTPUT_LABEL}]")

    return FilterGraph(
        description=";".join(segments),
        merged_label=state.label,
        transition_count=state.offset_index,
    )


def build_stream_mapping(layout: InputLayout, graph: FilterGraph) -> list[str]:
    """Map the graph's video output and the song's audio (never clip audio)."""
    return [
        "-map", f"[{graph.output_label}]",
        "-map", f"{layout.song_index}:a:0",
    ]


def resolve_fonts_dir(fonts_dir: str) -> str | None:
    """Absolute fonts directory, or None when it does not exist."""
    path = Path(fonts_dir).expanduser().resolve()
    return str(path) if path.is_dir() else None
