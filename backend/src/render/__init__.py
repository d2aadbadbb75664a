from src.render.encoding import COMPRESSION_TIERS, EncodingSettings, resolve_encoding
from src.render.filter_graph import (
    ASPECT_RATIO_CONFIGS,
    FilterGraph,
    InputLayout,
    build_filter_complex,
    build_stream_mapping,
    resolve_resolution,
)
from src.render.timing import calculate_transition_offsets, merged_timeline_duration

__all__ = [
    "ASPECT_RATIO_CONFIGS",
    "COMPRESSION_TIERS",
    "EncodingSettings",
    "FilterGraph",
    "InputLayout",
    "build_filter_complex",
    "build_stream_mapping",
    "calculate_transition_offsets",
    "merged_timeline_duration",
    "resolve_encoding",
    "resolve_resolution",
]
