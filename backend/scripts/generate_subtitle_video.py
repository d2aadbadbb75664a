#!/usr/bin/env python3
"""Render an ASS subtitle file alone on a black canvas.

Useful for checking fonts, positioning and timing without clips or audio.

Usage:
    python backend/scripts/generate_subtitle_video.py lyrics.ass
    python backend/scripts/generate_subtitle_video.py lyrics.ass out.mp4 --aspect 16:9

The duration is the last dialogue end time plus two seconds, or 30 seconds
when the file cannot be read.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import uuid
from pathlib import Path

from src.config import get_settings
from src.exceptions import ProcessingError
from src.render.encoding import COMPRESSION_TIERS, resolve_encoding
from src.render.filter_graph import ASPECT_RATIO_CONFIGS
from src.services.ffmpeg_service import FFmpegService
from src.utils.process_logger import get_process_logger
from src.utils.subtitles import subtitle_duration


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("ass_file", type=Path, help="ASS subtitle file")
    parser.add_argument("output", type=Path, nargs="?", help="Output MP4 (default: <ass name>_preview.mp4)")
    parser.add_argument("--aspect", choices=sorted(ASPECT_RATIO_CONFIGS), default="9:16")
    parser.add_argument("--tier", choices=list(COMPRESSION_TIERS), default="fast")
    return parser.parse_args(argv)


async def render(args: argparse.Namespace) -> Path:
    settings = get_settings()
    log = get_process_logger("generate_subtitle_video", uuid.uuid4().hex[:8])
    ffmpeg = FFmpegService(log, settings)

    output = args.output or args.ass_file.with_name(f"{args.ass_file.stem}_preview.mp4")
    duration = subtitle_duration(args.ass_file)
    log.info(f"Subtitle duration: {duration}s, aspect: {args.aspect}")

    await ffmpeg.verify_installation()
    ffmpeg.verify_fonts_directory()
    await ffmpeg.render_subtitle_preview(
        str(args.ass_file.resolve()),
        str(output),
        args.aspect,
        duration,
        resolve_encoding(args.tier),
    )
    return output


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    args = parse_args(argv)
    if not args.ass_file.is_file():
        print(f"ASS file not found: {args.ass_file}", file=sys.stderr)
        return 1

    try:
        output = asyncio.run(render(args))
    except ProcessingError as e:
        print(f"{e.message}: {e.detail}", file=sys.stderr)
        return 1

    print(f"Wrote {output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
