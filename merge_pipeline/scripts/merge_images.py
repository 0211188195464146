from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from merge_api.config import EngineSettings
from merge_api.services.engine import MergeEngine
from merge_api.services.errors import MergeFailure
from merge_api.services.formats import HEIC_EXTS, HEIC_MESSAGE, SUPPORTED_IMAGE_EXTS
from merge_api.services.types import BackgroundColor, Direction, MergeOptions


def list_image_files(folder: Path) -> List[Path]:
    return sorted([p for p in folder.iterdir() if p.is_file() and p.suffix.lower() in SUPPORTED_IMAGE_EXTS])


def collect_inputs(input_dir: Optional[Path], files: Sequence[str]) -> List[Path]:
    paths = [Path(f) for f in files]
    if input_dir is not None:
        paths = list_image_files(input_dir.resolve()) + paths
    heic = [p for p in paths if p.suffix.lower() in HEIC_EXTS]
    if heic:
        raise SystemExit(f"{heic[0].name}: {HEIC_MESSAGE}")
    return paths


def merge_files(paths: Sequence[Path], output: Path, options: MergeOptions, settings: EngineSettings) -> str:
    engine = MergeEngine(settings)
    buffers = [p.read_bytes() for p in paths]
    result = engine.merge(buffers, options, [p.name for p in paths])
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(result.data)
    print(f"Saved: {output} ({result.width}x{result.height})")
    return str(output)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Merge images into one PNG (vertical, horizontal or smart stitching)")
    parser.add_argument("files", nargs="*", help="Input images, in merge order")
    parser.add_argument("--input", help="Folder of images to merge, in file name order (before any FILES)")
    parser.add_argument("--output", required=True, help="Output PNG path")
    parser.add_argument("--direction", choices=[d.value for d in Direction], default=Direction.VERTICAL.value)
    parser.add_argument("--background", default="255,255,255,255", help="R,G,B[,A] or #RRGGBB[AA] (default: white)")
    parser.add_argument("--sensitivity", type=int, default=35, help="Overlap sensitivity 0-100 (smart only)")
    parser.add_argument(
        "--keep-chrome",
        dest="strip_chrome",
        action="store_false",
        help="Keep repeated header/footer bars instead of trimming them (smart only)",
    )
    parser.add_argument("--max-out-pixels", type=int, default=None, help="Refuse outputs larger than this many pixels")
    parser.add_argument("--verbose", action="store_true", help="Log pipeline stages")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = EngineSettings.from_env()
    logging.basicConfig(level=logging.DEBUG if args.verbose else getattr(logging, settings.log_level, logging.INFO))

    try:
        background = BackgroundColor.parse(args.background)
    except ValueError as e:
        parser.error(str(e))

    options = MergeOptions(
        direction=Direction(args.direction),
        background=background,
        overlap_sensitivity=max(0, min(100, args.sensitivity)),
        strip_chrome=bool(args.strip_chrome),
        max_out_pixels=args.max_out_pixels if args.max_out_pixels and args.max_out_pixels > 0 else None,
    )

    paths = collect_inputs(Path(args.input) if args.input else None, args.files)
    try:
        merge_files(paths, Path(args.output), options, settings)
    except MergeFailure as e:
        print(f"{e.code}: {e.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
