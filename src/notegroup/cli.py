"""Command-line entry point: ``notegroup detect`` and ``notegroup separate``."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from .config import ConfigValidationError, GroupingConfig
from .errors import GroupingError
from .export.overlay import draw_overlay
from .geometry import union_box
from .ingest import IngestError, load_ocr_result
from .models import Group
from .pipeline import detect
from .separation import separate_overlapping

log = logging.getLogger(__name__)


def _write_json(payload: dict, out: Optional[Path]) -> None:
    text = json.dumps(payload, indent=2)
    if out is None:
        sys.stdout.write(text + "\n")
    else:
        out.write_text(text + "\n", encoding="utf-8")
        log.info("Wrote %s", out)


def _config_from_args(args: argparse.Namespace) -> GroupingConfig:
    overrides = {}
    if args.min_group_size is not None:
        overrides["min_group_size"] = args.min_group_size
    if args.overlap_threshold is not None:
        overrides["overlap_threshold"] = args.overlap_threshold
    if args.proximity_threshold is not None:
        overrides["proximity_threshold"] = args.proximity_threshold
    if args.no_hierarchy:
        overrides["use_hierarchical_grouping"] = False
    return GroupingConfig(**overrides)


def _cmd_detect(args: argparse.Namespace) -> int:
    cfg = _config_from_args(args)
    ocr = load_ocr_result(args.ocr_json, cfg)
    result = detect(ocr.fragments, cfg)
    log.info(
        "Groups: %d  ungrouped: %d  confidence: %.3f",
        len(result.groups),
        len(result.ungrouped_fragments),
        result.confidence,
    )
    _write_json(result.to_dict(), args.out)

    if args.overlay:
        extent = union_box(f.bounding_box for f in ocr.fragments)
        draw_overlay(
            image_width=args.width or extent.right,
            image_height=args.height or extent.bottom,
            fragments=ocr.fragments,
            groups=result.groups,
            out_path=args.overlay,
            scale=args.scale,
            cfg=cfg,
        )
        log.info("Overlay saved to %s", args.overlay)
    return 0


def _load_groups(path: Path, fragments_by_id: dict) -> List[Group]:
    if not path.is_file():
        raise IngestError(f"File not found: {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise IngestError(f"Invalid JSON in {path}: {exc}") from exc
    if isinstance(data, dict):
        data = data.get("groups", data.get("overlappingGroups", []))
    if not isinstance(data, list):
        raise IngestError(f"{path}: expected a list of groups")
    try:
        return [Group.from_dict(d, fragments_by_id) for d in data]
    except (KeyError, TypeError, ValueError, AttributeError) as exc:
        raise IngestError(f"{path}: malformed group entry: {exc!r}") from exc


def _cmd_separate(args: argparse.Namespace) -> int:
    ocr = load_ocr_result(args.ocr_json)
    by_id = {f.id: f for f in ocr.fragments}
    groups = _load_groups(args.groups_json, by_id)
    result = separate_overlapping(groups, ocr.fragments)
    log.info("Groups: %d -> %d", result.original_count, result.result_count)
    _write_json(result.to_dict(), args.out)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="notegroup",
        description="Group OCR text fragments into logical bounding boxes",
    )
    parser.add_argument(
        "-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_detect = sub.add_parser("detect", help="Detect groups in an OCR result")
    p_detect.add_argument("ocr_json", type=Path, help="OCR result JSON")
    p_detect.add_argument("--out", type=Path, help="Write result JSON here")
    p_detect.add_argument("--overlay", type=Path, help="Optional overlay PNG path")
    p_detect.add_argument(
        "--scale", type=float, default=1.0, help="Overlay scale factor"
    )
    p_detect.add_argument(
        "--width", type=float, help="Image width (default: fragment extent)"
    )
    p_detect.add_argument(
        "--height", type=float, help="Image height (default: fragment extent)"
    )
    p_detect.add_argument("--min-group-size", type=int)
    p_detect.add_argument("--overlap-threshold", type=float)
    p_detect.add_argument("--proximity-threshold", type=float)
    p_detect.add_argument(
        "--no-hierarchy",
        action="store_true",
        help="Skip the hierarchical merge pass",
    )
    p_detect.set_defaults(func=_cmd_detect)

    p_sep = sub.add_parser("separate", help="Split groups flagged as overlapping")
    p_sep.add_argument("groups_json", type=Path, help="Groups JSON (list or {groups})")
    p_sep.add_argument("ocr_json", type=Path, help="OCR result JSON")
    p_sep.add_argument("--out", type=Path, help="Write result JSON here")
    p_sep.set_defaults(func=_cmd_separate)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = logging.WARNING
    if args.verbose == 1:
        level = logging.INFO
    elif args.verbose >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s: %(name)s: %(message)s")

    try:
        return args.func(args)
    except (IngestError, ConfigValidationError, GroupingError) as exc:
        log.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
