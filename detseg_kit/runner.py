from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import cv2
import numpy as np

from .decoder import DecoderConfig, DetectionDecoder
from .instances import CounterConfig, InstanceCounter
from .run_config import apply_run_config, collect_cli_dests, load_run_config
from .visualize import draw_detections, draw_markers

LOGGER = logging.getLogger(__name__)


def setup_logging(level: str = "INFO", log_format: str = "text") -> None:
    if log_format == "json":
        formatter = logging.Formatter('{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}')
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    logging.basicConfig(level=getattr(logging, level.upper()), handlers=[handler], force=True)


def _add_common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=None, help="Run config JSON; keys are option dests, CLI flags win.")
    parser.add_argument("--log-level", default="WARNING", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--log-format", default="text", choices=["text", "json"])


def _parse(parser: argparse.ArgumentParser, argv: Optional[Sequence[str]]) -> argparse.Namespace:
    argv = list(sys.argv[1:] if argv is None else argv)
    args = parser.parse_args(argv)
    if args.config:
        payload = load_run_config(Path(args.config))
        apply_run_config(args=args, payload=payload, cli_dests=collect_cli_dests(parser, argv), parser=parser)
    return args


def load_records(path: Path) -> np.ndarray:
    """
    Raw detector output saved as `.npy` (any shape) or `.json` (flat or nested list).
    """

    if not path.exists():
        raise FileNotFoundError(f"Records file not found: {path}")
    suffix = path.suffix.lower()
    if suffix == ".npy":
        return np.load(path)
    if suffix == ".json":
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid records JSON: {path}") from exc
        return np.asarray(payload, dtype=np.float32)
    raise ValueError(f"Unsupported records format '{suffix}' (expected .npy or .json)")


def load_mask(path: Path) -> np.ndarray:
    if not path.exists():
        raise FileNotFoundError(f"Mask not found: {path}")
    if path.suffix.lower() == ".npy":
        return np.load(path)
    mask = cv2.imread(str(path), cv2.IMREAD_GRAYSCALE)
    if mask is None:
        raise ValueError(f"Could not read mask image: {path}")
    return mask


def build_decode_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(allow_abbrev=False, description="Decode raw SSD-style detector output into boxes (with NMS).")
    parser.add_argument("records", help="Raw detector output, .npy or .json (7 floats per record).")
    parser.add_argument("--image", default=None, help="Source image; its size is used to de-normalize boxes.")
    parser.add_argument("--width", type=int, default=None, help="Image width in pixels (if no --image).")
    parser.add_argument("--height", type=int, default=None, help="Image height in pixels (if no --image).")
    parser.add_argument("--conf", dest="prob_threshold", type=float, default=0.5, help="Score threshold (pre-NMS).")
    parser.add_argument("--nms", dest="nms_threshold", type=float, default=0.4, help="IoU threshold for NMS.")
    parser.add_argument("--class-id", dest="class_ids", type=int, action="append", default=None, help="Keep only this class id (repeatable).")
    parser.add_argument("--max-det", dest="max_detections", type=int, default=0, help="Keep at most N boxes (0 = no limit).")
    parser.add_argument("--out", default=None, help="Write an annotated copy of --image here.")
    _add_common_args(parser)
    return parser


def run_decode(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_decode_parser()
    args = _parse(parser, argv)
    setup_logging(args.log_level, args.log_format)

    image = None
    if args.image is not None:
        image = cv2.imread(args.image)
        if image is None:
            raise FileNotFoundError(f"Could not read image at path: {args.image}")
        height, width = image.shape[:2]
    elif args.width is not None and args.height is not None:
        width, height = args.width, args.height
    else:
        raise ValueError("Pass --image or both --width and --height")
    if args.out is not None and image is None:
        raise ValueError("--out requires --image")
    if args.max_detections < 0:
        raise ValueError("--max-det must be >= 0")

    records = load_records(Path(args.records))
    decoder = DetectionDecoder(
        DecoderConfig(
            nms_threshold=float(args.nms_threshold),
            prob_threshold=float(args.prob_threshold),
            class_ids=args.class_ids,
            max_detections=int(args.max_detections) or None,
        )
    )
    detections = decoder.process(records, width, height)
    LOGGER.info("Decoded %d detections from %s (%dx%d)", len(detections), args.records, width, height)

    for det in detections:
        print(
            json.dumps(
                {
                    "x": det.x,
                    "y": det.y,
                    "width": det.width,
                    "height": det.height,
                    "score": round(det.score, 6),
                    "class_id": det.class_id,
                }
            )
        )

    if args.out is not None:
        annotated = draw_detections(image, detections)
        if not cv2.imwrite(args.out, annotated):
            raise RuntimeError(f"Could not write image: {args.out}")
        LOGGER.info("Wrote annotated image: %s", args.out)
    return 0


def _write_image(path: Path, image: np.ndarray) -> None:
    if not cv2.imwrite(str(path), image):
        raise RuntimeError(f"Could not write image: {path}")
    LOGGER.info("Wrote %s", path)


def build_count_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(allow_abbrev=False, description="Count blob instances (e.g. glands) in segmentation masks.")
    parser.add_argument("masks", nargs="+", help="Grayscale mask images or .npy arrays.")
    parser.add_argument("--marker-ratio", type=float, default=0.45, help="Marker threshold as a fraction of max distance.")
    parser.add_argument("--closing-iterations", type=int, default=3, help="Iterations of 3x3 morphological closing.")
    parser.add_argument("--markers-out", default=None, help="Directory for the raw 0/255 marker mask of each input (<stem>_markers.png).")
    parser.add_argument("--overlay-dir", default=None, help="Directory for a contour overlay of each input (<stem>_overlay.png).")
    _add_common_args(parser)
    return parser


def run_count(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_count_parser()
    args = _parse(parser, argv)
    setup_logging(args.log_level, args.log_format)

    counter = InstanceCounter(
        CounterConfig(marker_ratio=float(args.marker_ratio), closing_iterations=int(args.closing_iterations))
    )
    markers_dir = Path(args.markers_out) if args.markers_out else None
    overlay_dir = Path(args.overlay_dir) if args.overlay_dir else None
    for out_dir in (markers_dir, overlay_dir):
        if out_dir is not None:
            out_dir.mkdir(parents=True, exist_ok=True)

    for mask_path in (Path(p) for p in args.masks):
        mask = load_mask(mask_path)
        count = counter.count(mask)
        LOGGER.info("%s: %d instances", mask_path, count)
        print(json.dumps({"mask": str(mask_path), "count": count}))

        if markers_dir is None and overlay_dir is None:
            continue
        markers = counter.marker_mask(mask)
        if markers_dir is not None:
            _write_image(markers_dir / f"{mask_path.stem}_markers.png", markers)
        if overlay_dir is not None:
            _write_image(overlay_dir / f"{mask_path.stem}_overlay.png", draw_markers(mask, markers))
    return 0
