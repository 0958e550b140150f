import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.4
    # None keeps every box that survives suppression.
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        if self.max_detections is not None and self.max_detections < 1:
            raise ValueError("max_detections must be >= 1 (or None)")


def iou(a: Sequence[int], b: Sequence[int]) -> float:
    """
    Intersection-over-union of two `(x, y, w, h)` rectangles.
    """

    return float(iou_many(a, np.asarray([b]))[0])


def iou_many(box: Sequence[int], boxes: np.ndarray) -> np.ndarray:
    """
    IoU of one `(x, y, w, h)` rectangle against an (N, 4) array of them.

    An empty rectangle (non-positive width or height) intersects nothing, and
    a non-positive union gives IoU 0.
    """

    boxes = np.asarray(boxes, dtype=np.int64).reshape(-1, 4)
    x, y, w, h = (int(v) for v in box)
    bx, by, bw, bh = boxes.T

    iw = np.minimum(x + w, bx + bw) - np.maximum(x, bx)
    ih = np.minimum(y + h, by + bh) - np.maximum(y, by)
    overlaps = (iw > 0) & (ih > 0) & (bw > 0) & (bh > 0) & (w > 0) & (h > 0)
    inter = np.where(overlaps, iw * ih, 0)
    union = w * h + bw * bh - inter

    out = np.zeros(boxes.shape[0], dtype=np.float64)
    np.divide(inter, union, out=out, where=union > 0)
    return out


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NMS over `(x, y, w, h)` boxes of shape (N, 4) and scores of shape (N,).

    Returns indices of kept boxes in acceptance order. Each round accepts the
    highest remaining score (earliest index on ties) and drops every other
    alive box whose IoU with it is strictly above `cfg.iou_threshold`.
    """

    boxes = np.asarray(boxes).reshape(-1, 4)
    scores = np.asarray(scores, dtype=np.float64).reshape(-1)
    if boxes.shape[0] != scores.shape[0]:
        raise ValueError(f"boxes and scores disagree in length: {boxes.shape[0]} vs {scores.shape[0]}")

    alive = np.ones(scores.shape[0], dtype=bool)
    keep = []

    while alive.any():
        if cfg.max_detections is not None and len(keep) >= cfg.max_detections:
            break

        remaining = np.flatnonzero(alive)
        best = int(remaining[np.argmax(scores[remaining])])
        alive[best] = False
        keep.append(best)

        rest = np.flatnonzero(alive)
        if rest.size == 0:
            break
        overlaps = iou_many(boxes[best], boxes[rest])
        alive[rest[overlaps > cfg.iou_threshold]] = False

    LOGGER.debug("nms kept %d of %d boxes (iou_threshold=%s)", len(keep), scores.shape[0], cfg.iou_threshold)
    return np.array(keep, dtype=np.int64)
