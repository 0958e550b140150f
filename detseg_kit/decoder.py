import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .errors import InvalidInput
from .nms import NMSConfig, nms
from .types import Detection

LOGGER = logging.getLogger(__name__)

RECORD_SIZE = 7


@dataclass(frozen=True)
class DecoderConfig:
    """
    Thresholds for decoding SSD-style detection output.

    Values outside [0, 1] are accepted as-is: a negative `prob_threshold`
    keeps every record, an `nms_threshold` >= 1 disables suppression.
    """

    nms_threshold: float = 0.4
    prob_threshold: float = 0.5
    # Optional list of class IDs to keep; None keeps all.
    class_ids: Optional[Sequence[int]] = None
    max_detections: Optional[int] = None

    def __post_init__(self) -> None:
        if self.max_detections is not None and (isinstance(self.max_detections, bool) or self.max_detections < 1):
            raise ValueError("max_detections must be >= 1 (or None)")
        if self.class_ids is not None and (
            isinstance(self.class_ids, (str, bytes)) or not isinstance(self.class_ids, (Sequence, np.ndarray))
        ):
            raise ValueError("class_ids must be a sequence of ints (or None)")


class DetectionDecoder:
    """
    Decode the flat output of an SSD-style detector (e.g. face-detection-0104).

    Layout (per image), `N` records of 7 floats each:
        [batch_idx, class_id, score, xmin, ymin, xmax, ymax]
    with coordinates normalized to [0, 1]. The array may have any shape
    (`(1, 1, N, 7)` straight from the runtime is fine) as long as its size is
    a multiple of 7.
    """

    def __init__(self, cfg: DecoderConfig = DecoderConfig()):
        self.cfg = cfg

    def process(self, raw_records: np.ndarray, image_width: int, image_height: int) -> List[Detection]:
        boxes, scores, class_ids = self.decode(raw_records, image_width, image_height)
        return [
            Detection(x=int(x), y=int(y), width=int(w), height=int(h), score=float(score), class_id=int(cls_id))
            for (x, y, w, h), score, cls_id in zip(boxes, scores, class_ids)
        ]

    def decode(
        self,
        raw_records: np.ndarray,
        image_width: int,
        image_height: int,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Returns three parallel arrays in acceptance order:
            boxes: (K, 4) int32 as x, y, w, h in pixels (inclusive bounds)
            scores: (K,) float32
            class_ids: (K,) int64
        """

        _check_dimension("image_width", image_width)
        _check_dimension("image_height", image_height)
        records = _as_records(raw_records)

        scores = records[:, 2]
        keep = scores >= self.cfg.prob_threshold
        records = records[keep]
        if not np.isfinite(records[:, 3:7]).all():
            raise InvalidInput("raw_records contain non-finite box coordinates")
        LOGGER.debug("%d of %d records pass prob_threshold=%s", records.shape[0], keep.shape[0], self.cfg.prob_threshold)

        boxes = _to_pixel_rects(records, image_width, image_height)
        scores = records[:, 2].astype(np.float32)
        class_ids = records[:, 1].astype(np.int64)

        if self.cfg.class_ids is not None:
            mask = np.isin(class_ids, np.array(self.cfg.class_ids))
            boxes, scores, class_ids = boxes[mask], scores[mask], class_ids[mask]

        nms_cfg = NMSConfig(iou_threshold=self.cfg.nms_threshold, max_detections=self.cfg.max_detections)
        keep_idx = nms(boxes, scores, nms_cfg)
        return boxes[keep_idx], scores[keep_idx], class_ids[keep_idx]


def decode(
    raw_records: np.ndarray,
    image_width: int,
    image_height: int,
    nms_threshold: float,
    prob_threshold: float,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    cfg = DecoderConfig(nms_threshold=nms_threshold, prob_threshold=prob_threshold)
    return DetectionDecoder(cfg).decode(raw_records, image_width, image_height)


# ------------------------------------------------------------------ #
# Helper internal
# ------------------------------------------------------------------ #
def _check_dimension(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
        raise InvalidInput(f"{name} must be an integer, got {type(value).__name__}")
    if value <= 0:
        raise InvalidInput(f"{name} must be > 0, got {value}")


def _as_records(raw_records: np.ndarray) -> np.ndarray:
    try:
        p = np.asarray(raw_records, dtype=np.float32)
    except (TypeError, ValueError) as exc:
        raise InvalidInput("raw_records must be a numeric array") from exc

    if p.size % RECORD_SIZE != 0:
        raise InvalidInput(f"raw_records length must be a multiple of {RECORD_SIZE}, got {p.size}")
    return p.reshape(-1, RECORD_SIZE)


def _to_pixel_rects(records: np.ndarray, image_width: int, image_height: int) -> np.ndarray:
    """
    Scale normalized xyxy to pixels, truncating toward zero, and convert to
    x, y, w, h with inclusive bounds. Degenerate rectangles are kept.
    """

    scale = np.array([image_width, image_height, image_width, image_height], dtype=np.float32)
    xyxy = (records[:, 3:7] * scale).astype(np.int64)
    x1, y1, x2, y2 = xyxy.T
    return np.stack([x1, y1, x2 - x1 + 1, y2 - y1 + 1], axis=1).astype(np.int32)
