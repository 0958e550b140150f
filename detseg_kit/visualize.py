from typing import Dict, Iterable, Optional, Tuple

import cv2
import numpy as np

from .types import Detection

_PALETTE = (
    (56, 56, 255),
    (151, 157, 255),
    (31, 112, 255),
    (29, 178, 255),
    (49, 210, 207),
    (10, 249, 72),
    (23, 204, 146),
    (134, 219, 61),
    (52, 147, 26),
    (187, 212, 0),
)


def color_for_class_id(class_id: int) -> Tuple[int, int, int]:
    """
    Deterministic BGR color for a class id.
    """

    if 0 <= class_id < len(_PALETTE):
        return _PALETTE[class_id]

    rng = np.random.default_rng(int(class_id) & 0xFFFFFFFF)
    bgr = rng.integers(0, 256, size=3, dtype=np.uint8)
    return int(bgr[0]), int(bgr[1]), int(bgr[2])


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[Detection],
    *,
    class_names: Optional[Dict[int, str]] = None,
    show_score: bool = True,
    box_thickness: int = 2,
    font_scale: float = 0.5,
) -> np.ndarray:
    """
    Draw decoded boxes with `label score` captions and return an annotated copy.

    Args:
        image_bgr: input image in BGR (H, W, 3).
        detections: Detection objects in pixel coordinates of `image_bgr`.
        class_names: optional mapping {class_id: class_name}.
    """

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    out = image_bgr.copy()
    h, w = out.shape[:2]

    for det in detections:
        if det.width <= 0 or det.height <= 0:
            continue
        x1, y1, x2, y2 = det.as_xyxy()
        x1 = int(np.clip(x1, 0, w - 1))
        y1 = int(np.clip(y1, 0, h - 1))
        x2 = int(np.clip(x2, 0, w - 1))
        y2 = int(np.clip(y2, 0, h - 1))

        color = color_for_class_id(det.class_id)
        cv2.rectangle(out, (x1, y1), (x2, y2), color, thickness=box_thickness)

        label = class_names.get(det.class_id, str(det.class_id)) if class_names else str(det.class_id)
        if show_score:
            label = f"{label} {det.score:.2f}"

        (tw, th), baseline = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, font_scale, 1)
        # Above the box when there is room, otherwise inside it.
        y_text = y1 - baseline if y1 - th - baseline >= 0 else min(y1 + th, h - 1)
        cv2.putText(out, label, (x1, y_text), cv2.FONT_HERSHEY_SIMPLEX, font_scale, color, 1, cv2.LINE_AA)

    return out


def draw_markers(mask: np.ndarray, markers: np.ndarray, *, color: Tuple[int, int, int] = (0, 0, 255)) -> np.ndarray:
    """
    Outline instance markers on a BGR rendering of a grayscale mask.
    """

    gray = np.asarray(mask)
    if gray.ndim == 3:
        gray = gray[:, :, 0]
    if gray.shape != markers.shape[:2]:
        raise ValueError(f"mask and markers differ in size: {gray.shape} vs {markers.shape[:2]}")
    if gray.dtype == np.bool_:
        gray = gray.astype(np.uint8) * 255

    out = cv2.cvtColor(np.ascontiguousarray(gray, dtype=np.uint8), cv2.COLOR_GRAY2BGR)
    contours, _ = cv2.findContours(markers, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
    cv2.drawContours(out, contours, -1, color, thickness=1)
    cv2.putText(out, f"count={len(contours)}", (5, 15), cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1, cv2.LINE_AA)
    return out
