"""
Post-processing for detector and segmenter outputs.

- `decoder`: SSD-style 7-float records -> boxes/scores/classes with greedy NMS.
- `instances`: segmentation mask -> instance count via distance-transform markers.

Both work on NumPy arrays handed over by whatever inference runtime the caller
uses; nothing here loads or runs a network.
"""

from .types import Detection
from .errors import InvalidInput
from .nms import NMSConfig, iou, iou_many, nms
from .decoder import DecoderConfig, DetectionDecoder, decode
from .instances import CounterConfig, InstanceCounter, count_instances
from .visualize import draw_detections, draw_markers

__all__ = [
    "Detection",
    "InvalidInput",
    "NMSConfig",
    "iou",
    "iou_many",
    "nms",
    "DecoderConfig",
    "DetectionDecoder",
    "decode",
    "CounterConfig",
    "InstanceCounter",
    "count_instances",
    "draw_detections",
    "draw_markers",
]
