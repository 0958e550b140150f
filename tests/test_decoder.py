import unittest

import numpy as np

from detseg_kit.decoder import DecoderConfig, DetectionDecoder, decode
from detseg_kit.errors import InvalidInput
from detseg_kit.nms import iou
from detseg_kit.types import Detection


def _records(*rows) -> np.ndarray:
    return np.array(rows, dtype=np.float32).reshape(-1)


class TestDetectionDecoder(unittest.TestCase):
    def test_single_record(self) -> None:
        raw = _records([0, 1, 0.9, 0.1, 0.1, 0.5, 0.5])
        boxes, scores, class_ids = decode(raw, 100, 100, nms_threshold=0.5, prob_threshold=0.5)
        self.assertEqual(boxes.tolist(), [[10, 10, 41, 41]])
        self.assertTrue(np.allclose(scores, [0.9]))
        self.assertEqual(class_ids.tolist(), [1])

    def test_overlapping_records_keep_higher_score(self) -> None:
        # On 200x200: (25, 25, 76, 76) and (25, 25, 76, 69), IoU ~= 0.908
        low = [0, 1, 0.8, 0.125, 0.125, 0.5, 0.46875]
        high = [0, 1, 0.9, 0.125, 0.125, 0.5, 0.5]
        for raw in (_records(high, low), _records(low, high)):
            boxes, scores, class_ids = decode(raw, 200, 200, nms_threshold=0.5, prob_threshold=0.5)
            self.assertEqual(boxes.tolist(), [[25, 25, 76, 76]])
            self.assertTrue(np.allclose(scores, [0.9]))
            self.assertEqual(class_ids.tolist(), [1])

    def test_disjoint_equal_scores_both_survive(self) -> None:
        raw = _records(
            [0, 1, 0.7, 0.0, 0.0, 0.25, 0.25],
            [0, 1, 0.7, 0.5, 0.5, 0.75, 0.75],
        )
        for nms_threshold in (0.0, 0.5, 1.0):
            boxes, scores, _ = decode(raw, 100, 100, nms_threshold=nms_threshold, prob_threshold=0.5)
            self.assertEqual(boxes.tolist(), [[0, 0, 26, 26], [50, 50, 26, 26]])
            self.assertTrue(np.allclose(scores, [0.7, 0.7]))

    def test_records_below_prob_threshold_are_dropped(self) -> None:
        raw = _records(
            [0, 1, 0.49, 0.0, 0.0, 0.25, 0.25],
            [0, 2, 0.5, 0.5, 0.5, 0.75, 0.75],
            [0, 3, 0.1, 0.25, 0.25, 0.5, 0.5],
        )
        boxes, scores, class_ids = decode(raw, 100, 100, nms_threshold=0.5, prob_threshold=0.5)
        self.assertEqual(class_ids.tolist(), [2])
        self.assertTrue(np.all(scores >= 0.5))

    def test_accepts_runtime_blob_shape(self) -> None:
        blob = np.array(
            [[[[0, 1, 0.9, 0.1, 0.1, 0.5, 0.5], [0, 1, 0.2, 0.1, 0.1, 0.5, 0.5]]]],
            dtype=np.float32,
        )
        self.assertEqual(blob.shape, (1, 1, 2, 7))
        boxes, _, _ = decode(blob, 100, 100, nms_threshold=0.5, prob_threshold=0.5)
        self.assertEqual(boxes.shape, (1, 4))

    def test_empty_buffer(self) -> None:
        boxes, scores, class_ids = decode(np.zeros((0,), dtype=np.float32), 100, 100, 0.5, 0.5)
        self.assertEqual(boxes.shape, (0, 4))
        self.assertEqual(scores.shape, (0,))
        self.assertEqual(class_ids.shape, (0,))

    def test_degenerate_rectangles_pass_through(self) -> None:
        # xmax < xmin gives a non-positive width; it is kept, not rejected.
        raw = _records([0, 1, 0.9, 0.5, 0.1, 0.25, 0.5])
        boxes, _, _ = decode(raw, 100, 100, nms_threshold=0.5, prob_threshold=0.5)
        self.assertEqual(boxes.tolist(), [[50, 10, -24, 41]])

    def test_invalid_record_length(self) -> None:
        with self.assertRaises(InvalidInput):
            decode(np.zeros((13,), dtype=np.float32), 100, 100, 0.5, 0.5)
        with self.assertRaises(ValueError):
            decode([0.0] * 6, 100, 100, 0.5, 0.5)

    def test_invalid_image_dimensions(self) -> None:
        raw = _records([0, 1, 0.9, 0.1, 0.1, 0.5, 0.5])
        for width, height in ((0, 100), (100, -1), (True, 100), (100.0, 100)):
            with self.assertRaises(InvalidInput):
                decode(raw, width, height, 0.5, 0.5)

    def test_non_numeric_records(self) -> None:
        with self.assertRaises(InvalidInput):
            decode(["a"] * 7, 100, 100, 0.5, 0.5)

    def test_non_finite_coordinates(self) -> None:
        for bad in (np.nan, np.inf, -np.inf):
            raw = _records([0, 1, 0.9, bad, 0.1, 0.5, 0.5])
            with self.assertRaises(InvalidInput):
                decode(raw, 100, 100, 0.5, 0.5)

        # Records dropped by the score threshold are never converted.
        raw = _records([0, 1, 0.9, 0.1, 0.1, 0.5, 0.5], [0, 1, 0.1, np.nan, 0.1, 0.5, 0.5])
        boxes, _, _ = decode(raw, 100, 100, 0.5, 0.5)
        self.assertEqual(boxes.tolist(), [[10, 10, 41, 41]])

    def test_config_validation(self) -> None:
        for kwargs in ({"max_detections": 0}, {"max_detections": -3}, {"class_ids": 1}, {"class_ids": "12"}):
            with self.assertRaises(ValueError):
                DecoderConfig(**kwargs)
        self.assertEqual(DecoderConfig(class_ids=(1, 2), max_detections=5).max_detections, 5)
        self.assertIsNone(DecoderConfig().class_ids)

    def test_class_id_whitelist(self) -> None:
        raw = _records(
            [0, 1, 0.9, 0.0, 0.0, 0.25, 0.25],
            [0, 2, 0.8, 0.5, 0.5, 0.75, 0.75],
        )
        decoder = DetectionDecoder(DecoderConfig(nms_threshold=0.5, prob_threshold=0.5, class_ids=[2]))
        _, _, class_ids = decoder.decode(raw, 100, 100)
        self.assertEqual(class_ids.tolist(), [2])

    def test_suppression_is_class_agnostic(self) -> None:
        raw = _records(
            [0, 1, 0.9, 0.1, 0.1, 0.5, 0.5],
            [0, 2, 0.8, 0.1, 0.1, 0.5, 0.5],
        )
        _, _, class_ids = decode(raw, 100, 100, nms_threshold=0.5, prob_threshold=0.5)
        self.assertEqual(class_ids.tolist(), [1])

    def test_process_returns_detections(self) -> None:
        raw = _records([0, 1, 0.9, 0.1, 0.1, 0.5, 0.5])
        dets = DetectionDecoder(DecoderConfig(nms_threshold=0.5, prob_threshold=0.5)).process(raw, 100, 100)
        self.assertEqual(len(dets), 1)
        det = dets[0]
        self.assertIsInstance(det, Detection)
        self.assertEqual(det.as_xywh(), (10, 10, 41, 41))
        self.assertEqual(det.as_xyxy(), (10, 10, 50, 50))
        self.assertEqual(det.area, 41 * 41)
        self.assertEqual(det.class_id, 1)
        self.assertAlmostEqual(det.score, 0.9, places=6)

    def test_random_output_invariants(self) -> None:
        rng = np.random.default_rng(3)
        n = 80
        xy1 = rng.uniform(0.0, 0.8, size=(n, 2))
        xy2 = xy1 + rng.uniform(0.05, 0.2, size=(n, 2))
        raw = np.concatenate(
            [np.zeros((n, 1)), rng.integers(0, 3, size=(n, 1)), rng.uniform(0, 1, size=(n, 1)), xy1, xy2],
            axis=1,
        ).astype(np.float32)

        boxes, scores, _ = decode(raw, 320, 240, nms_threshold=0.4, prob_threshold=0.3)
        self.assertTrue(np.all(scores >= np.float32(0.3)))
        self.assertTrue(np.isclose(scores[0], raw[raw[:, 2] >= np.float32(0.3), 2].max()))
        for a in range(len(boxes)):
            for b in range(a + 1, len(boxes)):
                self.assertLessEqual(iou(boxes[a], boxes[b]), 0.4)


if __name__ == "__main__":
    unittest.main()
