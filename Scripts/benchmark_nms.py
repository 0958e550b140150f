from __future__ import annotations

import argparse
import statistics
import time
from dataclasses import dataclass
from typing import List

import numpy as np

from detseg_kit import DecoderConfig, DetectionDecoder


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p90_ms: float
    p95_ms: float


def _percentile(sorted_values: List[float], q: float) -> float:
    if not sorted_values:
        raise ValueError("No values provided.")
    if q < 0.0 or q > 100.0:
        raise ValueError("q must be in [0, 100].")
    if len(sorted_values) == 1:
        return float(sorted_values[0])
    # Linear interpolation between closest ranks.
    pos = (q / 100.0) * (len(sorted_values) - 1)
    lo = int(np.floor(pos))
    hi = int(np.ceil(pos))
    if lo == hi:
        return float(sorted_values[lo])
    t = pos - lo
    return float(sorted_values[lo] * (1.0 - t) + sorted_values[hi] * t)


def _summarize_ms(values_s: List[float]) -> TimingSummary:
    ms_sorted = sorted(v * 1000.0 for v in values_s)
    return TimingSummary(
        n=len(ms_sorted),
        mean_ms=float(statistics.fmean(ms_sorted)),
        p50_ms=_percentile(ms_sorted, 50.0),
        p90_ms=_percentile(ms_sorted, 90.0),
        p95_ms=_percentile(ms_sorted, 95.0),
    )


def _format_summary(label: str, s: TimingSummary) -> str:
    return (
        f"{label}: n={s.n} mean={s.mean_ms:.3f}ms p50={s.p50_ms:.3f}ms "
        f"p90={s.p90_ms:.3f}ms p95={s.p95_ms:.3f}ms"
    )


def _synthetic_records(n: int, n_classes: int, seed: int) -> np.ndarray:
    # [batch_idx, class_id, score, xmin, ymin, xmax, ymax], normalized coordinates
    rng = np.random.default_rng(seed)
    xy1 = rng.uniform(0.0, 0.9, size=(n, 2))
    wh = rng.uniform(0.01, 0.1, size=(n, 2))
    xy2 = np.minimum(xy1 + wh, 1.0)
    scores = rng.uniform(0.0, 1.0, size=(n, 1))
    class_ids = rng.integers(0, n_classes, size=(n, 1)).astype(np.float64)
    batch = np.zeros((n, 1))
    return np.concatenate([batch, class_ids, scores, xy1, xy2], axis=1).astype(np.float32)


def main() -> int:
    parser = argparse.ArgumentParser(description="Benchmark decode + greedy NMS latency on synthetic detector output.")
    parser.add_argument("--records", type=int, nargs="+", default=[50, 200, 800], help="Record counts to benchmark.")
    parser.add_argument("--classes", type=int, default=1, help="Number of synthetic classes.")
    parser.add_argument("--conf", type=float, default=0.3, help="Score threshold (pre-NMS).")
    parser.add_argument("--nms", type=float, default=0.4, help="IoU threshold for NMS.")
    parser.add_argument("--width", type=int, default=640)
    parser.add_argument("--height", type=int, default=480)
    parser.add_argument("--warmup", type=int, default=10, help="Warmup runs not recorded.")
    parser.add_argument("--repeats", type=int, default=200, help="Recorded runs per record count.")
    parser.add_argument("--seed", type=int, default=0)
    args = parser.parse_args()

    if args.classes < 1:
        raise ValueError("--classes must be >= 1")
    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")
    if any(n < 1 for n in args.records):
        raise ValueError("--records values must be >= 1")

    decoder = DetectionDecoder(DecoderConfig(nms_threshold=float(args.nms), prob_threshold=float(args.conf)))

    for n in args.records:
        records = _synthetic_records(int(n), int(args.classes), int(args.seed))
        timings: List[float] = []
        kept = 0
        for i in range(int(args.warmup) + int(args.repeats)):
            t0 = time.perf_counter()
            boxes, _, _ = decoder.decode(records, int(args.width), int(args.height))
            t1 = time.perf_counter()
            if i >= int(args.warmup):
                timings.append(t1 - t0)
            kept = boxes.shape[0]
        print(_format_summary(f"decode records={n} kept={kept}", _summarize_ms(timings)))

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
