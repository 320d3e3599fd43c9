from __future__ import annotations

import argparse
import json
import logging
import statistics
import time
from dataclasses import asdict, dataclass, replace
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple

import cv2
import numpy as np
from tqdm import tqdm

from yolo_live import BackendUnavailableError, ModelSource, PipelineConfig, SessionManager, YoloPipeline


@dataclass(frozen=True)
class TimingSummary:
    n: int
    mean_ms: float
    p50_ms: float
    p95_ms: float


@dataclass(frozen=True)
class CaseSpec:
    model: str
    backend: str


@dataclass(frozen=True)
class CaseResult:
    case: CaseSpec
    warmup_ms: float
    preprocess: TimingSummary
    inference: TimingSummary
    postprocess: TimingSummary
    detections: int


def _summarize_ms(values: List[float]) -> TimingSummary:
    ordered = sorted(values)
    return TimingSummary(
        n=len(ordered),
        mean_ms=float(statistics.fmean(ordered)),
        p50_ms=float(np.percentile(ordered, 50)),
        p95_ms=float(np.percentile(ordered, 95)),
    )


def _parse_case(raw: str) -> CaseSpec:
    """
    Format: BACKEND:MODEL_PATH
    Example: "gpu:models/yolo11s-seg.onnx"
    """
    backend, sep, model = str(raw).partition(":")
    if not sep or not backend.strip() or not model.strip():
        raise ValueError('Invalid --case. Expected format "BACKEND:MODEL_PATH".')
    return CaseSpec(model=model.strip(), backend=backend.strip())


def _run_case(case: CaseSpec, frame: np.ndarray, config: PipelineConfig, repeats: int) -> CaseResult:
    sessions = SessionManager()
    try:
        handle = sessions.load(case.backend, ModelSource.from_path(case.model), config)
        pipeline = YoloPipeline(sessions, config)

        t_pre: List[float] = []
        t_inf: List[float] = []
        t_post: List[float] = []
        n_det = 0
        for _ in tqdm(range(repeats), desc=f"{case.backend}:{Path(case.model).name}", unit="frame", leave=False):
            t0 = time.perf_counter()
            tensor, transform = pipeline.preprocess(frame)
            t1 = time.perf_counter()
            raw, inference_ms = pipeline.execute(handle, tensor)
            t2 = time.perf_counter()
            n_det = len(pipeline.postprocess(raw, transform))
            t3 = time.perf_counter()
            t_pre.append((t1 - t0) * 1000.0)
            t_inf.append(inference_ms)
            t_post.append((t3 - t2) * 1000.0)
    finally:
        sessions.close()

    return CaseResult(
        case=case,
        warmup_ms=handle.warmup_ms,
        preprocess=_summarize_ms(t_pre),
        inference=_summarize_ms(t_inf),
        postprocess=_summarize_ms(t_post),
        detections=n_det,
    )


def _print_table(results: Sequence[CaseResult]) -> None:
    rows: List[Tuple[str, ...]] = []
    for r in results:
        rows.append(
            (
                r.case.backend,
                Path(r.case.model).name,
                f"{r.warmup_ms:.1f}",
                f"{r.inference.mean_ms:.2f}/{r.inference.p50_ms:.2f}/{r.inference.p95_ms:.2f}",
                f"{r.preprocess.mean_ms:.2f}",
                f"{r.postprocess.mean_ms:.2f}",
                str(r.detections),
            )
        )

    headers = ("backend", "model", "warmup ms", "infer mean/p50/p95 ms", "pre ms", "post ms", "dets")
    widths = [max(len(h), *(len(row[i]) for row in rows)) if rows else len(h) for i, h in enumerate(headers)]

    def fmt(row: Tuple[str, ...]) -> str:
        return "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row))

    print(fmt(headers))
    print("  ".join("-" * w for w in widths))
    for row in rows:
        print(fmt(row))


def main() -> int:
    parser = argparse.ArgumentParser(
        description=(
            "Compare warm-up and per-frame latency across models and backends.\n\n"
            'Repeat --case with format "BACKEND:MODEL_PATH" (e.g. gpu:models/yolo11n-seg.onnx).'
        )
    )
    parser.add_argument("--image", required=True, help="Input image, processed --repeats times per case.")
    parser.add_argument("--case", action="append", required=True, help='Benchmark case "BACKEND:MODEL_PATH". Repeatable.')
    parser.add_argument("--imgsz", type=int, default=640, help="Letterbox input size.")
    parser.add_argument("--repeats", type=int, default=100, help="Timed frames per case.")
    parser.add_argument("--json-out", default=None, help="Optional output path to write results JSON.")
    parser.add_argument("--log-level", default="WARNING", help="Logging level.")
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, args.log_level.upper()), format="%(levelname)s %(name)s: %(message)s")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    frame = cv2.imread(args.image)
    if frame is None:
        raise FileNotFoundError(f"Could not read image at path: {args.image}")
    config = replace(PipelineConfig(), input_width=args.imgsz, input_height=args.imgsz)

    results: List[CaseResult] = []
    for case in (_parse_case(c) for c in args.case):
        print(f"running backend={case.backend!r} model={case.model!r} ...")
        try:
            results.append(_run_case(case, frame, config, args.repeats))
        except BackendUnavailableError as e:
            print(f"  skipped: {e}")

    _print_table(results)

    if args.json_out:
        payload: Dict[str, Any] = {"results": [asdict(r) for r in results]}
        out_path = Path(args.json_out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        print(f"wrote {out_path}")

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
