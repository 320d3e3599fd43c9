import argparse
import logging
from dataclasses import replace
from typing import Optional

import cv2

from yolo_live import (
    BackendUnavailableError,
    FrameLoopController,
    FrameResult,
    ModelSource,
    OverlayRenderer,
    OverlaySurface,
    PipelineConfig,
    SessionManager,
    VideoCaptureSource,
    YoloPipeline,
    format_label,
    load_class_names,
    load_pipeline_config,
    open_source,
)


def setup_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def main() -> int:
    parser = argparse.ArgumentParser(description="Run YOLO detection/segmentation on an image, video or webcam.")
    src = parser.add_mutually_exclusive_group()
    src.add_argument("--image", default=None, help="Path to an input image.")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")
    parser.add_argument("--model", default="models/yolo11n-seg.onnx", help="Path to a model (.onnx/.torchscript).")
    parser.add_argument("--classes", default="models/yolo_classes.json", help="Class label table (JSON list or names: YAML).")
    parser.add_argument("--backend", default="gpu", help="gpu or cpu (aliases: webgpu, wasm).")
    parser.add_argument("--config", default=None, help="Optional pipeline config JSON; flags below override it.")
    parser.add_argument("--imgsz", type=int, default=None, help="Letterbox input size (e.g., 640).")
    parser.add_argument("--conf", type=float, default=None, help="Score threshold.")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold for NMS.")
    parser.add_argument("--show", action="store_true", help="Show a window with the overlay.")
    parser.add_argument("--out", default=None, help="Optional output path (image or video) to save the visualization.")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N frames (0 = no limit).")
    parser.add_argument("--log-level", default="INFO", help="Logging level.")
    args = parser.parse_args()

    setup_logging(args.log_level)
    log = logging.getLogger("run_detection")

    base = load_pipeline_config(args.config) if args.config else PipelineConfig()
    overrides = {}
    if args.imgsz is not None:
        overrides.update(input_width=int(args.imgsz), input_height=int(args.imgsz))
    if args.conf is not None:
        overrides["score_threshold"] = float(args.conf)
    if args.iou is not None:
        overrides["iou_threshold"] = float(args.iou)
    config = replace(base, **overrides)
    if args.max_frames < 0:
        raise ValueError("--max-frames must be >= 0")

    try:
        class_names = load_class_names(args.classes)
    except FileNotFoundError:
        log.warning("Class table %s not found; labels will show class indices", args.classes)
        class_names = {}

    sessions = SessionManager()
    source_model = ModelSource.from_path(args.model)
    try:
        handle = sessions.load(args.backend, source_model, config)
    except BackendUnavailableError as e:
        # Offer the portable backend instead of silently switching.
        log.error("%s (retry with --backend cpu)", e)
        return 2
    log.info("Warm up time: %.2f ms", handle.warmup_ms)

    pipeline = YoloPipeline(sessions, config)
    renderer = OverlayRenderer(class_names)
    surface = OverlaySurface(0, 0)
    writer: Optional[cv2.VideoWriter] = None
    controller: Optional[FrameLoopController] = None
    current_frame = {}

    def render(result: FrameResult) -> None:
        nonlocal writer
        frame = current_frame["frame"]
        surface.resize(result.transform.orig_width, result.transform.orig_height)
        renderer.render(result.detections, surface)
        vis = surface.composite(frame)

        for det in result.detections:
            log.info("frame %d: %s %s", result.frame_index, format_label(det, class_names), det.box)
        log.info("Inference time: %.2f ms", result.inference_ms)

        if args.out and image_path is None:
            if writer is None:
                h, w = vis.shape[:2]
                writer = cv2.VideoWriter(args.out, cv2.VideoWriter_fourcc(*"mp4v"), out_fps, (w, h))
                if not writer.isOpened():
                    raise RuntimeError(f"Failed to open video writer: {args.out}")
            writer.write(vis)
        elif args.out:
            if not cv2.imwrite(args.out, vis):
                raise RuntimeError(f"Failed to write output image: {args.out}")

        if args.show:
            cv2.imshow("detections", vis)
            key = cv2.waitKey(0 if image_path else 1) & 0xFF
            if key in (27, ord("q")) and controller is not None:
                controller.stop(wait=False)
        if args.max_frames and result.frame_index >= args.max_frames and controller is not None:
            controller.stop(wait=False)

    controller = FrameLoopController(pipeline, render)

    # Default behavior stays image-based when no source is provided.
    image_path = args.image or (None if (args.video is not None or args.webcam is not None) else "media/sample.jpg")
    source = open_source(image=image_path) if image_path else open_source(video=args.video, webcam=args.webcam)
    out_fps = 30.0
    if isinstance(source, VideoCaptureSource):
        info = source.info()
        log.info("Capture %r: %sx%s @ %s fps", source.target, info.width, info.height, info.fps)
        # None when the device does not report a frame rate.
        out_fps = info.fps or out_fps

    class _Tap:
        """Keeps the frame being processed available to the renderer."""

        def read(self):
            frame = source.read()
            current_frame["frame"] = frame
            return frame

        def close(self) -> None:
            source.close()

    tap = _Tap()
    try:
        controller.run(tap)
    finally:
        tap.close()
        sessions.close()
        if writer is not None:
            writer.release()
        if args.show:
            cv2.destroyAllWindows()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
