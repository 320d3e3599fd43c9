"""
Real-time YOLO detection / segmentation pipeline.

preprocess (letterbox) -> forward pass on a warmed-up session -> decode + per-class
NMS -> overlay rendering, driven one frame at a time by FrameLoopController.
Runtimes (onnxruntime, torch) are only imported when a session is loaded.
"""

from .config import PipelineConfig, load_pipeline_config
from .errors import (
    BackendUnavailableError,
    InferenceError,
    InvalidConfigurationError,
    ModelLoadError,
    YoloLiveError,
)
from .types import Detection, RawOutput, TransformRecord
from .letterbox import letterbox
from .preprocess import prepare
from .nms import NMSConfig, batched_nms, box_iou, nms
from .postprocess import YoloPostprocessor
from .model_source import Backend, ModelSource
from .session import SessionHandle, SessionManager
from .runtime import FrameResult, YoloPipeline, load_pipeline
from .loop import FrameLoopController, LoopState
from .metadata import load_class_names
from .sources import StaticImageSource, VideoCaptureSource, open_source
from .visualize import OverlayRenderer, OverlaySurface, draw_detections, format_label

__all__ = [
    "PipelineConfig",
    "load_pipeline_config",
    "BackendUnavailableError",
    "InferenceError",
    "InvalidConfigurationError",
    "ModelLoadError",
    "YoloLiveError",
    "Detection",
    "RawOutput",
    "TransformRecord",
    "letterbox",
    "prepare",
    "NMSConfig",
    "batched_nms",
    "box_iou",
    "nms",
    "YoloPostprocessor",
    "Backend",
    "ModelSource",
    "SessionHandle",
    "SessionManager",
    "FrameResult",
    "YoloPipeline",
    "load_pipeline",
    "FrameLoopController",
    "LoopState",
    "load_class_names",
    "StaticImageSource",
    "VideoCaptureSource",
    "open_source",
    "OverlayRenderer",
    "OverlaySurface",
    "draw_detections",
    "format_label",
]
