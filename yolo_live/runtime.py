from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import numpy as np

from . import executor
from .config import PipelineConfig
from .errors import InferenceError
from .model_source import Backend, ModelSource
from .paths import PathLike
from .postprocess import YoloPostprocessor
from .preprocess import prepare
from .session import ExecutorFactory, SessionHandle, SessionManager
from .backends import create_executor
from .types import Detection, RawOutput, TransformRecord


@dataclass(frozen=True)
class FrameResult:
    """Detections of one frame together with the transform they were inverted with."""

    detections: List[Detection]
    transform: TransformRecord
    inference_ms: float
    frame_index: int = 0


class YoloPipeline:
    """
    Single-frame pipeline: preprocess (letterbox) -> inference -> postprocess.

    Expects BGR images (OpenCV-style) and returns detections in original image
    coordinates. The stages are exposed separately so the frame loop can track
    which one is running.
    """

    def __init__(
        self,
        sessions: SessionManager,
        config: PipelineConfig = PipelineConfig(),
        *,
        channels_first: Optional[bool] = None,
    ):
        self.sessions = sessions
        self.config = config
        self.post = YoloPostprocessor(config, channels_first=channels_first)

    def preprocess(self, frame: np.ndarray) -> Tuple[np.ndarray, TransformRecord]:
        return prepare(frame, self.config)

    def execute(self, session: SessionHandle, tensor: np.ndarray) -> Tuple[RawOutput, float]:
        if session.config.input_shape != self.config.input_shape:
            raise InferenceError(
                f"Session was loaded for input {session.config.input_shape}, pipeline uses "
                f"{self.config.input_shape}; reload the session after changing input size."
            )
        return executor.run(session, tensor)

    def postprocess(self, raw: RawOutput, transform: TransformRecord) -> List[Detection]:
        return self.post.process(raw, transform)

    def infer_frame(self, frame: np.ndarray, session: SessionHandle, frame_index: int = 0) -> FrameResult:
        tensor, transform = self.preprocess(frame)
        raw, inference_ms = self.execute(session, tensor)
        detections = self.postprocess(raw, transform)
        return FrameResult(detections=detections, transform=transform, inference_ms=inference_ms, frame_index=frame_index)

    def __call__(self, frame: np.ndarray) -> FrameResult:
        with self.sessions.lease() as session:
            if session is None:
                raise InferenceError("No model loaded.")
            return self.infer_frame(frame, session)


def load_pipeline(
    model: Union[PathLike, bytes, ModelSource],
    *,
    backend: Union[Backend, str] = Backend.CPU,
    config: PipelineConfig = PipelineConfig(),
    root: Optional[PathLike] = "auto",
    executor_factory: ExecutorFactory = create_executor,
) -> YoloPipeline:
    """
    Create a ready-to-use pipeline for a model on disk or in memory.

    Typical usage:
        pipe = load_pipeline("models/yolo11n-seg.onnx", backend="gpu")
        result = pipe(frame_bgr)

    Args:
        model: path (relative paths resolve against the project root), raw bytes or a ModelSource
        backend: "gpu" or "cpu" (aliases "webgpu" / "wasm")
        config: input size and thresholds; baked into the session
    """

    if isinstance(model, ModelSource):
        source = model
    elif isinstance(model, (bytes, bytearray)):
        source = ModelSource.from_bytes(bytes(model))
    else:
        source = ModelSource.from_path(model, root=root)

    sessions = SessionManager(executor_factory)
    sessions.load(backend, source, config)
    return YoloPipeline(sessions, config)
