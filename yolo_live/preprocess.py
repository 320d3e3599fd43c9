from __future__ import annotations

from typing import Tuple

import numpy as np

from .config import PipelineConfig
from .letterbox import letterbox
from .types import TransformRecord


def _as_bgr(frame: np.ndarray) -> np.ndarray:
    if frame is None or not hasattr(frame, "shape"):
        raise TypeError("frame must be a NumPy array (BGR).")
    if frame.ndim == 2:
        return np.repeat(frame[:, :, None], 3, axis=2)
    if frame.ndim == 3 and frame.shape[2] == 4:
        # BGRA surfaces (canvas grabs, screen captures): drop alpha.
        return frame[:, :, :3]
    if frame.ndim == 3 and frame.shape[2] == 3:
        return frame
    raise ValueError(f"Expected frame shape (H, W), (H, W, 3) or (H, W, 4), got {frame.shape}")


def prepare(frame: np.ndarray, config: PipelineConfig) -> Tuple[np.ndarray, TransformRecord]:
    """
    Turn an arbitrary-size BGR frame into the model's NCHW float32 input.

    The returned TransformRecord belongs to this frame only and is what the
    postprocessor uses to map boxes back.
    """

    image = _as_bgr(frame)
    orig_h, orig_w = image.shape[:2]
    if orig_h == 0 or orig_w == 0:
        raise ValueError("frame has zero width or height")

    if image.dtype != np.uint8:
        # Float frames are ambiguous ([0, 1] vs [0, 255]); callers convert.
        raise TypeError(f"frame must be uint8 (OpenCV BGR), got {image.dtype}")

    pad = int(config.pad_value)
    padded, scale, (pad_x, pad_y) = letterbox(
        image,
        new_shape=config.input_size,
        color=(pad, pad, pad),
    )

    # BGR -> RGB, normalize, HWC -> CHW, add batch
    blob = padded[:, :, ::-1].astype(np.float32) / 255.0
    blob = np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...])

    record = TransformRecord(
        scale=scale,
        pad_x=float(pad_x),
        pad_y=float(pad_y),
        orig_width=int(orig_w),
        orig_height=int(orig_h),
        input_width=config.input_width,
        input_height=config.input_height,
    )
    return blob, record
