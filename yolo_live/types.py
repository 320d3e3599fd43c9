from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class Detection:
    """
    Final detection in original-frame pixel coordinates.

    `box` is (x, y, width, height) with (x, y) the top-left corner. `mask` is only
    set for segmentation models: a read-only boolean array shaped like the frame.
    """

    class_idx: int
    score: float
    box: Tuple[float, float, float, float]
    mask: Optional[np.ndarray] = field(default=None, compare=False)

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        x, y, w, h = self.box
        return x, y, x + w, y + h

    @property
    def area(self) -> float:
        return float(self.box[2] * self.box[3])


@dataclass(frozen=True)
class TransformRecord:
    """
    Letterbox parameters of one frame, needed to invert box coordinates.

    Model-space coordinates map back with `(v - pad) / scale`.
    """

    scale: float
    pad_x: float
    pad_y: float
    orig_width: int
    orig_height: int
    input_width: int
    input_height: int

    def to_frame(self, x: float, y: float) -> Tuple[float, float]:
        return (x - self.pad_x) / self.scale, (y - self.pad_y) / self.scale

    def to_input(self, x: float, y: float) -> Tuple[float, float]:
        return x * self.scale + self.pad_x, y * self.scale + self.pad_y


@dataclass(frozen=True)
class RawOutput:
    """
    Backend output for one frame.

    `predictions` is the detection head; `prototypes` is only present for
    segmentation models, shaped (1, M, mask_h, mask_w).
    """

    predictions: np.ndarray
    prototypes: Optional[np.ndarray] = None


@dataclass(frozen=True)
class RawCandidates:
    """Decoded per-anchor candidates in model input space, kept in anchor order."""

    boxes_cxcywh: np.ndarray
    class_scores: np.ndarray
    mask_coeffs: Optional[np.ndarray] = None

    def __len__(self) -> int:
        return int(self.boxes_cxcywh.shape[0])

    @property
    def num_classes(self) -> int:
        return int(self.class_scores.shape[1])
