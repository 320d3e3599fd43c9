from __future__ import annotations

from typing import List, Optional, Union

import numpy as np

from .config import PipelineConfig
from .errors import InferenceError
from .nms import NMSConfig, batched_nms
from .types import Detection, RawCandidates, RawOutput, TransformRecord


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(x, -50.0, 50.0)))


def cxcywh_to_xyxy(boxes: np.ndarray) -> np.ndarray:
    cx, cy, w, h = boxes.T
    return np.stack([cx - w / 2, cy - h / 2, cx + w / 2, cy + h / 2], axis=1)


class YoloPostprocessor:
    """
    Decode + NMS + coordinate inversion for YOLOv8/YOLO11 style exports.

    Supported prediction layouts (per image):
    - (4 + C, A): anchors on the last axis, e.g. 84 x 8400 for yolo11n
    - (4 + C + M, A): segmentation heads, e.g. 116 x 8400 with M = 32 mask coefficients
    - the transposed (A, 4 + C [+ M]) variants

    M is taken from the prototype tensor when one is present; otherwise every row
    after the box is a class score.
    """

    def __init__(self, config: PipelineConfig, channels_first: Optional[bool] = None):
        self.config = config
        # None: infer from the shape (channels are the smaller axis).
        self.channels_first = channels_first

    @property
    def nms_config(self) -> NMSConfig:
        return NMSConfig(iou_threshold=self.config.iou_threshold, max_detections=self.config.max_detections)

    def process(
        self,
        raw: Union[RawOutput, np.ndarray],
        transform: TransformRecord,
    ) -> List[Detection]:
        """
        Convert raw model output into detections in original frame coordinates.

        Args:
            raw: backend output for a single frame
            transform: TransformRecord produced when this same frame was prepared
        """

        if not isinstance(raw, RawOutput):
            raw = RawOutput(predictions=np.asarray(raw))

        cands = self.decode(raw)
        if len(cands) == 0:
            return []

        class_ids = np.argmax(cands.class_scores, axis=1)
        scores = cands.class_scores[np.arange(len(cands)), class_ids]

        # Filter by score
        anchor_idx = np.flatnonzero(scores >= self.config.score_threshold)
        if anchor_idx.size == 0:
            return []

        boxes_xyxy = cxcywh_to_xyxy(cands.boxes_cxcywh[anchor_idx].astype(np.float64))
        kept_local = batched_nms(boxes_xyxy, scores[anchor_idx], class_ids[anchor_idx], self.nms_config)
        if kept_local.size == 0:
            return []

        kept = anchor_idx[kept_local]
        boxes_in = boxes_xyxy[kept_local]
        boxes_frame = self.scale_boxes(boxes_in.copy(), transform)

        masks: List[Optional[np.ndarray]] = [None] * kept.size
        if raw.prototypes is not None and cands.mask_coeffs is not None:
            masks = list(self.decode_masks(cands.mask_coeffs[kept], raw.prototypes, boxes_in, transform))

        return [
            Detection(
                class_idx=int(class_ids[i]),
                score=float(scores[i]),
                box=(float(x1), float(y1), float(x2 - x1), float(y2 - y1)),
                mask=mask,
            )
            for i, (x1, y1, x2, y2), mask in zip(kept, boxes_frame, masks)
        ]

    # ------------------------------------------------------------------ #
    # Decode
    # ------------------------------------------------------------------ #
    def decode(self, raw: RawOutput) -> RawCandidates:
        """
        Split the prediction tensor into per-anchor boxes, class scores and
        (for segmentation models) mask coefficients, preserving anchor order.
        """

        p = np.asarray(raw.predictions)
        if p.ndim == 3:
            if p.shape[0] != 1:
                raise InferenceError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one frame at a time.")
            p = p[0]
        if p.ndim != 2:
            raise InferenceError(f"Unsupported YOLO output shape: {np.asarray(raw.predictions).shape}")

        num_masks = 0
        if raw.prototypes is not None:
            protos = np.asarray(raw.prototypes)
            if protos.ndim == 4:
                protos = protos[0]
            if protos.ndim != 3:
                raise InferenceError(f"Unsupported prototype shape: {np.asarray(raw.prototypes).shape}")
            num_masks = int(protos.shape[0])

        channels_first = self.channels_first
        if channels_first is None:
            channels_first = p.shape[0] <= p.shape[1]
        if channels_first:
            p = p.T  # (A, 4 + C + M)

        num_classes = p.shape[1] - 4 - num_masks
        if num_classes < 1:
            raise InferenceError(
                f"Output rows ({p.shape[1]}) leave no room for class scores (4 box rows, {num_masks} mask rows)."
            )

        boxes = p[:, 0:4]
        class_scores = p[:, 4 : 4 + num_classes]
        mask_coeffs = p[:, 4 + num_classes :] if num_masks else None
        return RawCandidates(boxes_cxcywh=boxes, class_scores=class_scores, mask_coeffs=mask_coeffs)

    # ------------------------------------------------------------------ #
    # Coordinate inversion
    # ------------------------------------------------------------------ #
    @staticmethod
    def scale_boxes(boxes: np.ndarray, transform: TransformRecord) -> np.ndarray:
        """
        Map xyxy boxes from letterboxed input space back to the original frame.
        """

        boxes[:, [0, 2]] = (boxes[:, [0, 2]] - transform.pad_x) / transform.scale
        boxes[:, [1, 3]] = (boxes[:, [1, 3]] - transform.pad_y) / transform.scale

        boxes[:, [0, 2]] = np.clip(boxes[:, [0, 2]], 0, transform.orig_width)
        boxes[:, [1, 3]] = np.clip(boxes[:, [1, 3]], 0, transform.orig_height)
        return boxes

    # ------------------------------------------------------------------ #
    # Segmentation masks
    # ------------------------------------------------------------------ #
    def decode_masks(
        self,
        coeffs: np.ndarray,
        prototypes: np.ndarray,
        boxes_in: np.ndarray,
        transform: TransformRecord,
    ) -> List[np.ndarray]:
        """
        Build one boolean frame-sized mask per detection.

        Masks are combined from the prototypes, cropped to the detection box,
        stripped of the letterbox border and resized to the original frame.
        """

        try:
            import cv2  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("OpenCV is required for mask decoding. Install with `pip install opencv-python`.") from e

        protos = np.asarray(prototypes, dtype=np.float32)
        if protos.ndim == 4:
            protos = protos[0]
        m, mh, mw = protos.shape
        coeffs = np.asarray(coeffs, dtype=np.float32).reshape(-1, m)

        masks = _sigmoid(coeffs @ protos.reshape(m, -1)).reshape(-1, mh, mw)

        sx = mw / transform.input_width
        sy = mh / transform.input_height
        b = boxes_in * np.array([sx, sy, sx, sy], dtype=np.float64)
        cols = np.arange(mw, dtype=np.float64)[None, None, :]
        rows = np.arange(mh, dtype=np.float64)[None, :, None]
        inside = (
            (cols >= b[:, 0, None, None])
            & (cols < b[:, 2, None, None])
            & (rows >= b[:, 1, None, None])
            & (rows < b[:, 3, None, None])
        )
        masks = masks * inside

        # Letterbox content region in prototype space
        x0 = int(round(transform.pad_x * sx))
        y0 = int(round(transform.pad_y * sy))
        x1 = int(round((transform.pad_x + transform.orig_width * transform.scale) * sx))
        y1 = int(round((transform.pad_y + transform.orig_height * transform.scale) * sy))
        x1 = min(mw, max(x0 + 1, x1))
        y1 = min(mh, max(y0 + 1, y1))

        out: List[np.ndarray] = []
        size = (transform.orig_width, transform.orig_height)
        for mask in masks:
            crop = np.ascontiguousarray(mask[y0:y1, x0:x1], dtype=np.float32)
            full = cv2.resize(crop, size, interpolation=cv2.INTER_LINEAR)
            binary = full > self.config.mask_threshold
            binary.setflags(write=False)
            out.append(binary)
        return out
