from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

import numpy as np

from .types import Detection


def _cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for rendering. Install with `pip install opencv-python`.") from e
    return cv2


def _color_for_class_id(class_idx: int) -> Tuple[int, int, int]:
    """
    Deterministic BGR color for a class index (OpenCV expects BGR).
    """

    # Small deterministic palette, then fallback to a seeded RNG for larger IDs.
    palette = [
        (255, 56, 56),
        (255, 157, 151),
        (255, 112, 31),
        (255, 178, 29),
        (207, 210, 49),
        (72, 249, 10),
        (146, 204, 23),
        (61, 219, 134),
        (26, 147, 52),
        (0, 212, 187),
        (44, 153, 168),
        (0, 194, 255),
        (52, 69, 147),
        (100, 115, 255),
        (0, 24, 236),
        (132, 56, 255),
        (82, 0, 133),
        (203, 56, 255),
        (255, 149, 200),
        (255, 55, 199),
    ]
    if 0 <= class_idx < len(palette):
        return palette[class_idx]

    rng = np.random.default_rng(int(class_idx))
    bgr = rng.integers(0, 256, size=3, dtype=np.uint8)
    return int(bgr[0]), int(bgr[1]), int(bgr[2])


def class_name(class_idx: int, class_names: Optional[Dict[int, str]] = None) -> str:
    if class_names:
        return class_names.get(class_idx, str(class_idx))
    return str(class_idx)


def format_label(detection: Detection, class_names: Optional[Dict[int, str]] = None) -> str:
    """"person 87.3%": class name plus score as a one-decimal percentage."""
    return f"{class_name(detection.class_idx, class_names)} {detection.score * 100:.1f}%"


class OverlaySurface:
    """
    Transparent BGRA canvas laid over the displayed frame.

    The caller sizes it to the frame (and resizes on frame-size change); the
    renderer only ever draws into it.
    """

    def __init__(self, width: int, height: int):
        self.pixels = np.zeros((0, 0, 4), dtype=np.uint8)
        self.resize(width, height)

    @property
    def size(self) -> Tuple[int, int]:
        return int(self.pixels.shape[1]), int(self.pixels.shape[0])

    def resize(self, width: int, height: int) -> None:
        if width < 0 or height < 0:
            raise ValueError("surface size must be >= 0")
        if (width, height) != self.size:
            self.pixels = np.zeros((height, width, 4), dtype=np.uint8)

    def clear(self) -> None:
        self.pixels[...] = 0

    def composite(self, frame_bgr: np.ndarray) -> np.ndarray:
        """Alpha-blend the overlay onto a copy of a same-sized BGR frame."""
        if frame_bgr.shape[:2] != self.pixels.shape[:2]:
            raise ValueError(f"Frame shape {frame_bgr.shape[:2]} does not match surface {self.pixels.shape[:2]}")
        alpha = self.pixels[:, :, 3:4].astype(np.float32) / 255.0
        out = frame_bgr.astype(np.float32) * (1.0 - alpha) + self.pixels[:, :, :3].astype(np.float32) * alpha
        return np.clip(out, 0, 255).astype(np.uint8)


class OverlayRenderer:
    """
    Draws a detection list as boxes, label tags and (for segmentation models)
    mask fills. Each render replaces whatever the surface showed before.
    """

    def __init__(
        self,
        class_names: Optional[Dict[int, str]] = None,
        *,
        box_thickness: int = 2,
        font_scale: float = 0.5,
        font_thickness: int = 1,
        mask_alpha: int = 96,
    ):
        self.class_names = class_names or {}
        self.box_thickness = box_thickness
        self.font_scale = font_scale
        self.font_thickness = font_thickness
        self.mask_alpha = mask_alpha

    def render(self, detections: Iterable[Detection], surface: OverlaySurface) -> None:
        cv2 = _cv2()
        surface.clear()
        out = surface.pixels
        w, h = surface.size
        if w == 0 or h == 0:
            return

        for det in detections:
            b, g, r = _color_for_class_id(det.class_idx)

            if det.mask is not None and det.mask.shape == (h, w):
                out[det.mask] = (b, g, r, self.mask_alpha)

            x1, y1, x2, y2 = det.as_xyxy()
            x1i = int(np.clip(round(x1), 0, w - 1))
            y1i = int(np.clip(round(y1), 0, h - 1))
            x2i = int(np.clip(round(x2), 0, w - 1))
            y2i = int(np.clip(round(y2), 0, h - 1))
            cv2.rectangle(out, (x1i, y1i), (x2i, y2i), (b, g, r, 255), thickness=self.box_thickness)

            label = format_label(det, self.class_names)
            (tw, th), baseline = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, self.font_scale, self.font_thickness)
            # Place label above the box if possible, else inside.
            y_text_top = y1i - th - baseline
            if y_text_top < 0:
                y_text_top = y1i

            x_text_right = min(x1i + tw, w - 1)
            y_text_bottom = min(y_text_top + th + baseline, h - 1)

            cv2.rectangle(out, (x1i, y_text_top), (x_text_right, y_text_bottom), (b, g, r, 255), thickness=-1)
            cv2.putText(
                out,
                label,
                (x1i, min(y_text_top + th, h - 1)),
                cv2.FONT_HERSHEY_SIMPLEX,
                self.font_scale,
                (255, 255, 255, 255),
                thickness=self.font_thickness,
                lineType=cv2.LINE_AA,
            )


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[Detection],
    *,
    class_names: Optional[Dict[int, str]] = None,
) -> np.ndarray:
    """
    Render detections onto a copy of a BGR image (one-off use, e.g. static images).
    """

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    h, w = image_bgr.shape[:2]
    surface = OverlaySurface(w, h)
    OverlayRenderer(class_names).render(detections, surface)
    return surface.composite(image_bgr)
