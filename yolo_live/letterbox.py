from typing import Tuple

import numpy as np


def letterbox(
    image: np.ndarray,
    new_shape: Tuple[int, int] = (640, 640),
    color: Tuple[int, int, int] = (114, 114, 114),
) -> Tuple[np.ndarray, float, Tuple[int, int]]:
    """
    Resize keeping aspect ratio and pad to `new_shape`, matching YOLO exports.

    Args:
        image: (H, W, 3) image
        new_shape: (width, height) of the output
        color: fill value for the border

    Returns:
        padded: resized + padded image of shape (new_h, new_w, 3)
        scale: uniform resize ratio (new / old)
        pad: (left, top) padding in pixels; right/bottom take the remainder
    """
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for letterbox(). Install with `pip install opencv-python`.") from e

    if isinstance(new_shape, int):
        new_shape = (new_shape, new_shape)

    h, w = image.shape[:2]
    new_w, new_h = new_shape

    # Scale ratio (new / old)
    r = min(new_w / w, new_h / h)

    resized_w = min(new_w, max(1, int(round(w * r))))
    resized_h = min(new_h, max(1, int(round(h * r))))
    if (w, h) != (resized_w, resized_h):
        image = cv2.resize(image, (resized_w, resized_h), interpolation=cv2.INTER_LINEAR)

    pad_w, pad_h = new_w - resized_w, new_h - resized_h
    left, top = pad_w // 2, pad_h // 2
    padded = cv2.copyMakeBorder(
        image, top, pad_h - top, left, pad_w - left, cv2.BORDER_CONSTANT, value=color
    )
    return padded, float(r), (left, top)
