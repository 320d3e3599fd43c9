from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Union

import numpy as np


class FrameSource(Protocol):
    """Anything that yields BGR frames; `read()` returns None once the stream ended."""

    def read(self) -> Optional[np.ndarray]:
        ...

    def close(self) -> None:
        ...


class StaticImageSource:
    """
    Serves one image, `repeat` times (default once), then ends.
    """

    def __init__(self, image: np.ndarray, repeat: int = 1):
        if image is None or not hasattr(image, "shape"):
            raise TypeError("image must be a NumPy array (BGR).")
        self._image = image
        self._remaining = repeat

    def read(self) -> Optional[np.ndarray]:
        if self._remaining <= 0:
            return None
        self._remaining -= 1
        return self._image

    def close(self) -> None:
        self._remaining = 0

    @classmethod
    def from_file(cls, path: str, repeat: int = 1) -> "StaticImageSource":
        import cv2

        img = cv2.imread(path)
        if img is None:
            raise FileNotFoundError(f"Could not read image at path: {path}")
        return cls(img, repeat=repeat)


@dataclass(frozen=True)
class CaptureInfo:
    fps: Optional[float]
    width: Optional[int]
    height: Optional[int]


class VideoCaptureSource:
    """
    OpenCV capture over a video file, webcam index or stream URL.

    Each `read()` blocks until the device delivers the next frame; frames are
    never buffered on our side.
    """

    def __init__(self, target: Union[str, int]):
        import cv2

        self._cv2 = cv2
        self.target = target
        self._cap = cv2.VideoCapture(target)
        if not self._cap.isOpened():
            raise RuntimeError(f"Failed to open video source: {target!r}")

    def read(self) -> Optional[np.ndarray]:
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        if not ok or frame is None:
            return None
        return frame

    def info(self) -> CaptureInfo:
        cv2 = self._cv2
        if self._cap is None:
            return CaptureInfo(fps=None, width=None, height=None)
        fps = self._cap.get(cv2.CAP_PROP_FPS)
        w = self._cap.get(cv2.CAP_PROP_FRAME_WIDTH)
        h = self._cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
        return CaptureInfo(
            fps=float(fps) if fps and fps > 0 else None,
            width=int(w) if w and w > 0 else None,
            height=int(h) if h and h > 0 else None,
        )

    def close(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None


def open_source(*, image: Optional[str] = None, video: Optional[str] = None, webcam: Optional[int] = None) -> FrameSource:
    sources = [image is not None, video is not None, webcam is not None]
    if sum(sources) != 1:
        raise ValueError("Exactly one of image/video/webcam must be provided.")
    if image is not None:
        return StaticImageSource.from_file(image)
    if video is not None:
        return VideoCaptureSource(video)
    return VideoCaptureSource(int(webcam))
