"""
Test doubles standing in for real inference runtimes.
"""

from __future__ import annotations

from typing import Callable, List, Optional, Sequence, Tuple

import numpy as np

from yolo_live.model_source import Backend, ModelSource


def make_predictions(boxes_cxcywh: Sequence[Sequence[float]], class_scores: Sequence[Sequence[float]]) -> np.ndarray:
    """Build a (1, 4 + C, A) prediction tensor, anchors on the last axis."""
    boxes = np.asarray(boxes_cxcywh, dtype=np.float32).reshape(-1, 4)
    scores = np.asarray(class_scores, dtype=np.float32).reshape(boxes.shape[0], -1)
    return np.concatenate([boxes, scores], axis=1).T[None, ...]


class FakeExecutor:
    backend_name = "fake"

    def __init__(
        self,
        outputs: Optional[Callable[[np.ndarray], List[np.ndarray]]] = None,
        *,
        input_shape: Optional[Tuple[Optional[int], ...]] = None,
        name: str = "fake",
    ):
        self._outputs = outputs or (lambda blob: [make_predictions([[0, 0, 0, 0]], [[0.0]])])
        self.input_shape = input_shape
        self.name = name
        self.blobs: List[np.ndarray] = []
        self.closed = False
        self.closed_during_infer = False
        # Called as on_infer(executor, blob) before producing outputs.
        self.on_infer: Optional[Callable[["FakeExecutor", np.ndarray], None]] = None

    @property
    def calls(self) -> int:
        return len(self.blobs)

    def infer(self, blob: np.ndarray) -> List[np.ndarray]:
        if self.closed:
            raise RuntimeError(f"{self.name} used after close")
        self.blobs.append(blob)
        if self.on_infer is not None:
            self.on_infer(self, blob)
        self.closed_during_infer = self.closed_during_infer or self.closed
        return self._outputs(blob)

    def close(self) -> None:
        self.closed = True


class FakeFactory:
    """
    Executor factory that hands out prepared executors in order and records
    what it was asked for. An exception instance in the queue is raised instead.
    """

    def __init__(self, *executors):
        self._queue = list(executors)
        self.requests: List[Tuple[Backend, ModelSource]] = []
        self.created: List[FakeExecutor] = []

    def __call__(self, backend: Backend, source: ModelSource) -> FakeExecutor:
        self.requests.append((backend, source))
        item = self._queue.pop(0) if self._queue else FakeExecutor()
        if isinstance(item, BaseException):
            raise item
        self.created.append(item)
        return item


def blob_source(name: str = "model") -> ModelSource:
    return ModelSource.from_bytes(b"\x08\x01fake-onnx", name=name)
