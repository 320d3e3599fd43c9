"""
Inference executors for yolo_live.

Runtimes are imported lazily inside each executor so pre/post-processing stays
usable without installing onnxruntime or torch.
"""

from __future__ import annotations

from typing import List, Optional, Protocol, Tuple

import numpy as np

from ..model_source import Backend, ModelSource


class Executor(Protocol):
    """What a session needs from a backend."""

    backend_name: str
    # Fixed input dims reported by the model; None for dynamic/unknown axes.
    input_shape: Optional[Tuple[Optional[int], ...]]

    def infer(self, blob: np.ndarray) -> List[np.ndarray]:
        ...

    def close(self) -> None:
        ...


def create_executor(backend: Backend, source: ModelSource) -> Executor:
    """
    Default executor factory: TorchScript archives run on torch, everything
    else on ONNX Runtime.
    """

    if source.format == "torchscript":
        from .torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        device = "cuda" if backend is Backend.GPU else "cpu"
        return TorchScriptBackend(source.payload, TorchScriptBackendConfig(device=device))

    from .onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    return OnnxRuntimeBackend(source.payload, OnnxRuntimeBackendConfig(use_gpu=backend is Backend.GPU))


__all__ = ["Executor", "create_executor"]
