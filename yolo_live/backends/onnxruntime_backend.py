from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

from ..errors import BackendUnavailableError


logger = logging.getLogger(__name__)


PathLike = Union[str, Path]

# Accelerated providers in preference order.
GPU_PROVIDERS: Tuple[str, ...] = (
    "CUDAExecutionProvider",
    "ROCMExecutionProvider",
    "DmlExecutionProvider",
    "CoreMLExecutionProvider",
)
CPU_PROVIDER = "CPUExecutionProvider"


def resolve_providers(use_gpu: bool, available: Sequence[str]) -> List[str]:
    """
    Pick ORT execution providers for the requested backend.

    GPU sessions keep CPU as a secondary provider for ops the accelerator does
    not implement, but fail outright when no accelerator is installed.
    """

    if not use_gpu:
        return [CPU_PROVIDER]
    gpu = [p for p in GPU_PROVIDERS if p in available]
    if not gpu:
        raise BackendUnavailableError(
            f"No GPU execution provider available (installed: {list(available)}). "
            "Install `onnxruntime-gpu` or choose the cpu backend."
        )
    return gpu + [CPU_PROVIDER]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - use_gpu: select accelerated providers (see GPU_PROVIDERS)
    - providers: explicit ORT providers, overrides use_gpu
    - input_name: override auto-selected input name if needed
    """

    use_gpu: bool = False
    providers: Optional[Sequence[str]] = None
    input_name: Optional[str] = None


class OnnxRuntimeBackend:
    """
    Minimal ONNX Runtime executor.

    Expects an NCHW float32 blob shaped (1, 3, H, W) and returns every model
    output as a NumPy array, in graph order.
    """

    def __init__(self, model: Union[PathLike, bytes], cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        if isinstance(model, (bytes, bytearray)):
            self.model_path: Optional[Path] = None
            model_arg: Union[str, bytes] = bytes(model)
        else:
            self.model_path = Path(model)
            if not self.model_path.exists():
                raise FileNotFoundError(str(self.model_path))
            model_arg = str(self.model_path)

        if cfg.providers is not None:
            providers = list(cfg.providers)
        else:
            providers = resolve_providers(cfg.use_gpu, ort.get_available_providers())
        self.backend_name = "onnxruntime-gpu" if cfg.use_gpu else "onnxruntime-cpu"

        sess_opts = ort.SessionOptions()
        self.session = ort.InferenceSession(model_arg, sess_options=sess_opts, providers=providers)

        if cfg.use_gpu:
            # ORT silently drops providers that fail to register.
            accelerated = [p for p in self.providers_in_use if p in GPU_PROVIDERS]
            if not accelerated:
                in_use = list(self.providers_in_use)
                self.session = None
                raise BackendUnavailableError(
                    f"No GPU execution provider could be registered (session got {in_use}). "
                    "Check the CUDA/cuDNN install or choose the cpu backend."
                )
            # Accelerator failures in run() must surface instead of retrying on CPU.
            self.session.disable_fallback()

        model_input = self.session.get_inputs()[0]
        self.input_name = cfg.input_name or model_input.name
        # Symbolic dims ("batch", "height") come back as strings.
        self.input_shape = tuple(d if isinstance(d, int) else None for d in model_input.shape)
        self.output_names = [o.name for o in self.session.get_outputs()]
        logger.info("ONNX Runtime session on providers %s", list(self.providers_in_use))

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers()) if self.session is not None else ()

    def infer(self, blob: np.ndarray) -> List[np.ndarray]:
        if self.session is None:
            raise RuntimeError("ONNX Runtime session is closed.")
        return list(self.session.run(self.output_names, {self.input_name: blob}))

    def close(self) -> None:
        # ORT frees device memory when the InferenceSession is collected.
        self.session = None
