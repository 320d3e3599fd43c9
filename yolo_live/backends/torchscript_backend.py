from __future__ import annotations

import io
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple, Union

import numpy as np

from ..errors import BackendUnavailableError


PathLike = Union[str, Path]


@dataclass(frozen=True)
class TorchScriptBackendConfig:
    """
    Configuration for TorchScript inference.

    - device: "cpu" or "cuda"
    """

    device: str = "cpu"


class TorchScriptBackend:
    """
    TorchScript executor using `torch.jit.load`.

    Needs no model class code, so exported `.torchscript` archives (from a path
    or an uploaded blob) load directly.
    """

    # TorchScript does not expose the traced input shape.
    input_shape: Optional[Tuple[Optional[int], ...]] = None

    def __init__(self, model: Union[PathLike, bytes], cfg: TorchScriptBackendConfig = TorchScriptBackendConfig()):
        try:
            import torch  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("torch is required for the TorchScript backend. Install with `pip install torch`.") from e

        self._torch = torch
        self.device = torch.device(cfg.device)
        if self.device.type == "cuda" and not torch.cuda.is_available():
            raise BackendUnavailableError("CUDA is not available in this torch install.")
        self.backend_name = f"torchscript-{self.device.type}"

        if isinstance(model, (bytes, bytearray)):
            self.model_path: Optional[Path] = None
            target = io.BytesIO(bytes(model))
        else:
            self.model_path = Path(model)
            if not self.model_path.exists():
                raise FileNotFoundError(str(self.model_path))
            target = str(self.model_path)

        module = torch.jit.load(target, map_location=self.device)
        module.eval()
        self.model = module

    def infer(self, blob: np.ndarray) -> List[np.ndarray]:
        torch = self._torch
        if self.model is None:
            raise RuntimeError("TorchScript model is closed.")

        x = torch.as_tensor(blob, device=self.device)
        x = x.float().contiguous()

        with torch.no_grad():
            y = self.model(x)

        # Segmentation exports return (predictions, prototypes).
        items = list(y) if isinstance(y, (tuple, list)) else [y]
        return [t.detach().float().to("cpu").numpy() for t in items if hasattr(t, "detach")]

    def close(self) -> None:
        on_cuda = self.device.type == "cuda"
        self.model = None
        if on_cuda:
            self._torch.cuda.empty_cache()
