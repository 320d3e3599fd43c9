from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from .errors import BackendUnavailableError
from .paths import PathLike, resolve_path


TORCHSCRIPT_SUFFIXES = {".torchscript", ".ts", ".pt"}
# TorchScript archives are zip files.
_ZIP_MAGIC = b"PK\x03\x04"


class Backend(str, Enum):
    GPU = "gpu"
    CPU = "cpu"

    @classmethod
    def parse(cls, value: Union[str, "Backend"]) -> "Backend":
        """
        Accepts the enum itself, its value, or a known alias
        ("webgpu"/"cuda" for GPU, "wasm" for the portable CPU path).
        """

        if isinstance(value, Backend):
            return value
        key = str(value).strip().lower()
        aliases = {"webgpu": cls.GPU, "cuda": cls.GPU, "wasm": cls.CPU}
        if key in aliases:
            return aliases[key]
        try:
            return cls(key)
        except ValueError:
            raise BackendUnavailableError(f"Unknown backend {value!r}; expected one of: gpu, cpu") from None


@dataclass(frozen=True)
class ModelSource:
    """
    Where the model bytes come from: a file on disk or an in-memory blob
    (e.g. a user-supplied upload). Exactly one of `path` / `data` is set.
    """

    path: Optional[Path] = None
    data: Optional[bytes] = None
    name: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.path is None) == (self.data is None):
            raise ValueError("ModelSource needs exactly one of path/data.")

    @classmethod
    def from_path(cls, path: PathLike, root: Optional[PathLike] = "auto") -> "ModelSource":
        resolved = resolve_path(path, root=root)
        return cls(path=resolved, name=resolved.stem)

    @classmethod
    def from_bytes(cls, data: bytes, name: str = "custom") -> "ModelSource":
        return cls(data=bytes(data), name=name)

    @property
    def payload(self) -> Union[Path, bytes]:
        return self.path if self.path is not None else self.data  # type: ignore[return-value]

    @property
    def format(self) -> str:
        """"torchscript" or "onnx"."""
        if self.path is not None:
            return "torchscript" if self.path.suffix.lower() in TORCHSCRIPT_SUFFIXES else "onnx"
        return "torchscript" if self.data is not None and self.data.startswith(_ZIP_MAGIC) else "onnx"

    def describe(self) -> str:
        if self.path is not None:
            return str(self.path)
        return f"<{self.name or 'blob'}: {len(self.data or b'')} bytes>"
