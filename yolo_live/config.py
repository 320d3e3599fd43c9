from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Tuple, Union

from .errors import InvalidConfigurationError


@dataclass(frozen=True)
class PipelineConfig:
    """
    Shared settings for preprocessing and postprocessing.

    Input dimensions are baked into a loaded session; changing them requires
    loading the session again.
    """

    input_width: int = 640
    input_height: int = 640
    iou_threshold: float = 0.35
    score_threshold: float = 0.45
    # Neutral grey used to fill the letterbox border.
    pad_value: int = 114
    max_detections: int = 300
    mask_threshold: float = 0.5

    def __post_init__(self) -> None:
        for name in ("input_width", "input_height", "max_detections"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfigurationError(f"{name} must be an integer")
            if value <= 0:
                raise InvalidConfigurationError(f"{name} must be > 0")
        for name in ("iou_threshold", "score_threshold", "mask_threshold"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidConfigurationError(f"{name} must be a number")
            if not 0.0 <= float(value) <= 1.0:
                raise InvalidConfigurationError(f"{name} must be in [0, 1] (got {value})")
        if isinstance(self.pad_value, bool) or not isinstance(self.pad_value, int) or not 0 <= self.pad_value <= 255:
            raise InvalidConfigurationError("pad_value must be an integer in [0, 255]")

    @property
    def input_shape(self) -> Tuple[int, int, int, int]:
        return (1, 3, self.input_height, self.input_width)

    @property
    def input_size(self) -> Tuple[int, int]:
        """(width, height) of the model input."""
        return (self.input_width, self.input_height)


def _require_int(payload: Dict[str, Any], key: str) -> int:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidConfigurationError(f"{key} must be an integer")
    return int(value)


def _require_number(payload: Dict[str, Any], key: str) -> float:
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidConfigurationError(f"{key} must be a number")
    return float(value)


def config_from_dict(payload: Dict[str, Any]) -> PipelineConfig:
    if not isinstance(payload, dict):
        raise InvalidConfigurationError("Pipeline config must be a JSON object")

    int_keys = {"input_width", "input_height", "pad_value", "max_detections"}
    float_keys = {"iou_threshold", "score_threshold", "mask_threshold"}
    unknown = sorted(set(payload.keys()) - int_keys - float_keys)
    if unknown:
        raise InvalidConfigurationError(f"Unknown pipeline config keys: {unknown}")

    kwargs: Dict[str, Any] = {}
    for key in int_keys & payload.keys():
        kwargs[key] = _require_int(payload, key)
    for key in float_keys & payload.keys():
        kwargs[key] = _require_number(payload, key)
    return PipelineConfig(**kwargs)


def load_pipeline_config(path: Union[str, Path]) -> PipelineConfig:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pipeline config not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise InvalidConfigurationError(f"Invalid pipeline config JSON: {path}") from exc
    return config_from_dict(payload)
