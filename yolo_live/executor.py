from __future__ import annotations

import time
from typing import TYPE_CHECKING, List, Tuple

import numpy as np

from .errors import InferenceError
from .types import RawOutput

if TYPE_CHECKING:
    from .session import SessionHandle


def to_raw_output(outputs: List[np.ndarray]) -> RawOutput:
    """
    Detection exports have one output; segmentation exports add a 4-D
    prototype tensor as the second.
    """

    if not outputs:
        raise InferenceError("Backend returned no outputs.")
    predictions = np.asarray(outputs[0])
    prototypes = None
    if len(outputs) > 1 and np.asarray(outputs[1]).ndim == 4:
        prototypes = np.asarray(outputs[1])
    return RawOutput(predictions=predictions, prototypes=prototypes)


def run(session: "SessionHandle", tensor: np.ndarray) -> Tuple[RawOutput, float]:
    """
    One forward pass. Returns the raw output and the elapsed milliseconds.

    Raises InferenceError on shape/dtype mismatch, on a released session, or
    on any backend failure; no partial output is ever returned.
    """

    if tensor is None or not hasattr(tensor, "shape"):
        raise InferenceError("tensor must be a NumPy array.")
    expected = tuple(session.input_shape)
    if tuple(tensor.shape) != expected:
        raise InferenceError(f"Tensor shape {tuple(tensor.shape)} does not match session input {expected}.")
    if tensor.dtype != np.float32:
        raise InferenceError(f"Tensor dtype must be float32, got {tensor.dtype}.")

    start = time.perf_counter()
    try:
        outputs = session.infer(tensor)
        raw = to_raw_output(outputs)
    except InferenceError:
        raise
    except Exception as e:
        raise InferenceError(f"Forward pass failed on {session.backend_name}: {e}") from e
    return raw, (time.perf_counter() - start) * 1000.0
