from __future__ import annotations


class YoloLiveError(Exception):
    """Base class for every failure raised by the pipeline."""


class ModelLoadError(YoloLiveError, RuntimeError):
    """Model artifact is missing, corrupt, or incompatible with the backend."""


class BackendUnavailableError(YoloLiveError, RuntimeError):
    """
    The requested compute backend cannot be initialised on this machine.

    Callers may offer another backend; the pipeline never falls back on its own.
    """


class InferenceError(YoloLiveError, RuntimeError):
    """A forward pass failed (device lost, shape mismatch, closed session)."""


class InvalidConfigurationError(YoloLiveError, ValueError):
    """Thresholds outside [0, 1] or non-positive input dimensions."""
