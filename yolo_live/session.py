from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional, Union

import numpy as np

from .backends import Executor, create_executor
from .config import PipelineConfig
from .errors import BackendUnavailableError, InferenceError, ModelLoadError, YoloLiveError
from .model_source import Backend, ModelSource


logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[Backend, ModelSource], Executor]


class SessionHandle:
    """
    One loaded model bound to one backend.

    Handles are never mutated after load. A replaced handle is retired: it stops
    being handed out and its executor is closed once the last cycle holding a
    lease on it has finished.
    """

    def __init__(self, executor: Executor, backend: Backend, source: ModelSource, config: PipelineConfig):
        self._executor: Optional[Executor] = executor
        self.backend = backend
        self.source = source
        self.config = config
        self.warmup_ms = 0.0
        self._lock = threading.Lock()
        self._leases = 0
        self._retired = False

    def __repr__(self) -> str:
        state = "closed" if self.closed else ("retired" if self._retired else "live")
        return f"SessionHandle(backend={self.backend.value}, model={self.source.describe()}, {state})"

    @property
    def input_shape(self):
        return self.config.input_shape

    @property
    def backend_name(self) -> str:
        if self._executor is None:
            return self.backend.value
        return getattr(self._executor, "backend_name", self.backend.value)

    @property
    def closed(self) -> bool:
        return self._executor is None

    @property
    def retired(self) -> bool:
        return self._retired

    def infer(self, blob: np.ndarray) -> List[np.ndarray]:
        executor = self._executor
        if executor is None:
            raise InferenceError(f"{self!r} has been released.")
        return executor.infer(blob)

    def warmup(self) -> float:
        """Run one throwaway pass on a zero tensor; returns elapsed ms."""
        blob = np.zeros(self.config.input_shape, dtype=np.float32)
        start = time.perf_counter()
        self.infer(blob)
        self.warmup_ms = (time.perf_counter() - start) * 1000.0
        return self.warmup_ms

    # ------------------------------------------------------------------ #
    # Lease bookkeeping, driven by SessionManager
    # ------------------------------------------------------------------ #
    def _acquire(self) -> bool:
        with self._lock:
            if self._retired or self._executor is None:
                return False
            self._leases += 1
            return True

    def _release(self) -> None:
        with self._lock:
            self._leases -= 1
            should_close = self._retired and self._leases == 0
        if should_close:
            self._close()

    def _retire(self) -> None:
        with self._lock:
            self._retired = True
            should_close = self._leases == 0
        if should_close:
            self._close()

    def _close(self) -> None:
        executor, self._executor = self._executor, None
        if executor is not None:
            executor.close()
            logger.info("Released session %s on %s", self.source.describe(), self.backend.value)


class SessionManager:
    """
    Owns the current SessionHandle.

    `load()` is replace-or-fail: the new handle only becomes current after it
    was built and warmed up; on failure the previous handle stays current.
    """

    def __init__(self, executor_factory: ExecutorFactory = create_executor):
        self._factory = executor_factory
        self._lock = threading.Lock()
        self._current: Optional[SessionHandle] = None

    @property
    def current(self) -> Optional[SessionHandle]:
        return self._current

    def load(
        self,
        backend: Union[Backend, str],
        source: ModelSource,
        config: PipelineConfig,
    ) -> SessionHandle:
        backend = Backend.parse(backend)
        logger.info("Loading model %s on %s backend", source.describe(), backend.value)

        executor = self._build(backend, source)
        handle = SessionHandle(executor, backend, source, config)
        try:
            self._check_input_shape(executor, config)
            handle.warmup()
        except YoloLiveError:
            handle._close()
            raise
        except Exception as e:
            handle._close()
            raise ModelLoadError(f"Warm-up failed for {source.describe()}: {e}") from e

        with self._lock:
            previous, self._current = self._current, handle
        logger.info("Model ready on %s (warm-up %.2f ms)", handle.backend_name, handle.warmup_ms)

        if previous is not None:
            previous._retire()
        return handle

    @contextmanager
    def lease(self) -> Iterator[Optional[SessionHandle]]:
        """
        Pin the current handle for the duration of one cycle. Yields None when
        no model is loaded.
        """

        with self._lock:
            handle = self._current
            if handle is not None and not handle._acquire():
                handle = None
        try:
            yield handle
        finally:
            if handle is not None:
                handle._release()

    def close(self) -> None:
        with self._lock:
            previous, self._current = self._current, None
        if previous is not None:
            previous._retire()

    def _build(self, backend: Backend, source: ModelSource) -> Executor:
        try:
            return self._factory(backend, source)
        except (BackendUnavailableError, ModelLoadError):
            raise
        except ImportError as e:
            raise BackendUnavailableError(f"Runtime for the {backend.value} backend is not installed: {e}") from e
        except FileNotFoundError as e:
            raise ModelLoadError(f"Model not found: {source.describe()}") from e
        except Exception as e:
            raise ModelLoadError(f"Could not load model {source.describe()}: {e}") from e

    @staticmethod
    def _check_input_shape(executor: Executor, config: PipelineConfig) -> None:
        declared = getattr(executor, "input_shape", None)
        if not declared:
            return
        expected = config.input_shape
        if len(declared) != len(expected) or any(
            d is not None and d != e for d, e in zip(declared, expected)
        ):
            raise ModelLoadError(f"Model expects input {tuple(declared)}, configured {expected}.")
