"""
Streaming frame loop.

One cycle (capture -> preprocess -> infer -> postprocess -> render) is in flight
at any time; the next capture starts only after the previous render returned,
so there is no frame queue and every rendered result belongs to exactly one
captured frame and its own TransformRecord.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import numpy as np

from .errors import InferenceError
from .runtime import FrameResult, YoloPipeline
from .sources import FrameSource


logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    PREPROCESSING = "preprocessing"
    INFERRING = "inferring"
    POSTPROCESSING = "postprocessing"
    RENDERING = "rendering"


@dataclass
class LoopStats:
    cycles: int = 0
    failures: int = 0
    # Frames seen while no model was loaded.
    skipped: int = 0
    # Results dropped because the loop was stopped or switched mid-cycle.
    discarded: int = 0
    last_inference_ms: float = 0.0


class FrameLoopController:
    """
    Drives a YoloPipeline over a FrameSource.

    - The session is leased at the start of each cycle, so a model/backend
      switch takes effect on the next cycle; the running one finishes on the old
      session.
    - `stop()` and `process_image()` bump a generation counter. A cycle started
      under an older generation still finishes its forward pass, but its result
      is discarded instead of rendered.
    - An InferenceError fails only its own cycle; streaming continues.
    """

    def __init__(
        self,
        pipeline: YoloPipeline,
        renderer: Optional[Callable[[FrameResult], None]] = None,
        *,
        on_error: Optional[Callable[[Exception], None]] = None,
    ):
        self.pipeline = pipeline
        self.renderer = renderer
        self.on_error = on_error
        self.stats = LoopStats()
        self.last_result: Optional[FrameResult] = None

        self._state = LoopState.IDLE
        self._generation = 0
        self._frame_index = 0
        self._gen_lock = threading.Lock()
        self._cycle_lock = threading.Lock()
        # Thread currently inside a cycle (renderer and on_error run there).
        self._cycle_owner: Optional[threading.Thread] = None
        self._stop_requested = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def state(self) -> LoopState:
        return self._state

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------ #
    # Streaming
    # ------------------------------------------------------------------ #
    def start(self, source: FrameSource) -> threading.Thread:
        """Run the loop on a dedicated worker thread."""
        if self.running:
            raise RuntimeError("Frame loop is already running; stop it first.")
        generation = self._begin()
        self._thread = threading.Thread(
            target=self._run, args=(source, generation), name="yolo-live-loop", daemon=True
        )
        self._thread.start()
        return self._thread

    def run(self, source: FrameSource) -> None:
        """Run the loop on the calling thread until the source ends or stop() is called."""
        self._run(source, self._begin())

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> None:
        """
        Cancel scheduling of further cycles. An in-flight forward pass is allowed
        to finish; its result is discarded.
        """

        with self._gen_lock:
            self._generation += 1
        self._stop_requested.set()
        thread = self._thread
        if wait and thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def _begin(self) -> int:
        self._stop_requested.clear()
        with self._gen_lock:
            return self._generation

    def _active(self, generation: int) -> bool:
        return not self._stop_requested.is_set() and generation == self._generation

    def _run(self, source: FrameSource, generation: int) -> None:
        logger.info("Frame loop started")
        try:
            while self._active(generation):
                if not self.run_cycle(source, generation):
                    logger.info("Frame source ended")
                    break
        except Exception:
            logger.exception("Frame loop aborted")
            raise
        finally:
            self._state = LoopState.IDLE
            logger.info(
                "Frame loop stopped (cycles=%d failures=%d discarded=%d)",
                self.stats.cycles,
                self.stats.failures,
                self.stats.discarded,
            )

    def run_cycle(self, source: FrameSource, generation: Optional[int] = None) -> bool:
        """
        Capture and process one frame. Returns False when the source has ended.
        """

        if generation is None:
            generation = self._generation
        with self._cycle_lock:
            self._cycle_owner = threading.current_thread()
            try:
                self._state = LoopState.CAPTURING
                frame = source.read()
                if frame is None:
                    return False
                self._frame_index += 1
                self._process(frame, generation, self._frame_index, raise_errors=False)
                return True
            finally:
                self._cycle_owner = None

    # ------------------------------------------------------------------ #
    # Static images
    # ------------------------------------------------------------------ #
    def process_image(self, frame: np.ndarray) -> Optional[FrameResult]:
        """
        Switch to static-image mode: stop any stream, then run exactly one cycle.

        Returns None when no model is loaded. Unlike streaming, InferenceError
        propagates since there is no next cycle to recover on.

        Must not be called from inside a cycle (renderer or on_error callback):
        that cycle still holds the loop, so this raises RuntimeError.
        """

        if self._cycle_owner is threading.current_thread():
            raise RuntimeError(
                "process_image() called from inside a running cycle; call stop() there "
                "and process the image once the loop has returned."
            )
        self.stop(wait=True)
        with self._gen_lock:
            generation = self._generation
        with self._cycle_lock:
            self._cycle_owner = threading.current_thread()
            self._frame_index += 1
            try:
                return self._process(frame, generation, self._frame_index, raise_errors=True)
            finally:
                self._cycle_owner = None
                self._state = LoopState.IDLE

    # ------------------------------------------------------------------ #
    # One cycle
    # ------------------------------------------------------------------ #
    def _process(self, frame: np.ndarray, generation: int, frame_index: int, *, raise_errors: bool) -> Optional[FrameResult]:
        pipeline = self.pipeline
        with pipeline.sessions.lease() as session:
            if session is None:
                self.stats.skipped += 1
                logger.debug("No model loaded; skipping frame %d", frame_index)
                return None
            try:
                self._state = LoopState.PREPROCESSING
                tensor, transform = pipeline.preprocess(frame)
                self._state = LoopState.INFERRING
                raw, inference_ms = pipeline.execute(session, tensor)
                self._state = LoopState.POSTPROCESSING
                detections = pipeline.postprocess(raw, transform)
            except InferenceError as e:
                self.stats.failures += 1
                logger.warning("Frame %d failed: %s", frame_index, e)
                if self.on_error is not None:
                    self.on_error(e)
                if raise_errors:
                    raise
                return None

        result = FrameResult(
            detections=detections,
            transform=transform,
            inference_ms=inference_ms,
            frame_index=frame_index,
        )
        if generation != self._generation:
            self.stats.discarded += 1
            logger.debug("Discarding frame %d after mode switch", frame_index)
            return None

        self._state = LoopState.RENDERING
        if self.renderer is not None:
            self.renderer(result)
        self.last_result = result
        self.stats.cycles += 1
        self.stats.last_inference_ms = inference_ms
        logger.debug("Frame %d: %d detections in %.2f ms", frame_index, len(detections), inference_ms)
        return result
