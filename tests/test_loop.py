import threading
import unittest

import numpy as np

from fakes import FakeExecutor, FakeFactory, blob_source, make_predictions
from yolo_live.config import PipelineConfig
from yolo_live.errors import InferenceError
from yolo_live.loop import FrameLoopController, LoopState
from yolo_live.runtime import FrameResult, YoloPipeline
from yolo_live.session import SessionManager
from yolo_live.sources import StaticImageSource

CFG = PipelineConfig(input_width=64, input_height=64)

# 128x64 frame: scale 0.5, 16 px bars top and bottom
FRAME_A = np.zeros((64, 128, 3), dtype=np.uint8)
# 64x64 frame: identity transform
FRAME_B = np.zeros((64, 64, 3), dtype=np.uint8)


def _fixed(box, score=0.9):
    preds = make_predictions([box], [[score]])
    return lambda blob: [preds]


class ListSource:
    def __init__(self, frames):
        self.frames = list(frames)
        self.reads = 0

    def read(self):
        self.reads += 1
        return self.frames.pop(0) if self.frames else None

    def close(self) -> None:
        self.frames = []


class EndlessSource:
    def read(self):
        return FRAME_B

    def close(self) -> None:
        pass


class TestFrameLoop(unittest.TestCase):
    def _controller(self, *executors, load=True):
        factory = FakeFactory(*executors)
        manager = SessionManager(factory)
        if load:
            manager.load("cpu", blob_source("first"), CFG)
        rendered = []
        pipeline = YoloPipeline(manager, CFG, channels_first=True)
        controller = FrameLoopController(pipeline, rendered.append)
        return controller, manager, rendered

    def test_streams_until_source_ends(self) -> None:
        controller, _, rendered = self._controller(FakeExecutor(_fixed([32, 32, 20, 10])))
        controller.run(StaticImageSource(FRAME_B, repeat=3))
        self.assertEqual(len(rendered), 3)
        self.assertEqual([r.frame_index for r in rendered], [1, 2, 3])
        self.assertEqual(controller.stats.cycles, 3)
        self.assertIs(controller.state, LoopState.IDLE)
        self.assertIs(controller.last_result, rendered[-1])

    def test_states_follow_cycle_order(self) -> None:
        seen = []
        executor = FakeExecutor(_fixed([32, 32, 20, 10]))
        controller, _, _ = self._controller(executor)
        executor.on_infer = lambda ex, blob: seen.append(controller.state)
        controller.renderer = lambda result: seen.append(controller.state)
        controller.run(StaticImageSource(FRAME_B, repeat=2))
        self.assertEqual(seen, [LoopState.INFERRING, LoopState.RENDERING] * 2)

    def test_session_switch_mid_cycle_completes_with_old_session(self) -> None:
        old = FakeExecutor(_fixed([32, 32, 20, 10]), name="old")
        new = FakeExecutor(_fixed([10, 10, 4, 4]), name="new")
        controller, manager, rendered = self._controller(old, new)

        def switch(ex, blob):
            manager.load("gpu", blob_source("second"), CFG)
            # The old backend must survive until this cycle is done.
            self.assertFalse(ex.closed)
            ex.on_infer = None

        old.on_infer = switch
        controller.run(ListSource([FRAME_A, FRAME_B]))

        self.assertEqual(len(rendered), 2)
        first, second = rendered
        # Frame A's own transform: box (22, 27, 42, 37) in input space -> (44, 22, 40, 20)
        self.assertEqual((first.transform.orig_width, first.transform.orig_height), (128, 64))
        self.assertTrue(np.allclose(first.detections[0].box, (44, 22, 40, 20), atol=1e-4))
        # Frame B ran on the new session with its identity transform.
        self.assertEqual((second.transform.orig_width, second.transform.orig_height), (64, 64))
        self.assertTrue(np.allclose(second.detections[0].box, (8, 8, 4, 4), atol=1e-4))

        self.assertTrue(old.closed)
        self.assertFalse(old.closed_during_infer)
        self.assertEqual(old.calls, 2)  # warm-up + frame A
        self.assertEqual(new.calls, 2)  # warm-up + frame B
        self.assertFalse(new.closed)

    def test_stop_mid_cycle_discards_result(self) -> None:
        executor = FakeExecutor(_fixed([32, 32, 20, 10]))
        controller, _, rendered = self._controller(executor)
        executor.on_infer = lambda ex, blob: controller.stop()
        source = ListSource([FRAME_B, FRAME_B, FRAME_B])
        controller.run(source)
        self.assertEqual(rendered, [])
        self.assertEqual(controller.stats.discarded, 1)
        self.assertEqual(source.reads, 1)
        self.assertEqual(executor.calls, 2)  # the in-flight pass still finished
        self.assertIs(controller.state, LoopState.IDLE)

    def test_inference_error_fails_only_its_cycle(self) -> None:
        state = {"calls": 0}
        good = make_predictions([[32, 32, 20, 10]], [[0.9]])

        def flaky(blob):
            state["calls"] += 1
            if state["calls"] == 3:  # warm-up, frame 1, then frame 2 fails
                raise RuntimeError("device lost")
            return [good]

        controller, _, rendered = self._controller(FakeExecutor(flaky))
        errors = []
        controller.on_error = errors.append
        controller.run(StaticImageSource(FRAME_B, repeat=3))
        self.assertEqual([r.frame_index for r in rendered], [1, 3])
        self.assertEqual(controller.stats.failures, 1)
        self.assertEqual(len(errors), 1)
        self.assertIsInstance(errors[0], InferenceError)

    def test_frames_without_session_are_skipped(self) -> None:
        controller, _, rendered = self._controller(load=False)
        source = ListSource([FRAME_B, FRAME_B])
        controller.run(source)
        self.assertEqual(rendered, [])
        self.assertEqual(controller.stats.skipped, 2)
        self.assertEqual(source.reads, 3)

    def test_process_image(self) -> None:
        controller, _, rendered = self._controller(FakeExecutor(_fixed([32, 32, 20, 10])))
        result = controller.process_image(FRAME_A)
        self.assertIsInstance(result, FrameResult)
        self.assertEqual(rendered, [result])
        self.assertEqual(len(result.detections), 1)
        self.assertIs(controller.state, LoopState.IDLE)

    def test_process_image_propagates_inference_error(self) -> None:
        state = {"calls": 0}

        def fail_after_warmup(blob):
            state["calls"] += 1
            if state["calls"] > 1:
                raise RuntimeError("shape mismatch in graph")
            return [make_predictions([[1, 1, 1, 1]], [[0.0]])]

        controller, _, rendered = self._controller(FakeExecutor(fail_after_warmup))
        with self.assertRaises(InferenceError):
            controller.process_image(FRAME_B)
        self.assertEqual(rendered, [])
        self.assertIs(controller.state, LoopState.IDLE)

    def test_process_image_from_renderer_is_rejected(self) -> None:
        controller, _, _ = self._controller(FakeExecutor(_fixed([32, 32, 20, 10])))
        errors = []

        def render(result):
            try:
                controller.process_image(FRAME_A)
            except RuntimeError as e:
                errors.append(e)

        controller.renderer = render
        controller.run(StaticImageSource(FRAME_B, repeat=2))
        self.assertEqual(len(errors), 2)
        self.assertEqual(controller.stats.cycles, 2)

        # Outside a cycle the static path works again.
        controller.renderer = None
        self.assertIsNotNone(controller.process_image(FRAME_A))

    def test_process_image_from_worker_callback_does_not_hang(self) -> None:
        controller, _, _ = self._controller(FakeExecutor(_fixed([32, 32, 20, 10])))
        attempted = threading.Event()
        errors = []

        def render(result):
            try:
                controller.process_image(FRAME_A)
            except RuntimeError as e:
                errors.append(e)
            finally:
                attempted.set()

        controller.renderer = render
        thread = controller.start(EndlessSource())
        try:
            self.assertTrue(attempted.wait(timeout=10))
        finally:
            controller.stop(wait=True, timeout=10)
        self.assertFalse(thread.is_alive())
        self.assertTrue(errors)

    def test_worker_thread_start_and_stop(self) -> None:
        controller, _, _ = self._controller(FakeExecutor(_fixed([32, 32, 20, 10])))
        enough = threading.Event()
        rendered = []

        def render(result):
            rendered.append(result)
            if len(rendered) >= 3:
                enough.set()

        controller.renderer = render
        thread = controller.start(EndlessSource())
        try:
            self.assertTrue(enough.wait(timeout=10))
            with self.assertRaises(RuntimeError):
                controller.start(EndlessSource())
        finally:
            controller.stop(wait=True, timeout=10)
        self.assertFalse(thread.is_alive())
        self.assertFalse(controller.running)
        self.assertIs(controller.state, LoopState.IDLE)
        count = len(rendered)
        self.assertEqual([r.frame_index for r in rendered], list(range(1, count + 1)))


if __name__ == "__main__":
    unittest.main()
