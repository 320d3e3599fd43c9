import unittest

import numpy as np

from fakes import FakeExecutor, FakeFactory, blob_source, make_predictions
from yolo_live.config import PipelineConfig
from yolo_live.errors import InferenceError
from yolo_live.runtime import FrameResult, YoloPipeline, load_pipeline
from yolo_live.session import SessionManager

CFG = PipelineConfig(input_width=64, input_height=64)


def _predictions():
    # 40 anchors so the layout is unambiguous; only the first one scores.
    boxes = [[32, 32, 20, 10]] + [[0, 0, 1, 1]] * 39
    scores = [[0.9, 0.0]] + [[0.0, 0.0]] * 39
    return make_predictions(boxes, scores)


class TestLoadPipeline(unittest.TestCase):
    def test_infers_from_model_bytes(self) -> None:
        preds = _predictions()
        factory = FakeFactory(FakeExecutor(lambda blob: [preds]))
        pipe = load_pipeline(b"\x08\x01model", backend="wasm", config=CFG, executor_factory=factory)
        self.assertEqual(len(factory.requests), 1)

        result = pipe(np.zeros((64, 128, 3), dtype=np.uint8))
        self.assertIsInstance(result, FrameResult)
        self.assertEqual(len(result.detections), 1)
        det = result.detections[0]
        self.assertEqual(det.class_idx, 0)
        self.assertTrue(np.allclose(det.box, (44, 22, 40, 20), atol=1e-4))
        self.assertGreaterEqual(result.inference_ms, 0.0)

    def test_no_session_raises(self) -> None:
        pipe = YoloPipeline(SessionManager(FakeFactory()), CFG)
        with self.assertRaises(InferenceError):
            pipe(np.zeros((8, 8, 3), dtype=np.uint8))

    def test_config_change_requires_reload(self) -> None:
        manager = SessionManager(FakeFactory(FakeExecutor()))
        manager.load("cpu", blob_source(), CFG)
        pipe = YoloPipeline(manager, PipelineConfig(input_width=32, input_height=32))
        with self.assertRaises(InferenceError):
            pipe(np.zeros((8, 8, 3), dtype=np.uint8))


if __name__ == "__main__":
    unittest.main()
