import tempfile
import unittest
from pathlib import Path

import cv2
import numpy as np

from yolo_live.model_source import ModelSource
from yolo_live.paths import resolve_path
from yolo_live.sources import StaticImageSource, VideoCaptureSource, open_source


class TestStaticImageSource(unittest.TestCase):
    def test_repeat_then_end(self) -> None:
        img = np.zeros((4, 4, 3), dtype=np.uint8)
        src = StaticImageSource(img, repeat=2)
        self.assertIs(src.read(), img)
        self.assertIs(src.read(), img)
        self.assertIsNone(src.read())

    def test_close_ends_stream(self) -> None:
        src = StaticImageSource(np.zeros((4, 4, 3), dtype=np.uint8), repeat=5)
        src.close()
        self.assertIsNone(src.read())

    def test_rejects_non_array(self) -> None:
        with self.assertRaises(TypeError):
            StaticImageSource(None)

    def test_open_source_from_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = str(Path(tmp) / "frame.png")
            self.assertTrue(cv2.imwrite(path, np.full((6, 8, 3), 7, dtype=np.uint8)))
            frame = open_source(image=path).read()
        self.assertEqual(frame.shape, (6, 8, 3))

    def test_open_source_requires_exactly_one(self) -> None:
        with self.assertRaises(ValueError):
            open_source()
        with self.assertRaises(ValueError):
            open_source(image="a.png", webcam=0)

    def test_missing_image(self) -> None:
        with self.assertRaises(FileNotFoundError):
            StaticImageSource.from_file("/nonexistent/frame.png")


class TestVideoCaptureSource(unittest.TestCase):
    def test_reads_clip_and_reports_info(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = str(Path(tmp) / "clip.avi")
            writer = cv2.VideoWriter(path, cv2.VideoWriter_fourcc(*"MJPG"), 12.0, (32, 24))
            self.assertTrue(writer.isOpened())
            for value in (0, 100, 200):
                writer.write(np.full((24, 32, 3), value, dtype=np.uint8))
            writer.release()

            src = open_source(video=path)
            self.assertIsInstance(src, VideoCaptureSource)
            info = src.info()
            self.assertEqual((info.width, info.height), (32, 24))
            self.assertAlmostEqual(info.fps, 12.0, places=1)

            frames = []
            frame = src.read()
            while frame is not None:
                frames.append(frame)
                frame = src.read()
            src.close()

        self.assertEqual(len(frames), 3)
        self.assertEqual(frames[0].shape, (24, 32, 3))
        self.assertIsNone(src.read())
        self.assertEqual(src.info().fps, None)

    def test_unopenable_target(self) -> None:
        with self.assertRaises(RuntimeError):
            VideoCaptureSource("/nonexistent/clip.avi")


class TestModelPaths(unittest.TestCase):
    def test_relative_path_uses_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            resolved = resolve_path("models/yolo11n-seg.onnx", root=tmp)
            self.assertEqual(resolved, (Path(tmp).resolve() / "models" / "yolo11n-seg.onnx"))

    def test_absolute_path_kept(self) -> None:
        p = Path(tempfile.gettempdir()).resolve() / "m.onnx"
        self.assertEqual(resolve_path(p), p)

    def test_model_source_from_path(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            src = ModelSource.from_path("yolo11s-seg.onnx", root=tmp)
        self.assertTrue(src.path.is_absolute())
        self.assertEqual(src.format, "onnx")
        self.assertIn("yolo11s-seg.onnx", src.describe())


if __name__ == "__main__":
    unittest.main()
