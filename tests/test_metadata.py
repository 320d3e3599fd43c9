import json
import tempfile
import unittest
from pathlib import Path

from yolo_live.metadata import load_class_names


class TestLoadClassNames(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_json_list(self) -> None:
        p = self.dir / "classes.json"
        p.write_text(json.dumps(["person", "bicycle", "car"]), encoding="utf-8")
        self.assertEqual(load_class_names(p), {0: "person", 1: "bicycle", 2: "car"})

    def test_json_object(self) -> None:
        p = self.dir / "classes.json"
        p.write_text(json.dumps({"0": "person", "2": "car"}), encoding="utf-8")
        self.assertEqual(load_class_names(p), {0: "person", 2: "car"})

    def test_json_scalar_rejected(self) -> None:
        p = self.dir / "classes.json"
        p.write_text("42", encoding="utf-8")
        with self.assertRaises(ValueError):
            load_class_names(p)

    def test_yaml_names_block(self) -> None:
        p = self.dir / "metadata.yaml"
        p.write_text(
            "task: segment\n# exported labels\nnames:\n  0: person\n  1: 'traffic light'\n  2: \"stop sign\"\n",
            encoding="utf-8",
        )
        self.assertEqual(load_class_names(p), {0: "person", 1: "traffic light", 2: "stop sign"})

    def test_missing_file(self) -> None:
        with self.assertRaises(FileNotFoundError):
            load_class_names(self.dir / "nope.json")


if __name__ == "__main__":
    unittest.main()
