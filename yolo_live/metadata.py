from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Union


def _parse_names_block(text: str) -> Dict[int, str]:
    """
    Parse the Ultralytics-style metadata mapping:

        names:
          0: person
          1: bicycle
          ...
    """

    names: Dict[int, str] = {}
    in_names = False

    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line == "names:":
            in_names = True
            continue
        if not in_names:
            continue

        # Parse "id: label"
        if ":" not in line:
            continue
        left, right = line.split(":", 1)
        left = left.strip()
        right = right.strip().strip("'").strip('"')
        if not left.isdigit():
            continue
        names[int(left)] = right

    return names


def load_class_names(path: Union[str, Path]) -> Dict[int, str]:
    """
    Load the class label table mapping class index -> display name.

    Accepts a JSON list (`["person", "bicycle", ...]`), a JSON object keyed by
    index, or the YAML-style `names:` block exported next to YOLO models.
    """

    path = Path(path)
    text = path.read_text(encoding="utf-8")

    if path.suffix.lower() == ".json":
        payload = json.loads(text)
        if isinstance(payload, list):
            return {i: str(name) for i, name in enumerate(payload)}
        if isinstance(payload, dict):
            return {int(k): str(v) for k, v in payload.items()}
        raise ValueError(f"Class names JSON must be a list or object: {path}")

    return _parse_names_block(text)
