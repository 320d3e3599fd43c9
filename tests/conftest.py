from __future__ import annotations

import sys
from pathlib import Path


def _ensure_on_syspath() -> None:
    # Some pytest import modes (and some Windows invocations) may not include the repo
    # root on sys.path, causing imports like `import yolo_live` (or the shared
    # `fakes` helpers next to this file) to fail.
    here = Path(__file__).resolve().parent
    for path in (here.parent, here):
        path_str = str(path)
        if path_str not in sys.path:
            sys.path.insert(0, path_str)


_ensure_on_syspath()
