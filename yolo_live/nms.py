from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class NMSConfig:
    iou_threshold: float = 0.35
    max_detections: int = 300


def box_iou(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    IoU between one xyxy box and an (N, 4) array of xyxy boxes.

    A zero-area box on either side yields IoU 0 rather than a division by zero.
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    x1, y1, x2, y2 = (float(v) for v in box)

    xx1 = np.maximum(x1, boxes[:, 0])
    yy1 = np.maximum(y1, boxes[:, 1])
    xx2 = np.minimum(x2, boxes[:, 2])
    yy2 = np.minimum(y2, boxes[:, 3])
    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)

    area = max(0.0, x2 - x1) * max(0.0, y2 - y1)
    areas = np.maximum(0.0, boxes[:, 2] - boxes[:, 0]) * np.maximum(0.0, boxes[:, 3] - boxes[:, 1])
    union = area + areas - inter

    iou = np.zeros(boxes.shape[0], dtype=np.float64)
    valid = (areas > 0.0) & (union > 0.0) & (area > 0.0)
    np.divide(inter, union, out=iou, where=valid)
    return iou


def nms(boxes: np.ndarray, scores: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Greedy NumPy NMS. Expects boxes shape (N,4) in xyxy and scores shape (N,).
    Returns indices of kept boxes, highest score first.

    Equal scores keep their input order, so the earlier candidate wins. Any box
    with IoU >= cfg.iou_threshold against a kept box is dropped.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    order = np.argsort(-np.asarray(scores), kind="stable")
    keep = []

    while order.size > 0 and len(keep) < cfg.max_detections:
        i = order[0]
        keep.append(i)
        rest = order[1:]
        if rest.size == 0:
            break
        iou = box_iou(boxes[i], boxes[rest])
        order = rest[iou < cfg.iou_threshold]

    return np.array(keep, dtype=np.int64)


def batched_nms(boxes: np.ndarray, scores: np.ndarray, class_ids: np.ndarray, cfg: NMSConfig) -> np.ndarray:
    """
    Per-class NMS. Classes never suppress each other.

    The kept indices of all classes are merged by score (descending); ties fall
    back to input order, which makes the result fully deterministic.
    """

    if boxes.size == 0:
        return np.empty((0,), dtype=np.int64)

    kept = []
    for cls in np.unique(class_ids):
        idx = np.flatnonzero(class_ids == cls)
        keep_local = nms(boxes[idx], scores[idx], cfg)
        kept.extend(idx[keep_local].tolist())

    if not kept:
        return np.empty((0,), dtype=np.int64)

    kept_arr = np.array(kept, dtype=np.int64)
    # lexsort: last key is primary
    order = np.lexsort((kept_arr, -scores[kept_arr]))
    return kept_arr[order][: cfg.max_detections]
