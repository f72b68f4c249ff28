from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class NormalizedBox:
    """
    Axis-aligned box in the unit square, top-left origin, (x, y, width, height).

    The decoder clamps every box it emits so that `x + width <= 1` and
    `y + height <= 1`; the class itself does not enforce it.
    """

    x: float
    y: float
    width: float
    height: float

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def as_xywh(self) -> Tuple[float, float, float, float]:
        return self.x, self.y, self.width, self.height

    def to_pixels(self, image_width: int, image_height: int) -> Tuple[int, int, int, int]:
        """Scale to pixel (x, y, w, h), width by image width and height by image height."""
        return (
            int(round(self.x * image_width)),
            int(round(self.y * image_height)),
            int(round(self.width * image_width)),
            int(round(self.height * image_height)),
        )


def iou(a: NormalizedBox, b: NormalizedBox) -> float:
    """Intersection over union. Zero-area unions give 0.0."""
    ix1 = max(a.x, b.x)
    iy1 = max(a.y, b.y)
    ix2 = min(a.x2, b.x2)
    iy2 = min(a.y2, b.y2)

    inter = max(0.0, ix2 - ix1) * max(0.0, iy2 - iy1)
    union = a.area + b.area - inter
    if union <= 0.0:
        return 0.0
    return float(inter / union)


def iou_one_to_many(box: np.ndarray, boxes: np.ndarray) -> np.ndarray:
    """
    Vectorised `iou` of one xywh box (4,) against `boxes` (N, 4).
    """

    boxes = np.asarray(boxes, dtype=np.float64).reshape(-1, 4)
    if boxes.shape[0] == 0:
        return np.empty((0,), dtype=np.float64)
    x, y, w, h = (float(v) for v in box)

    xx1 = np.maximum(x, boxes[:, 0])
    yy1 = np.maximum(y, boxes[:, 1])
    xx2 = np.minimum(x + w, boxes[:, 0] + boxes[:, 2])
    yy2 = np.minimum(y + h, boxes[:, 1] + boxes[:, 3])

    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    union = (w * h) + boxes[:, 2] * boxes[:, 3] - inter

    out = np.zeros_like(inter)
    np.divide(inter, union, out=out, where=union > 0.0)
    return out
