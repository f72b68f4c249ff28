import math
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from .errors import ConfigurationError, ShapeMismatchError
from .geometry import NormalizedBox
from .metadata import parse_class_names
from .nms import suppress
from .types import Candidate, ClassNameTable, Detection


@dataclass(frozen=True)
class PostprocessConfig:
    """
    Thresholds shared by decode and NMS. Fixed for the lifetime of a run.
    """

    input_size: int = 640
    confidence_threshold: float = 0.5
    nms_threshold: float = 0.45

    def __post_init__(self) -> None:
        if isinstance(self.input_size, bool) or not isinstance(self.input_size, int) or self.input_size <= 0:
            raise ConfigurationError(f"input_size must be a positive integer, got {self.input_size!r}")
        for name in ("confidence_threshold", "nms_threshold"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or value < 0.0 or value > 1.0:
                raise ConfigurationError(f"{name} must be within [0, 1], got {value!r}")


def rows_from_model_output(output: np.ndarray, num_classes: int) -> np.ndarray:
    """
    Bring a raw YOLOv8-style output into row-major `(N, 4 + num_classes)`.

    Raises ConfigurationError when no axis matches the class table (the model
    and the configured class names disagree).

    Accepted layouts (batch axis optional, batch must be 1):
    - (1, 4 + C, N): channel-first, as exported by YOLOv8 (e.g. 5 x 8400)
    - (1, N, 4 + C): already one row per prediction slot

    A square output is read as channel-first.
    """

    width = 4 + num_classes
    p = np.asarray(output)
    if p.ndim == 3:
        if p.shape[0] != 1:
            raise ShapeMismatchError(f"Batch > 1 is not supported (got shape {p.shape}). Pass one image at a time.")
        p = p[0]
    if p.ndim != 2:
        raise ShapeMismatchError(f"Unsupported model output shape: {np.asarray(output).shape}")

    if p.shape[0] == width:
        p = p.T
    elif p.shape[1] != width:
        raise ConfigurationError(
            f"Model output shape {np.asarray(output).shape} has no axis of size 4 + {num_classes} = {width}"
        )
    return np.ascontiguousarray(p)


def decode_predictions(
    rows: np.ndarray,
    class_names: ClassNameTable,
    cfg: PostprocessConfig,
) -> List[Candidate]:
    """
    Decode rows of `[xc, yc, w, h, score_0 .. score_{C-1}]` (input-pixel units)
    into candidates with normalized, clamped boxes.

    Rows whose best class score is below `confidence_threshold` are dropped;
    a score equal to the threshold is kept. Output keeps input row order.
    """

    p = np.asarray(rows, dtype=np.float64)
    width = 4 + len(class_names)
    if p.ndim != 2 or p.shape[1] != width:
        raise ShapeMismatchError(f"Expected rows of shape (N, {width}), got {p.shape}")
    if p.shape[0] == 0:
        return []

    class_scores = p[:, 4:]
    # np.argmax returns the first index on ties
    class_ids = np.argmax(class_scores, axis=1)
    scores = class_scores[np.arange(class_scores.shape[0]), class_ids]

    keep = scores >= cfg.confidence_threshold
    if not np.any(keep):
        return []
    p, class_ids, scores = p[keep], class_ids[keep], scores[keep]

    size = float(cfg.input_size)
    cx, cy, w_box, h_box = p[:, 0], p[:, 1], p[:, 2], p[:, 3]
    x1 = (cx - w_box / 2) / size
    y1 = (cy - h_box / 2) / size
    w = w_box / size
    h = h_box / size

    # Origin first, then extent against the clamped origin.
    x1 = np.clip(x1, 0.0, 1.0)
    y1 = np.clip(y1, 0.0, 1.0)
    w = np.clip(w, 0.0, 1.0 - x1)
    h = np.clip(h, 0.0, 1.0 - y1)

    return [
        Candidate(
            class_id=int(cls_id),
            score=float(score),
            box=NormalizedBox(x=float(bx), y=float(by), width=float(bw), height=float(bh)),
        )
        for bx, by, bw, bh, score, cls_id in zip(x1, y1, w, h, scores, class_ids)
    ]


class Postprocessor:
    """
    Raw model output -> final detections: layout fix-up, decode, class-aware NMS.

    Holds only immutable configuration, so one instance can be shared across threads.
    """

    def __init__(self, cfg: PostprocessConfig, class_names: Sequence[str]):
        self.cfg = cfg
        self.class_names: ClassNameTable = parse_class_names(class_names)

    @property
    def num_classes(self) -> int:
        return len(self.class_names)

    def decode(self, rows: np.ndarray) -> List[Candidate]:
        return decode_predictions(rows, self.class_names, self.cfg)

    def suppress(self, candidates: Sequence[Candidate]) -> List[Detection]:
        return suppress(candidates, self.class_names, self.cfg.nms_threshold)

    def process(self, preds: np.ndarray) -> List[Detection]:
        rows = rows_from_model_output(preds, self.num_classes)
        return self.suppress(self.decode(rows))
