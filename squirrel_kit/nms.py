from typing import List, Sequence

import numpy as np

from .geometry import iou_one_to_many
from .types import Candidate, ClassNameTable, Detection


def suppress(
    candidates: Sequence[Candidate],
    class_names: ClassNameTable,
    nms_threshold: float,
) -> List[Detection]:
    """
    Greedy class-aware NMS. Returns detections in descending score order.

    Candidates are visited by score (stable, so ties keep their input order).
    Each surviving candidate suppresses later ones of the same class whose IoU
    with it is strictly greater than `nms_threshold`.
    """

    if not candidates:
        return []

    boxes = np.array([c.box.as_xywh() for c in candidates], dtype=np.float64)
    scores = np.array([c.score for c in candidates], dtype=np.float64)
    class_ids = np.array([c.class_id for c in candidates], dtype=np.int64)

    order = np.argsort(-scores, kind="stable")
    keep: List[int] = []

    while order.size > 0:
        i = int(order[0])
        keep.append(i)

        rest = order[1:]
        overlap = iou_one_to_many(boxes[i], boxes[rest])
        same_class = class_ids[rest] == class_ids[i]
        order = rest[~(same_class & (overlap > nms_threshold))]

    return [
        Detection(
            class_id=candidates[i].class_id,
            class_name=class_names[candidates[i].class_id],
            score=candidates[i].score,
            box=candidates[i].box,
        )
        for i in keep
    ]


def detections_to_candidates(detections: Sequence[Detection]) -> List[Candidate]:
    return [Candidate(class_id=d.class_id, score=d.score, box=d.box) for d in detections]
