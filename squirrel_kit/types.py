import math
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from .geometry import NormalizedBox

ClassNameTable = Tuple[str, ...]


@dataclass(frozen=True)
class Candidate:
    """
    Pre-suppression detection produced by the decoder.
    """

    class_id: int
    score: float
    box: NormalizedBox


@dataclass(frozen=True)
class Detection:
    """
    Final detection after NMS. The box is normalized to the source image.
    """

    class_id: int
    class_name: str
    score: float
    box: NormalizedBox

    def label(self) -> str:
        # halves round up
        return f"{self.class_name} {math.floor(self.score * 100 + 0.5)}%"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "class_id": self.class_id,
            "class_name": self.class_name,
            "score": self.score,
            "box": list(self.box.as_xywh()),
        }
