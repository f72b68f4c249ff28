"""
Detection postprocessing and annotation for YOLOv8-style object detectors.

Turns the raw `(4 + C, N)` model output into a deduplicated set of labelled,
normalized boxes (decode -> confidence filter -> class-aware NMS) and burns
them into the source image. Needs NumPy; OpenCV for image I/O and drawing.
"""

from .errors import (
    ConfigurationError,
    ImageDecodeError,
    ImageEncodeError,
    ShapeMismatchError,
    SquirrelKitError,
)
from .geometry import NormalizedBox, iou
from .types import Candidate, Detection
from .nms import suppress
from .postprocess import Postprocessor, PostprocessConfig, decode_predictions, rows_from_model_output
from .metadata import load_class_names, parse_class_names
from .visualize import AnnotationResult, AnnotationStyle, annotate_image, draw_detections
from .runtime import DetectionPipeline, load_pipeline, find_project_root, resolve_path

__all__ = [
    "SquirrelKitError",
    "ConfigurationError",
    "ShapeMismatchError",
    "ImageDecodeError",
    "ImageEncodeError",
    "NormalizedBox",
    "iou",
    "Candidate",
    "Detection",
    "suppress",
    "Postprocessor",
    "PostprocessConfig",
    "decode_predictions",
    "rows_from_model_output",
    "load_class_names",
    "parse_class_names",
    "AnnotationResult",
    "AnnotationStyle",
    "annotate_image",
    "draw_detections",
    "DetectionPipeline",
    "load_pipeline",
    "find_project_root",
    "resolve_path",
]
