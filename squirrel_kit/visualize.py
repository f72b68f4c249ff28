from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import numpy as np

from .errors import ImageDecodeError, ImageEncodeError
from .types import Detection


@dataclass(frozen=True)
class AnnotationStyle:
    """
    Fixed drawing style. Colors are BGR (OpenCV order).
    """

    box_color: Tuple[int, int, int] = (0, 255, 0)
    text_color: Tuple[int, int, int] = (0, 255, 255)
    box_thickness: int = 3
    font_scale: float = 0.6
    font_thickness: int = 2
    label_padding: int = 5
    glyph: str = "\U0001f43f\ufe0f"


@dataclass(frozen=True)
class AnnotationResult:
    image_bytes: bytes
    detection_count: int
    glyphs: str
    detections: Tuple[Detection, ...]


def _require_cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for annotation. Install with `pip install opencv-python`.") from e
    return cv2


def sniff_image_format(image_bytes: bytes) -> str:
    """
    Return the OpenCV encoder extension matching the input bytes.
    Unknown formats fall back to JPEG.
    """

    head = bytes(image_bytes[:12])
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return ".png"
    if head.startswith(b"\xff\xd8\xff"):
        return ".jpg"
    if head.startswith(b"BM"):
        return ".bmp"
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return ".webp"
    if head[:4] in (b"II*\x00", b"MM\x00*"):
        return ".tiff"
    return ".jpg"


def decode_image(image_bytes: bytes) -> np.ndarray:
    cv2 = _require_cv2()
    if not image_bytes:
        raise ImageDecodeError("Image is empty.")
    buf = np.frombuffer(image_bytes, dtype=np.uint8)
    image = cv2.imdecode(buf, cv2.IMREAD_COLOR)
    if image is None:
        raise ImageDecodeError("Could not decode image bytes.")
    return image


def encode_image(image_bgr: np.ndarray, ext: str = ".jpg") -> bytes:
    cv2 = _require_cv2()
    ok, buf = cv2.imencode(ext, image_bgr)
    if not ok:
        raise ImageEncodeError(f"Failed to encode annotated image as {ext}.")
    return buf.tobytes()


def draw_detections(
    image_bgr: np.ndarray,
    detections: Iterable[Detection],
    style: AnnotationStyle = AnnotationStyle(),
) -> np.ndarray:
    """
    Draw box outlines and "<name> <pct>%" labels onto `image_bgr` in place and return it.

    Labels sit on a filled background directly above the box. Boxes touching
    the top edge get their label drawn off-canvas; OpenCV clips it.
    """

    cv2 = _require_cv2()

    if image_bgr is None or not hasattr(image_bgr, "shape"):
        raise TypeError("image_bgr must be a NumPy array (BGR).")
    if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
        raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

    h, w = image_bgr.shape[:2]
    font = cv2.FONT_HERSHEY_SIMPLEX
    pad = style.label_padding

    for det in detections:
        x, y, bw, bh = det.box.to_pixels(w, h)
        cv2.rectangle(image_bgr, (x, y), (x + bw, y + bh), style.box_color, thickness=style.box_thickness)

        label = det.label()
        (tw, th), baseline = cv2.getTextSize(label, font, style.font_scale, style.font_thickness)
        label_w = tw + 2 * pad
        label_h = th + baseline + pad

        cv2.rectangle(image_bgr, (x, y - label_h), (x + label_w, y), style.box_color, thickness=-1)
        cv2.putText(
            image_bgr,
            label,
            (x + pad, y - baseline - pad // 2),
            font,
            style.font_scale,
            style.text_color,
            thickness=style.font_thickness,
            lineType=cv2.LINE_AA,
        )

    return image_bgr


def annotate_image(
    image_bytes: bytes,
    detections: Sequence[Detection],
    style: AnnotationStyle = AnnotationStyle(),
) -> AnnotationResult:
    """
    Decode `image_bytes`, burn in `detections`, and re-encode in the input's format.

    Raises ImageDecodeError before drawing anything if the bytes are unreadable.
    """

    image = decode_image(image_bytes)
    draw_detections(image, detections, style)
    encoded = encode_image(image, sniff_image_format(image_bytes))

    count = len(detections)
    return AnnotationResult(
        image_bytes=encoded,
        detection_count=count,
        glyphs=style.glyph * count,
        detections=tuple(detections),
    )


def summarize(detections: Sequence[Detection]) -> List[str]:
    """One "  - name: 12.34%" line per detection, for logs."""
    return [f"  - {d.class_name}: {d.score * 100:.2f}%" for d in detections]
