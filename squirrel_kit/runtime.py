from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import numpy as np

from .postprocess import PostprocessConfig, Postprocessor
from .types import Detection


PathLike = Union[str, Path]
InferFn = Callable[[np.ndarray], np.ndarray]


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", ".git"),
) -> Path:
    """
    Walk up from `start` (default: cwd) to the first directory holding a marker.
    Falls back to `start` itself.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()
    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Absolute paths are returned as-is; relative ones resolve against `root`,
    or the project root when `root` is "auto"/None.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


class DetectionPipeline:
    """
    preprocess (stretch resize) -> inference -> postprocess.

    Takes BGR images (OpenCV-style) and returns detections with boxes normalized
    to the source image, so they map back by scaling with the image's own size.
    """

    def __init__(
        self,
        infer_fn: InferFn,
        postprocessor: Postprocessor,
        *,
        backend: Optional[object] = None,
        backend_name: Optional[str] = None,
    ):
        self._infer_fn = infer_fn
        self.post = postprocessor
        self.backend = backend
        self.backend_name = backend_name

    @property
    def input_size(self) -> int:
        return self.post.cfg.input_size

    @property
    def class_names(self):
        return self.post.class_names

    def preprocess(self, image_bgr: np.ndarray) -> np.ndarray:
        try:
            import cv2  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError("OpenCV is required for preprocessing. Install with `pip install opencv-python`.") from e

        if image_bgr is None or not hasattr(image_bgr, "shape"):
            raise TypeError("image_bgr must be a NumPy array (BGR).")
        if image_bgr.ndim != 3 or image_bgr.shape[2] != 3:
            raise ValueError(f"Expected image shape (H, W, 3), got {getattr(image_bgr, 'shape', None)}")

        size = self.input_size
        img = cv2.resize(image_bgr, (size, size), interpolation=cv2.INTER_LINEAR)

        # BGR -> RGB, normalize, HWC -> CHW, add batch
        blob = img[:, :, ::-1].astype(np.float32) / 255.0
        blob = np.ascontiguousarray(np.transpose(blob, (2, 0, 1))[None, ...])
        return blob

    def detect(self, image_bgr: np.ndarray) -> List[Detection]:
        blob = self.preprocess(image_bgr)
        preds = self._infer_fn(blob)
        return self.post.process(preds)

    __call__ = detect


def load_pipeline(
    model_path: PathLike,
    *,
    class_names: Sequence[str],
    post_cfg: PostprocessConfig = PostprocessConfig(),
    backend: Optional[str] = None,
    root: Optional[PathLike] = "auto",
    onnx_providers: Optional[Sequence[str]] = None,
    torch_device: str = "cpu",
) -> DetectionPipeline:
    """
    Build a pipeline for a model on disk.

    Args:
        model_path: weights file; relative paths resolve against the project root by default
        class_names: class-name table, index = class id
        backend: "onnxruntime" or "torchscript"; None infers it from the file extension
    """

    postprocessor = Postprocessor(post_cfg, class_names)
    resolved = resolve_path(model_path, root=root)

    chosen = backend
    if chosen is None:
        suffix = resolved.suffix.lower()
        if suffix == ".onnx":
            chosen = "onnxruntime"
        elif suffix in {".torchscript", ".ts", ".pt"}:
            chosen = "torchscript"
        else:
            raise ValueError(
                f"Could not infer backend from extension '{suffix}'. Pass backend=... explicitly."
            )

    chosen = chosen.lower()
    if chosen == "onnxruntime":
        from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

        ort_backend = OnnxRuntimeBackend(resolved, OnnxRuntimeBackendConfig(providers=onnx_providers))
        return DetectionPipeline(ort_backend.infer, postprocessor, backend=ort_backend, backend_name="onnxruntime")

    if chosen == "torchscript":
        from .backends.torchscript_backend import TorchScriptBackend, TorchScriptBackendConfig

        ts_backend = TorchScriptBackend(resolved, TorchScriptBackendConfig(device=torch_device))
        return DetectionPipeline(ts_backend.infer, postprocessor, backend=ts_backend, backend_name="torchscript")

    raise ValueError(f"Unsupported backend: {backend!r}")
