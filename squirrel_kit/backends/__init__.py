"""
Inference backends for squirrel_kit.

Each backend turns a preprocessed NCHW float32 blob into the raw model output
array. Runtimes are imported lazily so decode/NMS/annotation work without them.
"""

from __future__ import annotations

__all__ = []
