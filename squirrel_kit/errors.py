from __future__ import annotations


class SquirrelKitError(Exception):
    """Base class for errors raised by squirrel_kit."""


class ConfigurationError(SquirrelKitError, ValueError):
    """Invalid thresholds, input size or class-name table. Fatal at startup."""


class ShapeMismatchError(SquirrelKitError, ValueError):
    """Model output does not agree with the configured `4 + num_classes` row length."""


class ImageDecodeError(SquirrelKitError, ValueError):
    """Image bytes could not be decoded into a raster."""


class ImageEncodeError(SquirrelKitError, RuntimeError):
    """Annotated raster could not be encoded back to bytes."""
