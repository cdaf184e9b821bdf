"""
Error types raised by the visual engine.

Both kinds abort the whole composition; the caller decides how to
present them and whether to retry.
"""
from typing import Optional

from domain.models import AssetRef


class VisualError(Exception):
    """Base class for engine failures."""


class AssetLoadError(VisualError):
    """A static or user asset could not be fetched or decoded."""

    def __init__(self, ref: AssetRef, cause: Optional[BaseException] = None):
        self.ref = ref
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Could not load image {ref.label!r}{detail}")


class RenderError(VisualError):
    """The drawing surface could not be allocated or encoded."""

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)
