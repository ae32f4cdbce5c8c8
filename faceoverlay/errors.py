"""
Pipeline Errors

Exception hierarchy raised by the face overlay pipeline stages.
"""

from typing import Optional, Tuple


class PipelineError(Exception):
    """Base class for all face overlay pipeline failures."""


class NoFaceDetected(PipelineError):
    """The landmark provider returned no faces for an image that needs one."""

    def __init__(self, image_role: str = "source", message: Optional[str] = None):
        self.image_role = image_role
        super().__init__(message or f"No face detected in {image_role} image")


class DegenerateFace(PipelineError):
    """Eye landmarks coincide or the bounding box has zero area."""


class ImageTooLarge(PipelineError):
    """An input or intermediate raster exceeds the configured dimension cap."""

    def __init__(self, shape: Tuple[int, ...], max_dimension: int, what: str = "image"):
        self.shape = tuple(shape)
        self.max_dimension = max_dimension
        height, width = self.shape[:2]
        super().__init__(
            f"{what} is {width}x{height}, exceeds limit of "
            f"{max_dimension}x{max_dimension}"
        )


class AllocationFailure(PipelineError):
    """Raster buffer allocation failed."""


class InvalidImage(PipelineError, ValueError):
    """Input array is not a usable RGBA/RGB uint8 raster."""
