"""
Region Masking

Removes the background around an aligned face crop and fades the crop
edges out so it can be pasted without a visible rectangle.

Two alpha factors are multiplied into the crop's existing alpha:
- Edge-color background removal: pixels close in RGB to the average border
  color are made transparent, with a linear ramp between two thresholds.
- Radial falloff: alpha fades to zero towards the ellipse inscribed in
  the canvas.
"""

import numpy as np
import logging
from typing import Optional

from ..utils.image_io import validate_image

logger = logging.getLogger(__name__)


def sample_background_color(crop: np.ndarray, step: int = 5) -> Optional[np.ndarray]:
    """
    Average RGB of border pixels sampled every ``step`` pixels.

    Only samples with non-zero alpha count.

    Args:
        crop: RGBA buffer
        step: Sampling stride along each edge

    Returns:
        Float RGB array of shape (3,), or None if every sample is transparent
    """
    height, width = crop.shape[:2]
    xs = np.arange(0, width, step)
    ys = np.arange(0, height, step)

    samples = np.concatenate([
        crop[0, xs],
        crop[height - 1, xs],
        crop[ys, 0],
        crop[ys, width - 1]
    ])

    visible = samples[samples[:, 3] > 0]
    if len(visible) == 0:
        return None

    return visible[:, :3].astype(np.float64).mean(axis=0)


def background_alpha_factor(crop: np.ndarray, background_color: np.ndarray,
                            strong_threshold: float, weak_threshold: float) -> np.ndarray:
    """Per-pixel factor in [0, 1] from RGB distance to the background color."""
    diff = crop[:, :, :3].astype(np.float64) - background_color
    distance = np.sqrt(np.sum(diff * diff, axis=2))
    ramp = (distance - strong_threshold) / (weak_threshold - strong_threshold)
    return np.clip(ramp, 0.0, 1.0)


def radial_falloff(height: int, width: int, falloff_start: float = 0.8) -> np.ndarray:
    """
    Elliptical falloff factor for a canvas of the given size.

    The normalized distance is 0 at the canvas center and 1 on the
    inscribed ellipse. Beyond ``falloff_start`` the factor decreases
    linearly and reaches 0 at the ellipse.
    """
    half_w = width / 2.0
    half_h = height / 2.0

    # Pixel centers
    nx = (np.arange(width, dtype=np.float64) + 0.5 - half_w) / half_w
    ny = (np.arange(height, dtype=np.float64) + 0.5 - half_h) / half_h
    distance = np.sqrt(ny[:, None] ** 2 + nx[None, :] ** 2)

    width_of_band = 1.0 - falloff_start
    if width_of_band <= 0:
        return (distance <= 1.0).astype(np.float64)

    return np.clip(1.0 - (distance - falloff_start) / width_of_band, 0.0, 1.0)


class RegionMasker:
    """
    Builds the face alpha mask for an aligned crop.

    RGB values pass through unchanged; only alpha is rewritten.
    """

    def __init__(self, strong_threshold: float = 80.0,
                 weak_threshold: float = 160.0,
                 falloff_start: float = 0.8,
                 edge_sample_step: int = 5):
        """
        Initialize region masker.

        Args:
            strong_threshold: RGB distance below which a pixel is background
            weak_threshold: RGB distance above which a pixel is fully kept
            falloff_start: Normalized radius where the edge fade begins
            edge_sample_step: Stride for background color sampling
        """
        if weak_threshold <= strong_threshold:
            raise ValueError("weak_threshold must be greater than strong_threshold")
        if edge_sample_step < 1:
            raise ValueError("edge_sample_step must be at least 1")

        self.strong_threshold = strong_threshold
        self.weak_threshold = weak_threshold
        self.falloff_start = falloff_start
        self.edge_sample_step = edge_sample_step

    def apply(self, crop: np.ndarray) -> np.ndarray:
        """
        Apply background removal and radial falloff.

        Args:
            crop: RGBA aligned face canvas

        Returns:
            New RGBA buffer with the combined mask in the alpha channel
        """
        validate_image(crop, "face crop")
        height, width = crop.shape[:2]

        factor = radial_falloff(height, width, self.falloff_start)

        background = sample_background_color(crop, self.edge_sample_step)
        if background is not None:
            factor = factor * background_alpha_factor(
                crop, background, self.strong_threshold, self.weak_threshold
            )
            logger.debug(f"Background color estimate: {np.round(background, 1).tolist()}")
        else:
            logger.debug("Crop border fully transparent, skipping background removal")

        alpha = np.rint(crop[:, :, 3].astype(np.float64) * factor)

        result = crop.copy()
        result[:, :, 3] = np.clip(alpha, 0, 255).astype(np.uint8)

        coverage = np.count_nonzero(result[:, :, 3]) / float(height * width)
        logger.debug(f"Mask coverage: {coverage:.1%} of {width}x{height} canvas")

        return result
