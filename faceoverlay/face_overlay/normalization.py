"""
Photometric Normalization

Matches the color statistics of an aligned face crop to the destination
face region so the pasted face picks up the destination lighting.

Three passes run on visible pixels of the crop:
1. Per-channel mean/variance transfer
2. Damped brightness shift and contrast rescale
3. Skin-tone preservation, pulling skin pixels back toward their input color
"""

import numpy as np
import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ..face_detection import BoundingBox
from ..utils.image_io import validate_image

logger = logging.getLogger(__name__)

# (min_r, min_g, min_b, min_abs_r_minus_g); every band also requires r > g and r > b
SKIN_TONE_BANDS = (
    (95, 40, 20, 15),    # light
    (80, 50, 30, 10),    # medium
    (60, 40, 25, 8),     # darker
    (70, 45, 25, None),  # broad
    (120, 80, 60, 20),   # very light
)


@dataclass
class ColorStatistics:
    """Per-channel RGB statistics of the visible pixels of an image region."""
    mean: np.ndarray = field(default_factory=lambda: np.zeros(3))
    variance: np.ndarray = field(default_factory=lambda: np.zeros(3))
    std_dev: np.ndarray = field(default_factory=lambda: np.zeros(3))
    sample_count: int = 0

    @property
    def luminance(self) -> float:
        """Mean of the channel means."""
        return float(np.mean(self.mean))

    @property
    def contrast(self) -> float:
        """Mean of the channel standard deviations."""
        return float(np.mean(self.std_dev))

    @property
    def is_empty(self) -> bool:
        return self.sample_count == 0


def compute_color_statistics(image: np.ndarray, sample_step: int = 4,
                             alpha_threshold: int = 128,
                             region: Optional[Tuple[int, int, int, int]] = None) -> ColorStatistics:
    """
    Compute color statistics over every ``sample_step``-th pixel.

    Pixels are visited in raster order and only those with alpha above
    ``alpha_threshold`` count.

    Args:
        image: RGBA buffer
        sample_step: Pixel stride
        alpha_threshold: Minimum alpha (exclusive) for a pixel to count
        region: Optional (x1, y1, x2, y2) sub-rectangle

    Returns:
        ColorStatistics (sample_count 0 if nothing qualified)
    """
    if region is not None:
        x1, y1, x2, y2 = region
        image = image[y1:y2, x1:x2]

    pixels = image.reshape(-1, 4)[::sample_step]
    visible = pixels[pixels[:, 3] > alpha_threshold][:, :3].astype(np.float64)

    if len(visible) == 0:
        return ColorStatistics()

    mean = visible.mean(axis=0)
    variance = visible.var(axis=0)

    return ColorStatistics(
        mean=mean,
        variance=variance,
        std_dev=np.sqrt(variance),
        sample_count=len(visible)
    )


def compute_region_statistics(image: np.ndarray, bbox: BoundingBox,
                              sample_step: int = 4,
                              alpha_threshold: int = 128) -> ColorStatistics:
    """Color statistics of a face bounding box, clipped to the image."""
    height, width = image.shape[:2]
    return compute_color_statistics(
        image, sample_step, alpha_threshold, region=bbox.clip_to(width, height)
    )


def is_skin_tone(r: int, g: int, b: int) -> bool:
    """RGB-ratio skin test for a single color."""
    rgb = np.array([[[r, g, b]]], dtype=np.float64)
    return bool(skin_mask(rgb)[0, 0])


def skin_mask(rgb: np.ndarray) -> np.ndarray:
    """
    Boolean mask of pixels passing any skin tone band.

    Args:
        rgb: Array of shape (..., 3)
    """
    rgb = np.asarray(rgb, dtype=np.float64)
    r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
    red_dominant = (r > g) & (r > b)
    red_green_gap = np.abs(r - g)

    mask = np.zeros(r.shape, dtype=bool)
    for min_r, min_g, min_b, min_gap in SKIN_TONE_BANDS:
        band = red_dominant & (r > min_r) & (g > min_g) & (b > min_b)
        if min_gap is not None:
            band &= red_green_gap > min_gap
        mask |= band

    return mask


class PhotometricNormalizer:
    """Color and lighting transfer from destination face statistics."""

    def __init__(self, brightness_damping: float = 0.3,
                 skin_preservation: float = 0.7,
                 sample_step: int = 4,
                 alpha_threshold: int = 128):
        """
        Initialize photometric normalizer.

        Args:
            brightness_damping: Fraction of the luminance difference applied
            skin_preservation: Blend weight toward the input color on skin pixels
            sample_step: Pixel stride for crop statistics
            alpha_threshold: Minimum alpha for a crop pixel to count in statistics
        """
        self.brightness_damping = brightness_damping
        self.skin_preservation = skin_preservation
        self.sample_step = sample_step
        self.alpha_threshold = alpha_threshold

    def normalize(self, crop: np.ndarray, destination_stats: ColorStatistics) -> np.ndarray:
        """
        Normalize a crop toward destination statistics.

        Args:
            crop: RGBA aligned (and usually masked) face crop
            destination_stats: Statistics of the destination face region

        Returns:
            New RGBA buffer; an unchanged copy if either side has no samples
        """
        validate_image(crop, "face crop")

        source_stats = compute_color_statistics(crop, self.sample_step, self.alpha_threshold)
        if source_stats.is_empty or destination_stats.is_empty:
            logger.warning(
                f"Skipping color normalization (samples: crop={source_stats.sample_count}, "
                f"destination={destination_stats.sample_count})"
            )
            return crop.copy()

        visible = crop[:, :, 3] > 0
        original = crop[:, :, :3].astype(np.float64)

        rgb = self._transfer_color(original, source_stats, destination_stats)
        rgb = self._adjust_lighting(rgb, source_stats, destination_stats)
        rgb = self._preserve_skin(rgb, original)

        result = crop.copy()
        normalized = np.clip(np.rint(rgb), 0, 255).astype(np.uint8)
        result[:, :, :3][visible] = normalized[visible]

        logger.debug(f"Normalized {int(np.count_nonzero(visible))} visible pixels")
        return result

    def _transfer_color(self, rgb: np.ndarray, source: ColorStatistics,
                        destination: ColorStatistics) -> np.ndarray:
        scale = destination.std_dev / np.maximum(source.std_dev, 1.0)
        offset = destination.mean - source.mean * scale

        logger.debug(
            f"Color normalization factors: scale={np.round(scale, 3).tolist()}, "
            f"offset={np.round(offset, 1).tolist()}"
        )

        return np.clip(rgb * scale + offset, 0.0, 255.0)

    def _adjust_lighting(self, rgb: np.ndarray, source: ColorStatistics,
                         destination: ColorStatistics) -> np.ndarray:
        brightness_shift = self.brightness_damping * (destination.luminance - source.luminance)
        contrast_ratio = destination.contrast / max(source.contrast, 1.0)

        logger.debug(
            f"Lighting factors: crop_luminance={source.luminance:.1f}, "
            f"destination_luminance={destination.luminance:.1f}, "
            f"brightness_shift={brightness_shift:.1f}, contrast_ratio={contrast_ratio:.3f}"
        )

        shifted = rgb + brightness_shift
        average = shifted.mean(axis=2, keepdims=True)
        return np.clip(average + (shifted - average) * contrast_ratio, 0.0, 255.0)

    def _preserve_skin(self, rgb: np.ndarray, original: np.ndarray) -> np.ndarray:
        if self.skin_preservation <= 0:
            return rgb

        skin = skin_mask(original)
        if not skin.any():
            return rgb

        blended = rgb * (1.0 - self.skin_preservation) + original * self.skin_preservation
        return np.where(skin[:, :, None], blended, rgb)
