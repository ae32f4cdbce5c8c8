"""
Image Buffer Utilities

Decoding, encoding and validation of RGBA image buffers. Buffers are
numpy uint8 arrays of shape (height, width, 4) in RGBA channel order.
"""

import cv2
import numpy as np
import logging
from pathlib import Path
from typing import Union

from ..errors import InvalidImage, ImageTooLarge

logger = logging.getLogger(__name__)

UNSUPPORTED_SUFFIXES = {'.heic', '.heif'}
WRITABLE_SUFFIXES = {'.png', '.jpg', '.jpeg'}


def validate_image(image: np.ndarray, name: str = "image") -> None:
    """
    Validate that an array is an RGBA uint8 raster.

    Args:
        image: Array to check
        name: Name used in error messages

    Raises:
        InvalidImage: If the array is not a usable RGBA buffer
    """
    if not isinstance(image, np.ndarray):
        raise InvalidImage(f"{name} must be a numpy array, got {type(image).__name__}")

    if image.ndim != 3 or image.shape[2] != 4:
        raise InvalidImage(f"{name} must have shape (height, width, 4), got {image.shape}")

    if image.dtype != np.uint8:
        raise InvalidImage(f"{name} must be uint8, got {image.dtype}")

    if image.shape[0] == 0 or image.shape[1] == 0:
        raise InvalidImage(f"{name} is empty")


def check_dimensions(image: np.ndarray, max_dimension: int, name: str = "image") -> None:
    """
    Reject rasters larger than max_dimension on either axis.

    Only the shape is inspected, so this is safe to call before any copy.

    Raises:
        ImageTooLarge: If width or height exceeds the cap
    """
    height, width = image.shape[:2]
    if height > max_dimension or width > max_dimension:
        raise ImageTooLarge(image.shape, max_dimension, what=name)


def to_rgba(image: np.ndarray, bgr: bool = False) -> np.ndarray:
    """
    Convert a grayscale, RGB or RGBA uint8 array to a new RGBA buffer.

    Args:
        image: Input array
        bgr: Whether 3/4-channel input is in OpenCV BGR(A) order

    Returns:
        RGBA buffer (always a new array)
    """
    if not isinstance(image, np.ndarray) or image.size == 0:
        raise InvalidImage("Image must be a non-empty numpy array")

    if image.dtype == np.uint16:
        image = (image >> 8).astype(np.uint8)
    elif image.dtype != np.uint8:
        if np.issubdtype(image.dtype, np.floating) and image.max() <= 1.0:
            image = image * 255.0
        image = np.clip(image, 0, 255).astype(np.uint8)

    if image.ndim == 2:
        return cv2.cvtColor(image, cv2.COLOR_GRAY2RGBA)

    channels = image.shape[2]
    if channels == 1:
        return cv2.cvtColor(image[:, :, 0], cv2.COLOR_GRAY2RGBA)
    if channels == 3:
        code = cv2.COLOR_BGR2RGBA if bgr else cv2.COLOR_RGB2RGBA
        return cv2.cvtColor(image, code)
    if channels == 4:
        return cv2.cvtColor(image, cv2.COLOR_BGRA2RGBA) if bgr else image.copy()

    raise InvalidImage(f"Unsupported channel count: {channels}")


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode PNG/JPEG bytes into an RGBA buffer.

    Raises:
        InvalidImage: If the bytes cannot be decoded
    """
    buffer = np.frombuffer(data, dtype=np.uint8)
    decoded = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if decoded is None:
        raise InvalidImage("Failed to decode image data")
    return to_rgba(decoded, bgr=True)


def encode_png(image: np.ndarray) -> bytes:
    """Encode an RGBA buffer as lossless PNG bytes."""
    validate_image(image)
    success, encoded = cv2.imencode('.png', cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA))
    if not success:
        raise InvalidImage("PNG encoding failed")
    return encoded.tobytes()


def load_image(path: Union[str, Path]) -> np.ndarray:
    """
    Load an image file as an RGBA buffer.

    Args:
        path: Image file path

    Returns:
        RGBA buffer

    Raises:
        FileNotFoundError: If the file doesn't exist
        InvalidImage: If the format is unsupported or decoding fails
    """
    image_path = Path(path)

    if not image_path.exists():
        raise FileNotFoundError(f"Image file not found: {path}")

    if image_path.suffix.lower() in UNSUPPORTED_SUFFIXES:
        raise InvalidImage("HEIC/HEIF images are not supported. Please use a JPG or PNG.")

    image = decode_image(image_path.read_bytes())
    logger.debug(f"Loaded {path}: {image.shape[1]}x{image.shape[0]}")
    return image


def save_image(image: np.ndarray, path: Union[str, Path]) -> None:
    """
    Save an RGBA buffer. PNG keeps the alpha channel; JPEG drops it.

    Args:
        image: RGBA buffer
        path: Output path (.png, .jpg or .jpeg)
    """
    validate_image(image)
    output_path = Path(path)
    suffix = output_path.suffix.lower()

    if suffix not in WRITABLE_SUFFIXES:
        raise ValueError(f"Unsupported output format: {suffix}")

    if suffix == '.png':
        bgr = cv2.cvtColor(image, cv2.COLOR_RGBA2BGRA)
    else:
        logger.warning("Saving as JPEG discards alpha and recompresses the overlay region")
        bgr = cv2.cvtColor(image, cv2.COLOR_RGBA2BGR)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(output_path), bgr):
        raise IOError(f"Failed to write image: {output_path}")

    logger.info(f"Saved image to: {output_path}")


def downscale_if_needed(image: np.ndarray, max_dimension: int = 2000) -> np.ndarray:
    """
    Shrink an image so its larger side fits max_dimension.

    Caller-side helper for uploads; the pipeline itself rejects oversized
    input instead of resizing it.

    Args:
        image: RGBA buffer
        max_dimension: Largest allowed side in pixels

    Returns:
        The original array if it already fits, otherwise a resized copy
    """
    height, width = image.shape[:2]
    if width <= max_dimension and height <= max_dimension:
        return image

    scale = max_dimension / float(max(width, height))
    new_size = (max(1, int(round(width * scale))), max(1, int(round(height * scale))))
    logger.info(f"Downscaling {width}x{height} to {new_size[0]}x{new_size[1]}")
    return cv2.resize(image, new_size, interpolation=cv2.INTER_AREA)

