"""
Compositing

Alpha-composites processed face crops onto a copy of the destination image.
"""

import cv2
import threading
import numpy as np
import logging
from typing import Iterable, Optional, Tuple

from ..errors import AllocationFailure
from ..face_detection import BoundingBox
from ..utils.image_io import validate_image

logger = logging.getLogger(__name__)


def blend_over(background: np.ndarray, overlay: np.ndarray) -> np.ndarray:
    """
    Porter-Duff "over" of two equally sized RGBA buffers.

    Returns:
        New uint8 RGBA buffer
    """
    src = overlay.astype(np.float64)
    dst = background.astype(np.float64)

    alpha = src[:, :, 3:4] / 255.0
    dst_alpha = dst[:, :, 3:4] / 255.0

    out = np.empty_like(src)
    out[:, :, :3] = src[:, :, :3] * alpha + dst[:, :, :3] * (1.0 - alpha)
    out[:, :, 3:4] = (alpha + dst_alpha * (1.0 - alpha)) * 255.0

    return np.clip(np.rint(out), 0, 255).astype(np.uint8)


class Compositor:
    """
    Pastes processed crops onto an output canvas.

    Each paste is serialized by an internal lock, so worker threads may
    share one compositor and one canvas.
    """

    def __init__(self, placement_padding: float = 0.0):
        """
        Args:
            placement_padding: Ratio each destination box is grown by per side
        """
        self.placement_padding = placement_padding
        self._lock = threading.Lock()

    def create_canvas(self, destination: np.ndarray) -> np.ndarray:
        """Copy of the destination image used as the base layer."""
        validate_image(destination, "destination image")
        try:
            return destination.copy()
        except MemoryError as e:
            raise AllocationFailure("Could not allocate output canvas") from e

    def placement_rect(self, box: BoundingBox) -> Tuple[int, int, int, int]:
        """Integer (x, y, width, height) where a crop for this box is drawn."""
        placed = box.expanded(self.placement_padding) if self.placement_padding > 0 else box
        x = int(round(placed.x))
        y = int(round(placed.y))
        width = max(1, int(round(placed.width)))
        height = max(1, int(round(placed.height)))
        return x, y, width, height

    def paste(self, canvas: np.ndarray, box: BoundingBox, crop: np.ndarray) -> bool:
        """
        Draw one crop into the canvas at a destination box.

        Args:
            canvas: Output canvas, modified in place
            box: Destination face bounding box
            crop: Processed RGBA crop

        Returns:
            True if any pixel of the crop landed on the canvas
        """
        validate_image(crop, "face crop")

        x, y, width, height = self.placement_rect(box)
        canvas_h, canvas_w = canvas.shape[:2]

        x1, y1 = max(x, 0), max(y, 0)
        x2, y2 = min(x + width, canvas_w), min(y + height, canvas_h)
        if x2 <= x1 or y2 <= y1:
            logger.warning(f"Destination box {box.as_tuple()} lies outside the canvas, skipping")
            return False

        resized = cv2.resize(crop, (width, height), interpolation=cv2.INTER_LINEAR)
        visible = resized[y1 - y:y2 - y, x1 - x:x2 - x]

        with self._lock:
            region = canvas[y1:y2, x1:x2]
            canvas[y1:y2, x1:x2] = blend_over(region, visible)

        logger.debug(f"Composited crop into ({x1}, {y1}, {x2}, {y2})")
        return True

    def composite(self, destination: np.ndarray,
                  placements: Iterable[Tuple[BoundingBox, Optional[np.ndarray]]]) -> np.ndarray:
        """
        Composite crops in the given order onto a copy of the destination.

        Placements whose crop is None are skipped.

        Returns:
            New RGBA buffer
        """
        canvas = self.create_canvas(destination)
        for box, crop in placements:
            if crop is None:
                continue
            self.paste(canvas, box, crop)
        return canvas
