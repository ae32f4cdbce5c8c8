"""
Face Alignment Module

Computes the similarity transform that maps a source face onto a target
face (scale from inter-eye distance, rotation from eye-line angle) and
renders the warped source crop on a padded canvas sized to the target face.
"""

import cv2
import math
import numpy as np
import logging
from typing import Tuple
from dataclasses import dataclass

from ..errors import DegenerateFace, ImageTooLarge, AllocationFailure
from ..face_detection import FaceDetection, BoundingBox, Point2D
from ..utils.image_io import validate_image
from .orientation import FaceOrientation, normalize_angle, MIN_INTER_EYE_DISTANCE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AlignmentTransform:
    """
    Similarity transform from source image space to target image space.

    A source point p maps to ``scale * R(rotation) @ p + translation``,
    which sends the source eye midpoint onto the target eye midpoint.
    """
    scale: float
    rotation_radians: float
    translation: Point2D

    def linear_part(self) -> np.ndarray:
        cos_r = math.cos(self.rotation_radians)
        sin_r = math.sin(self.rotation_radians)
        return self.scale * np.array([[cos_r, -sin_r],
                                      [sin_r, cos_r]], dtype=np.float64)

    def matrix(self) -> np.ndarray:
        """2x3 affine matrix in OpenCV layout."""
        M = np.zeros((2, 3), dtype=np.float64)
        M[:, :2] = self.linear_part()
        M[:, 2] = self.translation.as_array()
        return M

    def apply(self, points: np.ndarray) -> np.ndarray:
        """Transform an (n, 2) array of points."""
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        return points @ self.linear_part().T + self.translation.as_array()


@dataclass
class AlignedFace:
    """Source face warped into target face space."""
    image: np.ndarray            # RGBA canvas
    transform: AlignmentTransform
    crop_box: Tuple[int, int, int, int]   # (x1, y1, x2, y2) in the source image
    canvas_matrix: np.ndarray    # 2x3 map from crop coordinates to canvas

    @property
    def canvas_size(self) -> Tuple[int, int]:
        return self.image.shape[1], self.image.shape[0]


def compute_alignment_transform(source: FaceOrientation,
                                target: FaceOrientation) -> AlignmentTransform:
    """
    Compose the source-to-target transform.

    Args:
        source: Orientation of the face being moved
        target: Orientation of the face being covered

    Returns:
        AlignmentTransform with scale = target/source eye distance and
        rotation = target angle - source angle

    Raises:
        DegenerateFace: If the source inter-eye distance is ~0
    """
    if source.inter_eye_distance <= MIN_INTER_EYE_DISTANCE:
        raise DegenerateFace("Source inter-eye distance is zero; cannot compute scale")

    scale = target.inter_eye_distance / source.inter_eye_distance
    rotation = normalize_angle(target.rotation_radians - source.rotation_radians)

    partial = AlignmentTransform(scale=scale, rotation_radians=rotation,
                                 translation=Point2D(0.0, 0.0))
    moved_center = partial.apply(source.center.as_array())[0]
    translation = Point2D(target.center.x - moved_center[0],
                          target.center.y - moved_center[1])

    return AlignmentTransform(scale=scale, rotation_radians=rotation, translation=translation)


class GeometricAligner:
    """
    Renders the source face into target face space.

    The output canvas is the target bounding box enlarged by
    ``canvas_padding`` so the masker has context around the face. Rotation
    and scale are applied about the source eye midpoint, which lands on the
    canvas center.
    """

    def __init__(self, canvas_padding: float = 1.5,
                 crop_padding: float = 0.2,
                 max_dimension: int = 4096):
        """
        Initialize geometric aligner.

        Args:
            canvas_padding: Canvas size as a multiple of the target box
            crop_padding: Padding ratio per side around the source face box
            max_dimension: Largest allowed canvas side in pixels
        """
        self.canvas_padding = canvas_padding
        self.crop_padding = crop_padding
        self.max_dimension = max_dimension

    def canvas_size_for(self, target_box: BoundingBox) -> Tuple[int, int]:
        """
        Canvas (width, height) for a target box.

        Raises:
            DegenerateFace: If the target box has zero area
            ImageTooLarge: If the canvas exceeds max_dimension
        """
        width = int(round(target_box.width * self.canvas_padding))
        height = int(round(target_box.height * self.canvas_padding))

        if width < 1 or height < 1:
            raise DegenerateFace(f"Target bounding box too small: {target_box.as_tuple()}")

        if width > self.max_dimension or height > self.max_dimension:
            raise ImageTooLarge((height, width), self.max_dimension, what="aligned face canvas")

        return width, height

    def align(self, source_image: np.ndarray, source_face: FaceDetection,
              source_orientation: FaceOrientation, target_box: BoundingBox,
              target_orientation: FaceOrientation) -> AlignedFace:
        """
        Warp the source face crop into target face space.

        Args:
            source_image: RGBA image containing the source face
            source_face: Source detection
            source_orientation: Orientation of the source face
            target_box: Bounding box of the face being covered
            target_orientation: Orientation of the face being covered

        Returns:
            AlignedFace holding a new RGBA canvas
        """
        validate_image(source_image, "source image")

        transform = compute_alignment_transform(source_orientation, target_orientation)
        canvas_w, canvas_h = self.canvas_size_for(target_box)

        image_h, image_w = source_image.shape[:2]
        x1, y1, x2, y2 = source_face.bounding_box.expanded(self.crop_padding).clip_to(image_w, image_h)
        if x2 <= x1 or y2 <= y1:
            raise DegenerateFace("Source face bounding box lies outside the source image")

        crop = source_image[y1:y2, x1:x2]

        # Face center relative to the crop origin
        offset = np.array([source_orientation.center.x - x1,
                           source_orientation.center.y - y1], dtype=np.float64)
        canvas_center = np.array([(canvas_w - 1) / 2.0, (canvas_h - 1) / 2.0], dtype=np.float64)

        # translate(center) . rotate . scale . translate(-offset)
        linear = transform.linear_part()
        canvas_matrix = np.zeros((2, 3), dtype=np.float64)
        canvas_matrix[:, :2] = linear
        canvas_matrix[:, 2] = canvas_center - linear @ offset

        try:
            warped = cv2.warpAffine(
                crop, canvas_matrix, (canvas_w, canvas_h),
                flags=cv2.INTER_LINEAR,
                borderMode=cv2.BORDER_CONSTANT,
                borderValue=(0, 0, 0, 0)
            )
        except MemoryError as e:
            raise AllocationFailure(f"Could not allocate {canvas_w}x{canvas_h} aligned canvas") from e

        logger.debug(
            f"Aligned face: scale={transform.scale:.4f}, "
            f"rotation={math.degrees(transform.rotation_radians):.2f}deg, "
            f"crop=({x1}, {y1}, {x2}, {y2}), canvas={canvas_w}x{canvas_h}"
        )

        return AlignedFace(
            image=warped,
            transform=transform,
            crop_box=(x1, y1, x2, y2),
            canvas_matrix=canvas_matrix
        )
