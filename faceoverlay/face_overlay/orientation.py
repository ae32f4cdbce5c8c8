"""
Face Orientation

Derives face center, inter-eye distance and in-plane rotation from the
eye landmarks of a detection.
"""

import math
import numpy as np
import logging
from dataclasses import dataclass

from ..errors import DegenerateFace
from ..face_detection import FaceDetection, Point2D

logger = logging.getLogger(__name__)

# Eye centers closer than this are treated as coincident
MIN_INTER_EYE_DISTANCE = 1e-6


@dataclass(frozen=True)
class FaceOrientation:
    """Orientation of one face, computed once per detection."""
    center: Point2D
    inter_eye_distance: float
    rotation_radians: float
    left_eye: Point2D
    right_eye: Point2D

    @property
    def rotation_degrees(self) -> float:
        return math.degrees(self.rotation_radians)


def normalize_angle(angle: float) -> float:
    """Wrap an angle into (-pi, pi]."""
    wrapped = angle % (2 * math.pi)
    if wrapped > math.pi:
        wrapped -= 2 * math.pi
    return wrapped


def eye_center(eye_points: np.ndarray) -> Point2D:
    """
    Arithmetic mean of an eye's landmark subset.

    Raises:
        DegenerateFace: If the subset is empty
    """
    points = np.asarray(eye_points, dtype=np.float64).reshape(-1, 2)
    if points.shape[0] == 0:
        raise DegenerateFace("Eye landmark subset is empty")
    return Point2D.from_array(points.mean(axis=0))


def calculate_face_orientation(face: FaceDetection) -> FaceOrientation:
    """
    Compute the orientation of a detected face.

    Args:
        face: Detection with left/right eye landmark regions

    Returns:
        FaceOrientation

    Raises:
        DegenerateFace: If the box has zero area or the eyes coincide
    """
    if face.bounding_box.area <= 0:
        raise DegenerateFace(f"Face bounding box has zero area: {face.bounding_box.as_tuple()}")

    landmarks = face.landmarks
    if not (landmarks.has_region('left_eye') and landmarks.has_region('right_eye')):
        raise DegenerateFace(f"Landmarks ({landmarks.num_points} points) lack eye regions")

    left = eye_center(landmarks.left_eye)
    right = eye_center(landmarks.right_eye)

    dx = right.x - left.x
    dy = right.y - left.y
    distance = math.hypot(dx, dy)

    if not math.isfinite(distance) or distance <= MIN_INTER_EYE_DISTANCE:
        raise DegenerateFace(
            f"Eye centers coincide at ({left.x:.2f}, {left.y:.2f}); cannot derive orientation"
        )

    orientation = FaceOrientation(
        center=Point2D((left.x + right.x) / 2.0, (left.y + right.y) / 2.0),
        inter_eye_distance=distance,
        rotation_radians=normalize_angle(math.atan2(dy, dx)),
        left_eye=left,
        right_eye=right
    )

    logger.debug(
        f"Orientation: center=({orientation.center.x:.1f}, {orientation.center.y:.1f}), "
        f"eye_distance={distance:.2f}, rotation={orientation.rotation_degrees:.2f}deg"
    )
    return orientation
