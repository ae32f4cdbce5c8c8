"""
Facial Landmark Data Model

Value types shared by landmark providers and the overlay pipeline: points,
bounding boxes, landmark sets with named regions, and face detections.
Also provides a proportion-based 68-point landmark estimator for providers
that only return bounding boxes.
"""

import numpy as np
import logging
from typing import Dict, Tuple, Optional, Sequence
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


# Left/right follow image orientation: the left eye is the one with the
# smaller x coordinate on an upright face.
REGIONS_68 = {
    'jaw': tuple(range(0, 17)),
    'left_eyebrow': tuple(range(17, 22)),
    'right_eyebrow': tuple(range(22, 27)),
    'nose': tuple(range(27, 36)),
    'left_eye': tuple(range(36, 42)),
    'right_eye': tuple(range(42, 48)),
    'mouth': tuple(range(48, 68))
}

# 5-point layout used by RetinaFace/InsightFace style detectors
REGIONS_5 = {
    'left_eye': (0,),
    'right_eye': (1,),
    'nose': (2,),
    'mouth': (3, 4)
}

# MediaPipe FaceMesh topology (468 points, 478 with refined irises). The mesh
# names eyes from the subject's side, so its right eye is the image-left one.
REGIONS_468 = {
    'jaw': (10, 338, 297, 332, 284, 251, 389, 356, 454, 323, 361, 288, 397, 365,
            379, 378, 400, 377, 152, 148, 176, 149, 150, 136, 172, 58, 132, 93,
            234, 127, 162, 21, 54, 103, 67, 109),
    'left_eyebrow': (70, 63, 105, 66, 107, 55, 65, 52, 53, 46),
    'right_eyebrow': (300, 293, 334, 296, 336, 285, 295, 282, 283, 276),
    'nose': (168, 6, 197, 195, 5, 4, 1, 2, 98, 327),
    'left_eye': (33, 7, 163, 144, 145, 153, 154, 155, 133, 173, 157, 158, 159,
                 160, 161, 246),
    'right_eye': (263, 249, 390, 373, 374, 380, 381, 382, 362, 398, 384, 385,
                  386, 387, 388, 466),
    'mouth': (61, 146, 91, 181, 84, 17, 314, 405, 321, 375, 291, 409, 270, 269,
              267, 0, 37, 39, 40, 185)
}

# Default region map by landmark count
DEFAULT_REGIONS = {
    5: REGIONS_5,
    68: REGIONS_68,
    468: REGIONS_468,
    478: REGIONS_468
}


@dataclass(frozen=True)
class Point2D:
    """Floating-point image-space coordinate."""
    x: float
    y: float

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=np.float64)

    @classmethod
    def from_array(cls, values: Sequence[float]) -> 'Point2D':
        return cls(float(values[0]), float(values[1]))


@dataclass(frozen=True)
class BoundingBox:
    """Axis-aligned face rectangle (x, y, width, height)."""
    x: float
    y: float
    width: float
    height: float

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    @property
    def center(self) -> Point2D:
        return Point2D(self.x + self.width / 2.0, self.y + self.height / 2.0)

    def expanded(self, padding: float) -> 'BoundingBox':
        """
        Grow the box by ``padding`` times its size on every side.

        Args:
            padding: Padding ratio per side (0.2 = 20% of width/height)

        Returns:
            New, larger bounding box (not clipped to any image)
        """
        pad_w = self.width * padding
        pad_h = self.height * padding
        return BoundingBox(self.x - pad_w, self.y - pad_h,
                           self.width + 2 * pad_w, self.height + 2 * pad_h)

    def clip_to(self, image_width: int, image_height: int) -> Tuple[int, int, int, int]:
        """Integer pixel bounds (x1, y1, x2, y2) clipped to the image."""
        x1 = int(np.clip(np.floor(self.x), 0, image_width))
        y1 = int(np.clip(np.floor(self.y), 0, image_height))
        x2 = int(np.clip(np.ceil(self.x + self.width), 0, image_width))
        y2 = int(np.clip(np.ceil(self.y + self.height), 0, image_height))
        return x1, y1, x2, y2

    def as_tuple(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)


@dataclass(frozen=True, eq=False)
class FaceLandmarks:
    """Ordered landmark points with a named-region index map."""
    points: np.ndarray  # Shape: (n_points, 2)
    regions: Dict[str, Tuple[int, ...]] = field(default_factory=lambda: dict(REGIONS_68))

    def __post_init__(self):
        points = np.asarray(self.points, dtype=np.float64).reshape(-1, 2).copy()
        points.setflags(write=False)
        object.__setattr__(self, 'points', points)

    @property
    def num_points(self) -> int:
        """Number of landmark points."""
        return self.points.shape[0]

    def has_region(self, region_name: str) -> bool:
        indices = self.regions.get(region_name)
        return bool(indices) and max(indices) < self.num_points

    def get_region(self, region_name: str) -> np.ndarray:
        """Get landmarks for specific facial region."""
        if not self.has_region(region_name):
            return np.empty((0, 2), dtype=np.float64)
        return self.points[list(self.regions[region_name])]

    @property
    def left_eye(self) -> np.ndarray:
        return self.get_region('left_eye')

    @property
    def right_eye(self) -> np.ndarray:
        return self.get_region('right_eye')

    @classmethod
    def from_points(cls, points: Sequence[Sequence[float]],
                    regions: Optional[Dict[str, Tuple[int, ...]]] = None) -> 'FaceLandmarks':
        """
        Build landmarks choosing the region map from the point count.

        Args:
            points: Landmark coordinates
            regions: Explicit region map (inferred for 5, 68 and 468/478 points if omitted)

        Returns:
            FaceLandmarks instance
        """
        array = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        if regions is None:
            regions = DEFAULT_REGIONS.get(array.shape[0])
            if regions is None:
                logger.warning(f"No default region map for {array.shape[0]} landmarks")
                regions = {}
        return cls(points=array, regions=dict(regions))


@dataclass(frozen=True)
class FaceDetection:
    """One detected face: bounding box, landmarks and detector confidence."""
    bounding_box: BoundingBox
    landmarks: FaceLandmarks
    confidence: float = 1.0

    def __post_init__(self):
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be in [0, 1], got {self.confidence}")


def estimate_landmarks_from_bbox(bbox: BoundingBox) -> FaceLandmarks:
    """
    Estimate 68 landmark points from typical facial proportions.

    Used when a detector only returns a bounding box.

    Args:
        bbox: Face bounding box

    Returns:
        FaceLandmarks in the 68-point layout
    """
    x, y, w, h = bbox.as_tuple()
    landmarks = []

    # Jaw line (17 points), left to right along the lower half
    for i in range(17):
        angle = np.pi - (i * np.pi / 16)
        px = x + w / 2 + (w / 2) * np.cos(angle)
        py = y + h * 0.7 + (h * 0.3) * np.sin(angle)
        landmarks.append([px, py])

    # Left eyebrow (5 points)
    for i in range(5):
        landmarks.append([x + w * (0.2 + i * 0.05), y + h * 0.25])

    # Right eyebrow (5 points)
    for i in range(5):
        landmarks.append([x + w * (0.6 + i * 0.05), y + h * 0.25])

    # Nose bridge (4 points)
    for i in range(4):
        landmarks.append([x + w * 0.5, y + h * (0.38 + i * 0.06)])

    # Nose bottom (5 points)
    for i in range(5):
        landmarks.append([x + w * (0.4 + i * 0.05), y + h * 0.6])

    # Eyes (6 points each)
    for eye_center_x in (x + w * 0.3, x + w * 0.7):
        eye_center_y = y + h * 0.38
        for i in range(6):
            angle = i * 2 * np.pi / 6
            landmarks.append([eye_center_x + w * 0.08 * np.cos(angle),
                              eye_center_y + h * 0.04 * np.sin(angle)])

    # Outer mouth (12 points)
    mouth_center_x = x + w * 0.5
    mouth_center_y = y + h * 0.78
    for i in range(12):
        angle = i * 2 * np.pi / 12
        landmarks.append([mouth_center_x + w * 0.15 * np.cos(angle),
                          mouth_center_y + h * 0.06 * np.sin(angle)])

    # Inner mouth (8 points)
    for i in range(8):
        angle = i * 2 * np.pi / 8
        landmarks.append([mouth_center_x + w * 0.08 * np.cos(angle),
                          mouth_center_y + h * 0.03 * np.sin(angle)])

    return FaceLandmarks(points=np.array(landmarks, dtype=np.float64), regions=dict(REGIONS_68))
