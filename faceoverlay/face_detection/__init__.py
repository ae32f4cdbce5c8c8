"""
Face Detection Module

Face detection data model and landmark providers consumed by the
face overlay pipeline.

Key Components:
- FaceDetection / FaceLandmarks / BoundingBox / Point2D: detection records
- LandmarkProvider: injectable detector interface
- HaarLandmarkProvider: offline OpenCV-based provider
- MediaPipeLandmarkProvider: FaceMesh landmarks measured on the image
- StaticLandmarkProvider: pre-computed detections
"""

from .landmarks import (
    Point2D,
    BoundingBox,
    FaceLandmarks,
    FaceDetection,
    REGIONS_68,
    REGIONS_5,
    REGIONS_468,
    estimate_landmarks_from_bbox
)

from .detector import (
    LandmarkProvider,
    HaarLandmarkProvider,
    MediaPipeLandmarkProvider,
    StaticLandmarkProvider,
    select_best_face
)

__all__ = [
    # Data model
    'Point2D',
    'BoundingBox',
    'FaceLandmarks',
    'FaceDetection',
    'REGIONS_68',
    'REGIONS_5',
    'REGIONS_468',
    'estimate_landmarks_from_bbox',

    # Providers
    'LandmarkProvider',
    'HaarLandmarkProvider',
    'MediaPipeLandmarkProvider',
    'StaticLandmarkProvider',
    'select_best_face'
]
