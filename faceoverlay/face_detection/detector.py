"""
Landmark Providers

Face detectors that produce FaceDetection records for the overlay pipeline.
Providers are explicit, scoped resources: create one, use it as a context
manager (or call initialize/close), and pass it to the pipeline.
"""

import cv2
import numpy as np
import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

from .landmarks import BoundingBox, FaceDetection, FaceLandmarks, estimate_landmarks_from_bbox

logger = logging.getLogger(__name__)


class LandmarkProvider(ABC):
    """
    Interface for face + landmark detectors.

    ``detect_faces`` may return an empty list (no face found is a valid
    result) and may raise on corrupt input.
    """

    def __init__(self):
        self.initialized = False

    def initialize(self) -> None:
        """Load models or other resources. Safe to call more than once."""
        self.initialized = True

    def close(self) -> None:
        """Release resources held by the provider."""
        self.initialized = False

    def __enter__(self) -> 'LandmarkProvider':
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @abstractmethod
    def detect_faces(self, image: np.ndarray) -> List[FaceDetection]:
        """
        Detect faces with landmarks.

        Args:
            image: RGBA image buffer

        Returns:
            List of FaceDetection, possibly empty
        """


class StaticLandmarkProvider(LandmarkProvider):
    """Returns pre-computed detections, for callers that already ran detection."""

    def __init__(self, detections: Sequence[FaceDetection]):
        super().__init__()
        self.detections = list(detections)

    def detect_faces(self, image: np.ndarray) -> List[FaceDetection]:
        return list(self.detections)


class HaarLandmarkProvider(LandmarkProvider):
    """
    Offline provider based on OpenCV's Haar cascade.

    Faces are found with the frontal-face cascade and 68 landmarks are
    estimated from the bounding box proportions. When the default pass
    finds nothing, a second, more permissive pass is tried.
    """

    def __init__(self, min_face_size: int = 30,
                 scale_factor: float = 1.1,
                 min_neighbors: int = 5,
                 retry_permissive: bool = True,
                 cascade=None):
        """
        Initialize Haar landmark provider.

        Args:
            min_face_size: Smallest face side in pixels
            scale_factor: Cascade image pyramid scale step
            min_neighbors: Cascade neighbour threshold
            retry_permissive: Retry with relaxed settings if nothing is found
            cascade: Pre-built classifier (loaded from cv2.data when omitted)
        """
        super().__init__()
        self.min_face_size = min_face_size
        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.retry_permissive = retry_permissive
        self._injected_cascade = cascade
        self.face_cascade = cascade

    def initialize(self) -> None:
        if self.face_cascade is None:
            cascade_path = cv2.data.haarcascades + 'haarcascade_frontalface_default.xml'
            self.face_cascade = cv2.CascadeClassifier(cascade_path)
            if self.face_cascade.empty():
                raise RuntimeError(f"Failed to load Haar cascade: {cascade_path}")
            logger.info(f"Loaded Haar cascade from {cascade_path}")
        super().initialize()

    def close(self) -> None:
        # A cascade passed in by the caller outlives the provider session
        self.face_cascade = self._injected_cascade
        super().close()

    def detect_faces(self, image: np.ndarray) -> List[FaceDetection]:
        if not self.initialized:
            self.initialize()

        if image is None or image.size == 0:
            raise ValueError("Cannot detect faces in an empty image")

        gray = self._to_gray(image)

        faces = self._run_cascade(gray, self.scale_factor, self.min_neighbors)
        if len(faces) == 0 and self.retry_permissive:
            logger.info("No faces found, retrying with permissive cascade settings")
            faces = self._run_cascade(gray, 1.05, max(1, self.min_neighbors - 2))

        # Provider order: top-to-bottom, then left-to-right
        boxes = sorted((tuple(int(v) for v in face) for face in faces),
                       key=lambda b: (b[1], b[0]))

        results = []
        for x, y, w, h in boxes:
            bbox = BoundingBox(float(x), float(y), float(w), float(h))
            results.append(FaceDetection(
                bounding_box=bbox,
                landmarks=estimate_landmarks_from_bbox(bbox),
                confidence=1.0  # Haar doesn't provide confidence
            ))

        logger.debug(f"Haar provider found {len(results)} face(s)")
        return results

    def _run_cascade(self, gray: np.ndarray, scale_factor: float, min_neighbors: int):
        faces = self.face_cascade.detectMultiScale(
            gray,
            scaleFactor=scale_factor,
            minNeighbors=min_neighbors,
            minSize=(self.min_face_size, self.min_face_size)
        )
        return faces if faces is not None else []

    @staticmethod
    def _to_gray(image: np.ndarray) -> np.ndarray:
        if image.ndim == 2:
            return image
        if image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
        return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)


class MediaPipeLandmarkProvider(LandmarkProvider):
    """
    Provider based on the MediaPipe FaceMesh model.

    Landmarks are the 468 (478 with refined irises) mesh points measured on
    the image, so eye positions follow the real head tilt. The bounding box
    is the extent of the mesh.
    """

    def __init__(self, max_faces: int = 4,
                 min_detection_confidence: float = 0.5,
                 refine_landmarks: bool = False,
                 face_mesh=None):
        """
        Initialize MediaPipe landmark provider.

        Args:
            max_faces: Largest number of faces returned per image
            min_detection_confidence: FaceMesh detection threshold
            refine_landmarks: Add the 10 iris points
            face_mesh: Pre-built FaceMesh-like object with ``process(rgb)``
        """
        super().__init__()
        self.max_faces = max_faces
        self.min_detection_confidence = min_detection_confidence
        self.refine_landmarks = refine_landmarks
        self._injected_mesh = face_mesh
        self.face_mesh = face_mesh

    def initialize(self) -> None:
        if self.face_mesh is None:
            try:
                import mediapipe as mp
            except ImportError as e:
                raise RuntimeError(
                    "MediaPipe is not installed; install faceoverlay[mediapipe] "
                    "or use the Haar detector"
                ) from e

            self.face_mesh = mp.solutions.face_mesh.FaceMesh(
                static_image_mode=True,
                max_num_faces=self.max_faces,
                refine_landmarks=self.refine_landmarks,
                min_detection_confidence=self.min_detection_confidence
            )
            logger.info("Initialized MediaPipe face mesh")
        super().initialize()

    def close(self) -> None:
        if self.face_mesh is not None and self.face_mesh is not self._injected_mesh:
            self.face_mesh.close()
        self.face_mesh = self._injected_mesh
        super().close()

    def detect_faces(self, image: np.ndarray) -> List[FaceDetection]:
        if not self.initialized:
            self.initialize()

        if image is None or image.size == 0:
            raise ValueError("Cannot detect faces in an empty image")

        height, width = image.shape[:2]
        results = self.face_mesh.process(self._to_rgb(image))

        detections = []
        for face in results.multi_face_landmarks or []:
            points = np.array([[lm.x * width, lm.y * height] for lm in face.landmark],
                              dtype=np.float64)
            x1, y1 = points.min(axis=0)
            x2, y2 = points.max(axis=0)

            detections.append(FaceDetection(
                bounding_box=BoundingBox(float(x1), float(y1), float(x2 - x1), float(y2 - y1)),
                landmarks=FaceLandmarks.from_points(points),
                confidence=1.0  # FaceMesh reports no per-face score
            ))

        detections.sort(key=lambda d: (d.bounding_box.y, d.bounding_box.x))
        logger.debug(f"MediaPipe provider found {len(detections)} face(s)")
        return detections

    @staticmethod
    def _to_rgb(image: np.ndarray) -> np.ndarray:
        if image.ndim == 2:
            return cv2.cvtColor(image, cv2.COLOR_GRAY2RGB)
        if image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_RGBA2RGB)
        return np.ascontiguousarray(image)


def select_best_face(detections: Sequence[FaceDetection]) -> Optional[FaceDetection]:
    """
    Pick the most reliable face: highest confidence, then largest box.

    Args:
        detections: Candidate detections

    Returns:
        Best detection or None if the list is empty
    """
    if not detections:
        return None
    return max(detections, key=lambda d: (d.confidence, d.bounding_box.area))
