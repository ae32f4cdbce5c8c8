"""
Face Overlay Pipeline - Main interface for face overlay operations

Wires orientation, alignment, masking, photometric normalization and
compositing into one parameterized pipeline, and manages landmark
detection for callers that start from raw images.
"""

import time
import numpy as np
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, fields, replace
from typing import Optional, Dict, Any, List, Sequence, Tuple

from ..errors import PipelineError, NoFaceDetected, AllocationFailure
from ..face_detection import (
    FaceDetection,
    LandmarkProvider,
    HaarLandmarkProvider,
    select_best_face
)
from ..utils.image_io import validate_image, check_dimensions
from .orientation import FaceOrientation, calculate_face_orientation
from .alignment import GeometricAligner
from .masking import RegionMasker
from .normalization import PhotometricNormalizer, compute_region_statistics
from .compositor import Compositor

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """Tuning constants for the face overlay pipeline."""

    # Input limits
    max_dimension: int = 4096

    # Geometry
    canvas_padding: float = 1.5
    source_crop_padding: float = 0.2
    placement_padding: float = 0.0

    # Masking
    edge_sample_step: int = 5
    background_strong_threshold: float = 80.0
    background_weak_threshold: float = 160.0
    falloff_start: float = 0.8

    # Photometric normalization
    stats_sample_step: int = 4
    alpha_threshold: int = 128
    brightness_damping: float = 0.3
    skin_preservation: float = 0.7
    color_correction: bool = True

    # Performance
    max_workers: int = 1

    def validate(self) -> None:
        """Validate configuration parameters."""
        if self.max_dimension <= 0:
            raise ValueError("Max dimension must be positive")

        if self.canvas_padding < 1.0:
            raise ValueError("Canvas padding must be at least 1.0")

        if self.source_crop_padding < 0.0 or self.placement_padding < 0.0:
            raise ValueError("Padding ratios must be non-negative")

        if self.edge_sample_step < 1 or self.stats_sample_step < 1:
            raise ValueError("Sampling steps must be at least 1")

        if not 0.0 <= self.background_strong_threshold < self.background_weak_threshold:
            raise ValueError("Background thresholds must satisfy 0 <= strong < weak")

        if not 0.0 <= self.falloff_start <= 1.0:
            raise ValueError("Falloff start must be between 0.0 and 1.0")

        if not 0 <= self.alpha_threshold <= 255:
            raise ValueError("Alpha threshold must be between 0 and 255")

        if not 0.0 <= self.brightness_damping <= 1.0:
            raise ValueError("Brightness damping must be between 0.0 and 1.0")

        if not 0.0 <= self.skin_preservation <= 1.0:
            raise ValueError("Skin preservation must be between 0.0 and 1.0")

        if self.max_workers < 1:
            raise ValueError("Max workers must be at least 1")

    def with_overrides(self, **overrides) -> 'PipelineConfig':
        """
        Copy of this config with some fields replaced.

        Raises:
            ValueError: If an override names an unknown field
        """
        valid_keys = {f.name for f in fields(self)}
        unknown = set(overrides) - valid_keys
        if unknown:
            raise ValueError(f"Unknown pipeline settings: {', '.join(sorted(unknown))}")
        return replace(self, **overrides)


# Masking variants of the overlay pipeline
PIPELINE_PRESETS = {
    "advanced": PipelineConfig(),

    "clean": PipelineConfig(
        background_strong_threshold=80.0,
        background_weak_threshold=160.0,
        falloff_start=0.9
    ),

    "hybrid": PipelineConfig(
        background_strong_threshold=100.0,
        background_weak_threshold=180.0,
        falloff_start=0.85
    ),

    "aggressive": PipelineConfig(
        background_strong_threshold=150.0,
        background_weak_threshold=220.0,
        falloff_start=0.8
    )
}


def get_preset_config(preset_name: str) -> PipelineConfig:
    """
    Get pipeline configuration preset by name.

    Args:
        preset_name: One of "advanced", "clean", "hybrid", "aggressive"

    Returns:
        A fresh PipelineConfig for the preset

    Raises:
        ValueError: If preset name is invalid
    """
    if preset_name not in PIPELINE_PRESETS:
        available = ", ".join(PIPELINE_PRESETS.keys())
        raise ValueError(f"Unknown preset: {preset_name}. Available: {available}")

    return replace(PIPELINE_PRESETS[preset_name])


@dataclass
class CompositeResult:
    """Result of a face overlay operation."""
    image: Optional[np.ndarray]
    success: bool = True
    error: Optional[str] = None
    destination_faces_detected: int = 0
    source_faces_detected: int = 0
    composited_regions: List[int] = field(default_factory=list)
    processing_time: float = 0.0
    metadata: Dict[str, Any] = field(default_factory=dict)


class FaceOverlayPipeline:
    """
    Overlays one source face onto every face of a destination image.

    Example:
        with FaceOverlayPipeline(HaarLandmarkProvider()) as pipeline:
            result = pipeline.swap(jersey, selfie)
    """

    def __init__(self, provider: Optional[LandmarkProvider] = None,
                 config: Optional[PipelineConfig] = None):
        """
        Initialize face overlay pipeline.

        Args:
            provider: Landmark provider used by swap(), owned by the caller;
                when omitted a Haar provider is created on first use and
                closed with the pipeline
            config: Pipeline configuration
        """
        self.config = config or PipelineConfig()
        self.config.validate()

        self._provider = provider
        self._owns_provider = provider is None

        self.aligner = GeometricAligner(
            canvas_padding=self.config.canvas_padding,
            crop_padding=self.config.source_crop_padding,
            max_dimension=self.config.max_dimension
        )
        self.masker = RegionMasker(
            strong_threshold=self.config.background_strong_threshold,
            weak_threshold=self.config.background_weak_threshold,
            falloff_start=self.config.falloff_start,
            edge_sample_step=self.config.edge_sample_step
        )
        self.normalizer = PhotometricNormalizer(
            brightness_damping=self.config.brightness_damping,
            skin_preservation=self.config.skin_preservation,
            sample_step=self.config.stats_sample_step,
            alpha_threshold=self.config.alpha_threshold
        )

    @property
    def provider(self) -> LandmarkProvider:
        if self._provider is None:
            self._provider = HaarLandmarkProvider()
        return self._provider

    def __enter__(self) -> 'FaceOverlayPipeline':
        if self._owns_provider:
            self.provider.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Release the landmark provider if this pipeline created it."""
        # An injected provider belongs to the caller, who closes it
        if self._owns_provider and self._provider is not None:
            self._provider.close()
            self._provider = None

    def align_and_composite(self, destination_image: np.ndarray,
                            destination_faces: Sequence[FaceDetection],
                            source_image: np.ndarray,
                            source_face: Optional[FaceDetection]) -> np.ndarray:
        """
        Overlay the source face onto each destination face.

        Args:
            destination_image: RGBA image receiving the face
            destination_faces: Faces to cover, in provider order
            source_image: RGBA image containing the face to paste
            source_face: Face to paste

        Returns:
            New RGBA image

        Raises:
            PipelineError: On any failure; no partial image is produced
        """
        image, _ = self._run(destination_image, destination_faces, source_image, source_face)
        return image

    def composite(self, destination_image: np.ndarray,
                  destination_faces: Sequence[FaceDetection],
                  source_image: np.ndarray,
                  source_face: Optional[FaceDetection]) -> CompositeResult:
        """Like align_and_composite, but returns a CompositeResult with provenance."""
        start_time = time.time()

        image, composited = self._run(destination_image, destination_faces, source_image, source_face)

        processing_time = time.time() - start_time
        logger.info(
            f"Composited {len(composited)}/{len(destination_faces)} face region(s) "
            f"in {processing_time:.3f}s"
        )

        return CompositeResult(
            image=image,
            success=True,
            destination_faces_detected=len(destination_faces),
            source_faces_detected=1,
            composited_regions=composited,
            processing_time=processing_time,
            metadata={
                "source_face_box": source_face.bounding_box.as_tuple(),
                "destination_face_boxes": [f.bounding_box.as_tuple() for f in destination_faces],
                "color_correction": self.config.color_correction,
                "max_workers": self.config.max_workers
            }
        )

    def swap(self, destination_image: np.ndarray, source_image: np.ndarray) -> CompositeResult:
        """
        Detect faces in both images and overlay the best source face.

        Raises:
            NoFaceDetected: If either image has no face
            PipelineError: On any other pipeline failure
        """
        start_time = time.time()

        self._check_inputs(destination_image, source_image)

        source_faces = self.provider.detect_faces(source_image)
        source_face = select_best_face(source_faces)
        if source_face is None:
            raise NoFaceDetected("source")

        destination_faces = self.provider.detect_faces(destination_image)
        if not destination_faces:
            raise NoFaceDetected("destination")

        logger.info(
            f"Detected {len(source_faces)} source face(s), "
            f"{len(destination_faces)} destination face(s)"
        )

        result = self.composite(destination_image, destination_faces, source_image, source_face)
        result.source_faces_detected = len(source_faces)
        result.processing_time = time.time() - start_time
        return result

    def swap_or_fallback(self, destination_image: np.ndarray,
                         source_image: np.ndarray) -> CompositeResult:
        """
        Like swap(), but returns the unmodified destination on pipeline errors.

        Returns:
            CompositeResult; success is False and error is set on failure
        """
        start_time = time.time()
        try:
            return self.swap(destination_image, source_image)
        except PipelineError as e:
            logger.error(f"Face overlay failed, using original image: {e}")
            fallback = destination_image.copy() if isinstance(destination_image, np.ndarray) else None
            return CompositeResult(
                image=fallback,
                success=False,
                error=str(e),
                processing_time=time.time() - start_time,
                metadata={"error_type": type(e).__name__}
            )

    def _check_inputs(self, destination_image: np.ndarray, source_image: np.ndarray) -> None:
        validate_image(destination_image, "destination image")
        validate_image(source_image, "source image")
        check_dimensions(destination_image, self.config.max_dimension, "destination image")
        check_dimensions(source_image, self.config.max_dimension, "source image")

    def _run(self, destination_image: np.ndarray,
             destination_faces: Sequence[FaceDetection],
             source_image: np.ndarray,
             source_face: Optional[FaceDetection]) -> Tuple[np.ndarray, List[int]]:
        self._check_inputs(destination_image, source_image)

        if source_face is None:
            raise NoFaceDetected("source")
        if not destination_faces:
            raise NoFaceDetected("destination")

        source_orientation = calculate_face_orientation(source_face)

        if self.config.max_workers > 1 and len(destination_faces) > 1:
            with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
                futures = [
                    executor.submit(self._process_region, source_image, source_face,
                                    source_orientation, destination_image, face)
                    for face in destination_faces
                ]
            crops = [future.result() for future in futures]
        else:
            crops = [
                self._process_region(source_image, source_face, source_orientation,
                                     destination_image, face)
                for face in destination_faces
            ]

        compositor = Compositor(placement_padding=self.config.placement_padding)
        canvas = compositor.create_canvas(destination_image)

        composited = []
        for index, (face, crop) in enumerate(zip(destination_faces, crops)):
            if compositor.paste(canvas, face.bounding_box, crop):
                composited.append(index)

        return canvas, composited

    def _process_region(self, source_image: np.ndarray, source_face: FaceDetection,
                        source_orientation: FaceOrientation,
                        destination_image: np.ndarray,
                        destination_face: FaceDetection) -> np.ndarray:
        """Align, mask and normalize the source face for one destination face."""
        try:
            target_orientation = calculate_face_orientation(destination_face)

            aligned = self.aligner.align(
                source_image, source_face, source_orientation,
                destination_face.bounding_box, target_orientation
            )
            crop = self.masker.apply(aligned.image)

            if self.config.color_correction:
                destination_stats = compute_region_statistics(
                    destination_image, destination_face.bounding_box,
                    self.config.stats_sample_step, self.config.alpha_threshold
                )
                crop = self.normalizer.normalize(crop, destination_stats)

            return crop

        except MemoryError as e:
            raise AllocationFailure(
                f"Out of memory processing face at {destination_face.bounding_box.as_tuple()}"
            ) from e


def align_and_composite(destination_image: np.ndarray,
                        destination_faces: Sequence[FaceDetection],
                        source_image: np.ndarray,
                        source_face: Optional[FaceDetection],
                        config: Optional[PipelineConfig] = None) -> np.ndarray:
    """
    Overlay a source face onto destination faces with pre-computed detections.

    Args:
        destination_image: RGBA image receiving the face
        destination_faces: Faces to cover, in provider order
        source_image: RGBA image containing the face to paste
        source_face: Face to paste
        config: Optional pipeline configuration

    Returns:
        New RGBA image

    Raises:
        PipelineError: On any failure
    """
    pipeline = FaceOverlayPipeline(config=config)
    return pipeline.align_and_composite(destination_image, destination_faces,
                                        source_image, source_face)
