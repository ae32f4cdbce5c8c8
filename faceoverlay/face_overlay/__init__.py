"""
Face Overlay Module

Aligns a source face onto the faces of a destination image, masks out the
background, matches color and lighting, and composites the result.

Components:
- FaceOverlayPipeline: Main interface, with pluggable landmark provider
- GeometricAligner: Similarity transform and warped face canvas
- RegionMasker: Edge-color background removal and radial falloff
- PhotometricNormalizer: Color statistics transfer and lighting correction
- Compositor: Alpha compositing onto the destination image
"""

from .orientation import FaceOrientation, calculate_face_orientation, normalize_angle
from .alignment import AlignmentTransform, AlignedFace, GeometricAligner, compute_alignment_transform
from .masking import RegionMasker, sample_background_color, radial_falloff
from .normalization import (
    ColorStatistics,
    PhotometricNormalizer,
    compute_color_statistics,
    compute_region_statistics,
    is_skin_tone,
    skin_mask
)
from .compositor import Compositor, blend_over
from .pipeline import (
    FaceOverlayPipeline,
    PipelineConfig,
    CompositeResult,
    PIPELINE_PRESETS,
    get_preset_config,
    align_and_composite
)

__all__ = [
    "FaceOverlayPipeline",
    "PipelineConfig",
    "CompositeResult",
    "PIPELINE_PRESETS",
    "get_preset_config",
    "align_and_composite",
    "FaceOrientation",
    "calculate_face_orientation",
    "normalize_angle",
    "AlignmentTransform",
    "AlignedFace",
    "GeometricAligner",
    "compute_alignment_transform",
    "RegionMasker",
    "sample_background_color",
    "radial_falloff",
    "ColorStatistics",
    "PhotometricNormalizer",
    "compute_color_statistics",
    "compute_region_statistics",
    "is_skin_tone",
    "skin_mask",
    "Compositor",
    "blend_over"
]
