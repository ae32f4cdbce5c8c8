import unittest
import cv2
import math
import numpy as np
from unittest.mock import Mock, patch
import sys
import os

# Add project root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from faceoverlay.errors import (
    PipelineError,
    NoFaceDetected,
    DegenerateFace,
    ImageTooLarge,
    AllocationFailure,
    InvalidImage
)
from faceoverlay.face_detection import (
    BoundingBox,
    FaceDetection,
    FaceLandmarks,
    HaarLandmarkProvider,
    LandmarkProvider
)
from faceoverlay.face_overlay import (
    FaceOverlayPipeline,
    PipelineConfig,
    PIPELINE_PRESETS,
    get_preset_config,
    align_and_composite,
    calculate_face_orientation
)
from faceoverlay.utils.image_io import encode_png, decode_image

SKIN = (215, 170, 140, 255)
EYE = (15, 15, 15, 255)
JERSEY = (30, 60, 160, 255)


def face_from_eyes(left, right):
    d = math.hypot(right[0] - left[0], right[1] - left[1])
    cx = (left[0] + right[0]) / 2.0
    cy = (left[1] + right[1]) / 2.0
    points = [left, right, (cx, cy + 0.4 * d), (cx - 0.3 * d, cy + 0.8 * d), (cx + 0.3 * d, cy + 0.8 * d)]
    return FaceDetection(BoundingBox(cx - d, cy - 0.8 * d, 2 * d, 2.2 * d),
                         FaceLandmarks.from_points(points))


def draw_face(image, left, right):
    d = right[0] - left[0]
    cx = (left[0] + right[0]) // 2
    cv2.ellipse(image, (cx, left[1] + d // 3), (int(d * 0.8), int(d * 1.05)), 0, 0, 360, SKIN, -1)
    for eye in (left, right):
        cv2.circle(image, eye, max(3, d // 10), EYE, -1)


class EyeBlobProvider(LandmarkProvider):
    """Finds faces as pairs of dark eye blobs, paired left to right."""

    def detect_faces(self, image):
        gray = cv2.cvtColor(image, cv2.COLOR_RGBA2GRAY)
        _, dark = cv2.threshold(gray, 50, 255, cv2.THRESH_BINARY_INV)
        count, _, stats, centroids = cv2.connectedComponentsWithStats(dark)

        blobs = sorted(
            (tuple(centroids[i]) for i in range(1, count) if stats[i, cv2.CC_STAT_AREA] >= 20),
            key=lambda c: c[0]
        )
        return [face_from_eyes(blobs[i], blobs[i + 1]) for i in range(0, len(blobs) - 1, 2)]


class TestPipelineConfig(unittest.TestCase):

    def test_defaults_are_valid(self):
        config = PipelineConfig()
        config.validate()
        self.assertEqual(config.max_dimension, 4096)
        self.assertEqual(config.canvas_padding, 1.5)
        self.assertEqual(config.brightness_damping, 0.3)
        self.assertEqual(config.skin_preservation, 0.7)

    def test_invalid_values(self):
        invalid = [
            PipelineConfig(background_strong_threshold=160, background_weak_threshold=80),
            PipelineConfig(falloff_start=1.5),
            PipelineConfig(max_workers=0),
            PipelineConfig(canvas_padding=0.5),
            PipelineConfig(stats_sample_step=0),
            PipelineConfig(skin_preservation=2.0)
        ]
        for config in invalid:
            with self.assertRaises(ValueError):
                config.validate()

    def test_presets(self):
        self.assertEqual(set(PIPELINE_PRESETS), {"advanced", "clean", "hybrid", "aggressive"})
        for name in PIPELINE_PRESETS:
            get_preset_config(name).validate()

        self.assertEqual(get_preset_config("clean").falloff_start, 0.9)
        self.assertEqual(get_preset_config("aggressive").background_strong_threshold, 150.0)

    def test_preset_is_a_fresh_copy(self):
        config = get_preset_config("advanced")
        config.max_workers = 8
        self.assertEqual(PIPELINE_PRESETS["advanced"].max_workers, 1)

    def test_unknown_preset(self):
        with self.assertRaises(ValueError):
            get_preset_config("nonexistent")

    def test_overrides(self):
        config = PipelineConfig().with_overrides(falloff_start=0.7)
        self.assertEqual(config.falloff_start, 0.7)

        with self.assertRaises(ValueError):
            PipelineConfig().with_overrides(not_a_setting=1)


class TestFaceOverlayPipeline(unittest.TestCase):

    def setUp(self):
        """Set up test fixtures."""
        self.destination = np.zeros((200, 400, 4), dtype=np.uint8)
        self.destination[:, :] = JERSEY
        draw_face(self.destination, (60, 80), (120, 80))
        draw_face(self.destination, (260, 80), (340, 80))
        self.destination_faces = [face_from_eyes((60, 80), (120, 80)),
                                  face_from_eyes((260, 80), (340, 80))]

        self.source = np.full((300, 300, 4), 255, dtype=np.uint8)
        draw_face(self.source, (110, 130), (190, 130))
        self.source_face = face_from_eyes((110, 130), (190, 130))

        self.pipeline = FaceOverlayPipeline(EyeBlobProvider())

    def test_round_trip_orientation(self):
        image = np.zeros((400, 400, 4), dtype=np.uint8)
        image[:, :] = (200, 170, 150, 255)
        cv2.circle(image, (150, 180), 10, EYE, -1)
        cv2.circle(image, (250, 180), 10, EYE, -1)

        decoded = decode_image(encode_png(image))
        faces = EyeBlobProvider().detect_faces(decoded)

        self.assertEqual(len(faces), 1)
        orientation = calculate_face_orientation(faces[0])
        self.assertAlmostEqual(orientation.inter_eye_distance, 100.0, delta=0.5)
        self.assertAlmostEqual(orientation.rotation_radians, 0.0, delta=0.01)

    def test_both_destination_faces_receive_content(self):
        result = self.pipeline.align_and_composite(
            self.destination, self.destination_faces, self.source, self.source_face
        )

        self.assertEqual(result.shape, self.destination.shape)
        self.assertEqual(result.dtype, np.uint8)

        for face in self.destination_faces:
            x1, y1, x2, y2 = face.bounding_box.clip_to(400, 200)
            self.assertTrue(np.any(result[y1:y2, x1:x2] != self.destination[y1:y2, x1:x2]))

        # Outside every face box the destination is untouched
        np.testing.assert_array_equal(result[195, 5], self.destination[195, 5])
        np.testing.assert_array_equal(result[:, 390:], self.destination[:, 390:])

    def test_region_order_does_not_change_pixels(self):
        forward = self.pipeline.align_and_composite(
            self.destination, self.destination_faces, self.source, self.source_face
        )
        backward = self.pipeline.align_and_composite(
            self.destination, list(reversed(self.destination_faces)), self.source, self.source_face
        )

        np.testing.assert_array_equal(forward, backward)

    def test_threaded_matches_sequential(self):
        sequential = self.pipeline.align_and_composite(
            self.destination, self.destination_faces, self.source, self.source_face
        )
        threaded = FaceOverlayPipeline(config=PipelineConfig(max_workers=2)).align_and_composite(
            self.destination, self.destination_faces, self.source, self.source_face
        )

        np.testing.assert_array_equal(sequential, threaded)

    def test_inputs_not_modified(self):
        destination_before = self.destination.copy()
        source_before = self.source.copy()

        self.pipeline.align_and_composite(self.destination, self.destination_faces,
                                          self.source, self.source_face)

        np.testing.assert_array_equal(self.destination, destination_before)
        np.testing.assert_array_equal(self.source, source_before)

    def test_module_function(self):
        result = align_and_composite(self.destination, self.destination_faces[:1],
                                     self.source, self.source_face)
        self.assertEqual(result.shape, self.destination.shape)

    def test_composite_provenance(self):
        result = self.pipeline.composite(self.destination, self.destination_faces,
                                         self.source, self.source_face)

        self.assertTrue(result.success)
        self.assertIsNone(result.error)
        self.assertEqual(result.destination_faces_detected, 2)
        self.assertEqual(result.composited_regions, [0, 1])
        self.assertGreaterEqual(result.processing_time, 0.0)
        self.assertEqual(len(result.metadata["destination_face_boxes"]), 2)

    def test_swap_with_provider(self):
        with self.pipeline as pipeline:
            result = pipeline.swap(self.destination, self.source)

        self.assertTrue(result.success)
        self.assertEqual(result.source_faces_detected, 1)
        self.assertEqual(result.destination_faces_detected, 2)
        self.assertEqual(result.composited_regions, [0, 1])

    def test_degenerate_eyes(self):
        degenerate = face_from_eyes((100, 100), (100.0000001, 100))
        with self.assertRaises(DegenerateFace):
            self.pipeline.align_and_composite(self.destination, [degenerate],
                                              self.source, self.source_face)
        with self.assertRaises(DegenerateFace):
            self.pipeline.align_and_composite(self.destination, self.destination_faces,
                                              self.source, degenerate)

    def test_no_faces(self):
        with self.assertRaises(NoFaceDetected) as ctx:
            self.pipeline.align_and_composite(self.destination, [], self.source, self.source_face)
        self.assertEqual(ctx.exception.image_role, "destination")

        with self.assertRaises(NoFaceDetected) as ctx:
            self.pipeline.align_and_composite(self.destination, self.destination_faces, self.source, None)
        self.assertEqual(ctx.exception.image_role, "source")

    def test_swap_source_without_face(self):
        blank = np.full((100, 100, 4), 255, dtype=np.uint8)
        with self.assertRaises(NoFaceDetected) as ctx:
            self.pipeline.swap(self.destination, blank)
        self.assertEqual(ctx.exception.image_role, "source")

    def test_oversized_source_rejected(self):
        huge = np.broadcast_to(np.zeros((1, 1, 4), dtype=np.uint8), (5000, 5000, 4))

        with self.assertRaises(ImageTooLarge) as ctx:
            self.pipeline.align_and_composite(self.destination, self.destination_faces,
                                              huge, self.source_face)

        self.assertEqual(ctx.exception.shape, (5000, 5000, 4))
        self.assertEqual(ctx.exception.max_dimension, 4096)

    def test_invalid_image(self):
        rgb = np.zeros((50, 50, 3), dtype=np.uint8)
        with self.assertRaises(InvalidImage):
            self.pipeline.align_and_composite(rgb, self.destination_faces,
                                              self.source, self.source_face)

    def test_fallback_returns_destination(self):
        huge = np.broadcast_to(np.zeros((1, 1, 4), dtype=np.uint8), (5000, 5000, 4))

        result = self.pipeline.swap_or_fallback(self.destination, huge)

        self.assertFalse(result.success)
        self.assertIn("exceeds", result.error)
        self.assertEqual(result.metadata["error_type"], "ImageTooLarge")
        np.testing.assert_array_equal(result.image, self.destination)
        self.assertIsNot(result.image, self.destination)

    def test_region_out_of_memory(self):
        with patch('faceoverlay.face_overlay.pipeline.compute_region_statistics',
                   side_effect=MemoryError):
            with self.assertRaises(AllocationFailure) as ctx:
                self.pipeline.align_and_composite(self.destination, self.destination_faces,
                                                  self.source, self.source_face)

        self.assertIsInstance(ctx.exception.__cause__, MemoryError)

    def test_out_of_memory_falls_back(self):
        with patch('faceoverlay.face_overlay.pipeline.compute_region_statistics',
                   side_effect=MemoryError):
            result = self.pipeline.swap_or_fallback(self.destination, self.source)

        self.assertFalse(result.success)
        self.assertEqual(result.metadata["error_type"], "AllocationFailure")
        np.testing.assert_array_equal(result.image, self.destination)

    def test_fallback_success_path(self):
        result = self.pipeline.swap_or_fallback(self.destination, self.source)
        self.assertTrue(result.success)

    def test_errors_share_base_class(self):
        for error in (NoFaceDetected, DegenerateFace, ImageTooLarge, InvalidImage):
            self.assertTrue(issubclass(error, PipelineError))
        self.assertTrue(issubclass(InvalidImage, ValueError))


class TestProviderOwnership(unittest.TestCase):

    def test_injected_provider_outlives_pipeline(self):
        cascade = Mock()
        provider = HaarLandmarkProvider(cascade=cascade)

        with provider:
            with FaceOverlayPipeline(provider):
                pass
            self.assertTrue(provider.initialized)
            self.assertIs(provider.face_cascade, cascade)

        self.assertFalse(provider.initialized)
        self.assertIs(provider.face_cascade, cascade)

    def test_injected_provider_not_initialized_by_pipeline(self):
        provider = Mock(spec=LandmarkProvider)

        with FaceOverlayPipeline(provider):
            pass

        provider.initialize.assert_not_called()
        provider.close.assert_not_called()

    @patch('faceoverlay.face_overlay.pipeline.HaarLandmarkProvider')
    def test_default_provider_closed_with_pipeline(self, mock_provider_class):
        with FaceOverlayPipeline() as pipeline:
            self.assertIs(pipeline.provider, mock_provider_class.return_value)

        mock_provider_class.return_value.initialize.assert_called_once()
        mock_provider_class.return_value.close.assert_called_once()


if __name__ == '__main__':
    unittest.main()
