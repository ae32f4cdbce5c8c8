import unittest
import numpy as np
import sys
import os

# Add project root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from faceoverlay.face_detection import BoundingBox
from faceoverlay.face_overlay.normalization import (
    ColorStatistics,
    PhotometricNormalizer,
    compute_color_statistics,
    compute_region_statistics,
    is_skin_tone,
    skin_mask
)


def textured_image(base, size=(40, 40), seed=0):
    rng = np.random.RandomState(seed)
    noise = rng.randint(-10, 11, size=size + (3,))
    image = np.zeros(size + (4,), dtype=np.uint8)
    image[:, :, :3] = np.clip(np.array(base) + noise, 0, 255)
    image[:, :, 3] = 255
    return image


class TestColorStatistics(unittest.TestCase):

    def test_every_fourth_pixel(self):
        image = np.zeros((4, 4, 4), dtype=np.uint8)
        image[:, :, 3] = 255
        # Raster positions 0, 4, 8, 12 are the first column
        image[:, 0, :3] = [(10, 20, 30), (30, 40, 50), (10, 20, 30), (30, 40, 50)]
        image[:, 1:, :3] = 255

        stats = compute_color_statistics(image)

        self.assertEqual(stats.sample_count, 4)
        np.testing.assert_allclose(stats.mean, (20, 30, 40))
        np.testing.assert_allclose(stats.variance, (100, 100, 100))
        np.testing.assert_allclose(stats.std_dev, (10, 10, 10))
        self.assertAlmostEqual(stats.luminance, 30.0)
        self.assertAlmostEqual(stats.contrast, 10.0)

    def test_alpha_threshold(self):
        image = np.full((8, 8, 4), 200, dtype=np.uint8)
        image[:, :, 3] = 128  # not above the threshold

        stats = compute_color_statistics(image)

        self.assertTrue(stats.is_empty)
        self.assertEqual(stats.sample_count, 0)

    def test_region_statistics(self):
        image = np.zeros((20, 20, 4), dtype=np.uint8)
        image[:, :, 3] = 255
        image[5:15, 5:15, :3] = (100, 150, 200)

        stats = compute_region_statistics(image, BoundingBox(5, 5, 10, 10))
        np.testing.assert_allclose(stats.mean, (100, 150, 200))
        np.testing.assert_allclose(stats.std_dev, (0, 0, 0))

    def test_region_clipped_to_image(self):
        image = textured_image((120, 120, 120), size=(20, 20))
        stats = compute_region_statistics(image, BoundingBox(-50, -50, 500, 500))
        self.assertEqual(stats.sample_count, 100)


class TestSkinTone(unittest.TestCase):

    def test_skin_colors(self):
        self.assertTrue(is_skin_tone(200, 150, 120))
        self.assertTrue(is_skin_tone(120, 80, 60))
        self.assertTrue(is_skin_tone(75, 50, 30))

    def test_non_skin_colors(self):
        self.assertFalse(is_skin_tone(50, 60, 200))
        self.assertFalse(is_skin_tone(128, 128, 128))
        self.assertFalse(is_skin_tone(40, 30, 20))

    def test_mask_shape(self):
        rgb = np.array([[[200, 150, 120], [50, 60, 200]]], dtype=np.uint8)
        np.testing.assert_array_equal(skin_mask(rgb), [[True, False]])


class TestPhotometricNormalizer(unittest.TestCase):

    def setUp(self):
        """Set up test fixtures."""
        self.normalizer = PhotometricNormalizer()

        # Left half skin-like, right half blue, with texture
        self.crop = textured_image((190, 140, 110), size=(40, 60))
        self.crop[:, 30:, :3] = textured_image((40, 60, 180), size=(40, 30), seed=1)[:, :, :3]

    def test_identical_statistics_is_noop(self):
        stats = compute_color_statistics(self.crop)

        result = self.normalizer.normalize(self.crop, stats)

        np.testing.assert_array_equal(result, self.crop)
        self.assertIsNot(result, self.crop)

    def test_empty_statistics_returns_copy(self):
        result = self.normalizer.normalize(self.crop, ColorStatistics())

        np.testing.assert_array_equal(result, self.crop)
        self.assertIsNot(result, self.crop)

    def test_mean_transfer(self):
        normalizer = PhotometricNormalizer(brightness_damping=0.0, skin_preservation=0.0)
        crop = textured_image((40, 60, 180))
        destination = crop.copy()
        destination[:, :, :3] += np.array([20, 30, 0], dtype=np.uint8)

        result = normalizer.normalize(crop, compute_color_statistics(destination))

        result_stats = compute_color_statistics(result)
        np.testing.assert_allclose(result_stats.mean, compute_color_statistics(destination).mean, atol=0.5)

    def test_brightness_damping(self):
        normalizer = PhotometricNormalizer(brightness_damping=0.3, skin_preservation=0.0)
        crop = textured_image((40, 60, 180))
        destination = crop.copy()
        destination[:, :, :3] += np.array([30, 30, 30], dtype=np.uint8)
        destination_stats = compute_color_statistics(destination)

        result = normalizer.normalize(crop, destination_stats)

        # Full mean transfer, then 0.3 of the 30-level luminance gap on top
        shift = compute_color_statistics(result).mean - destination_stats.mean
        np.testing.assert_allclose(shift, (9, 9, 9), atol=0.5)

    def test_skin_preservation_blend(self):
        destination_stats = compute_color_statistics(textured_image((30, 40, 90), seed=5))

        plain = PhotometricNormalizer(skin_preservation=0.0).normalize(self.crop, destination_stats)
        preserved = PhotometricNormalizer(skin_preservation=0.7).normalize(self.crop, destination_stats)

        skin = skin_mask(self.crop[:, :, :3])
        self.assertTrue(skin[:, :30].all())
        self.assertFalse(skin[:, 30:].any())

        expected = 0.3 * plain[:, :, :3].astype(float) + 0.7 * self.crop[:, :, :3].astype(float)
        diff = np.abs(preserved[:, :, :3].astype(float) - expected)
        self.assertLessEqual(diff[skin].max(), 1.0)

        # Non-skin pixels are not pulled back
        np.testing.assert_array_equal(preserved[:, 30:], plain[:, 30:])

    def test_transparent_pixels_untouched(self):
        crop = self.crop.copy()
        crop[:5, :, 3] = 0
        destination_stats = compute_color_statistics(textured_image((30, 40, 90), seed=5))

        result = self.normalizer.normalize(crop, destination_stats)

        np.testing.assert_array_equal(result[:5], crop[:5])
        np.testing.assert_array_equal(result[:, :, 3], crop[:, :, 3])
        self.assertFalse(np.array_equal(result[5:, :, :3], crop[5:, :, :3]))

    def test_output_bounds(self):
        destination_stats = ColorStatistics(
            mean=np.array([250.0, 5.0, 128.0]),
            variance=np.array([6400.0, 6400.0, 6400.0]),
            std_dev=np.array([80.0, 80.0, 80.0]),
            sample_count=10
        )

        result = self.normalizer.normalize(self.crop, destination_stats)

        self.assertEqual(result.dtype, np.uint8)
        self.assertEqual(result.shape, self.crop.shape)


if __name__ == '__main__':
    unittest.main()
