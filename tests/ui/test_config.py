import unittest
import json
import tempfile
from pathlib import Path
import sys
import os

import yaml

# Add project root to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from faceoverlay.ui.config import (
    CLIConfig,
    load_config,
    save_config,
    create_sample_config,
    get_default_config_path
)


class TestCLIConfig(unittest.TestCase):

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = tempfile.TemporaryDirectory()
        self.tmp = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_defaults(self):
        config = CLIConfig()
        config.validate()

        pipeline_config = config.to_pipeline_config()
        self.assertEqual(pipeline_config.background_strong_threshold, 80.0)
        self.assertEqual(pipeline_config.max_workers, 1)

    def test_preset_and_overrides(self):
        config = CLIConfig(preset="clean", max_workers=3,
                           pipeline={"brightness_damping": 0.1})

        pipeline_config = config.to_pipeline_config()

        self.assertEqual(pipeline_config.falloff_start, 0.9)
        self.assertEqual(pipeline_config.brightness_damping, 0.1)
        self.assertEqual(pipeline_config.max_workers, 3)

    def test_invalid_settings(self):
        invalid = [
            CLIConfig(preset="unknown"),
            CLIConfig(min_face_size=0),
            CLIConfig(detector="dlib"),
            CLIConfig(downscale=-5),
            CLIConfig(max_workers=0),
            CLIConfig(log_level="LOUD"),
            CLIConfig(pipeline={"unknown_setting": 1}),
            CLIConfig(pipeline={"falloff_start": 3.0})
        ]
        for config in invalid:
            with self.assertRaises(ValueError):
                config.validate()

    def test_from_dict_ignores_unknown_keys(self):
        config = CLIConfig.from_dict({"preset": "hybrid", "colour": "blue"})
        self.assertEqual(config.preset, "hybrid")

    def test_yaml_round_trip(self):
        path = self.tmp / "config.yaml"
        original = CLIConfig(preset="aggressive", fallback=True, downscale=2000,
                             pipeline={"skin_preservation": 0.5})

        save_config(original, str(path))
        loaded = load_config(str(path))

        self.assertEqual(loaded, original)

    def test_json_round_trip(self):
        path = self.tmp / "config.json"
        original = CLIConfig(min_face_size=60, log_level="DEBUG")

        save_config(original, str(path), format="json")

        self.assertEqual(json.loads(path.read_text())["min_face_size"], 60)
        self.assertEqual(load_config(str(path)), original)

    def test_load_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_config(str(self.tmp / "missing.yaml"))

    def test_load_invalid_files(self):
        bad_yaml = self.tmp / "bad.yaml"
        bad_yaml.write_text("preset: [unclosed")
        with self.assertRaises(ValueError):
            load_config(str(bad_yaml))

        not_a_mapping = self.tmp / "list.json"
        not_a_mapping.write_text("[1, 2, 3]")
        with self.assertRaises(ValueError):
            load_config(str(not_a_mapping))

        wrong_suffix = self.tmp / "config.toml"
        wrong_suffix.write_text("preset = 'clean'")
        with self.assertRaises(ValueError):
            load_config(str(wrong_suffix))

    def test_empty_yaml_gives_defaults(self):
        path = self.tmp / "empty.yaml"
        path.write_text("")
        self.assertEqual(load_config(str(path)), CLIConfig())

    def test_save_unsupported_format(self):
        with self.assertRaises(ValueError):
            save_config(CLIConfig(), str(self.tmp / "config.ini"), format="ini")

    def test_sample_config_loads(self):
        path = self.tmp / "sample" / "faceoverlay.yaml"
        create_sample_config(str(path))

        data = yaml.safe_load(path.read_text())
        self.assertIn("brightness_damping", data["pipeline"])

        config = load_config(str(path))
        self.assertEqual(config.preset, "advanced")

    def test_default_config_path(self):
        self.assertEqual(get_default_config_path().suffix, ".yaml")


if __name__ == '__main__':
    unittest.main()
