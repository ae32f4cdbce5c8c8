"""
CLI Settings Files

The CLI reads its settings from a YAML or JSON file: which masking preset
to start from, per-key overrides of the pipeline tuning constants, detector
and worker settings, and logging. Command line flags are applied on top by
``CLIApp.load_configuration``.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, IO, Optional
from dataclasses import dataclass, asdict, field, fields

import yaml

from ..face_overlay.pipeline import PIPELINE_PRESETS, PipelineConfig, get_preset_config

logger = logging.getLogger(__name__)

# File suffix -> serialization format
CONFIG_FORMATS = {
    '.yaml': 'yaml',
    '.yml': 'yaml',
    '.json': 'json'
}

DETECTORS = ("haar", "mediapipe")

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')

# Pipeline keys written to a sample file; the rest keep their preset values
SAMPLE_PIPELINE_KEYS = (
    'background_strong_threshold',
    'background_weak_threshold',
    'falloff_start',
    'brightness_damping',
    'skin_preservation'
)


@dataclass
class CLIConfig:
    """
    Settings of one faceoverlay CLI run.

    ``pipeline`` maps PipelineConfig field names to values that replace the
    preset's; ``max_workers`` is applied last so the CLI flag always wins.
    """

    preset: str = "advanced"
    pipeline: Dict[str, Any] = field(default_factory=dict)

    # Face detector; min_face_size applies to the Haar cascade
    detector: str = "haar"
    min_face_size: int = 30

    # Input handling
    downscale: Optional[int] = None
    fallback: bool = False

    max_workers: int = 1

    log_level: str = "INFO"
    log_file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CLIConfig':
        """Build settings from a parsed file; unknown keys are logged and dropped."""
        known = {f.name for f in fields(cls)}

        ignored = sorted(key for key in data if key not in known)
        if ignored:
            logger.warning(f"Ignoring unknown configuration keys: {', '.join(ignored)}")

        return cls(**{key: value for key, value in data.items() if key in known})

    def validate(self) -> None:
        """
        Check every setting, including the resulting pipeline configuration.

        Raises:
            ValueError: On the first invalid setting
        """
        if self.preset not in PIPELINE_PRESETS:
            raise ValueError(
                f"Invalid preset: {self.preset}. Available: {', '.join(PIPELINE_PRESETS)}"
            )

        if not isinstance(self.pipeline, dict):
            raise ValueError("Pipeline overrides must be a mapping")

        if self.detector not in DETECTORS:
            raise ValueError(f"Invalid detector: {self.detector}. Use one of {', '.join(DETECTORS)}")

        if self.min_face_size < 1:
            raise ValueError("Minimum face size must be positive")

        if self.downscale is not None and self.downscale <= 0:
            raise ValueError("Downscale limit must be positive")

        if self.max_workers < 1:
            raise ValueError("Max workers must be at least 1")

        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}. Use one of {', '.join(LOG_LEVELS)}")

        self.to_pipeline_config()

    def to_pipeline_config(self) -> PipelineConfig:
        """
        Preset, then ``pipeline`` overrides, then ``max_workers``.

        Raises:
            ValueError: If the preset or an override is invalid
        """
        config = get_preset_config(self.preset).with_overrides(**self.pipeline)
        config.max_workers = self.max_workers
        config.validate()
        return config


def _config_format(path: Path) -> str:
    config_format = CONFIG_FORMATS.get(path.suffix.lower())
    if config_format is None:
        raise ValueError(
            f"Unsupported config file format: {path.suffix or '(none)'}. "
            f"Use one of {', '.join(sorted(CONFIG_FORMATS))}"
        )
    return config_format


def _dump(data: Dict[str, Any], stream: IO[str], config_format: str) -> None:
    if config_format == 'yaml':
        yaml.safe_dump(data, stream, default_flow_style=False, sort_keys=False)
    else:
        json.dump(data, stream, indent=2)
        stream.write('\n')


def load_config(config_path: str) -> CLIConfig:
    """
    Read and validate a settings file.

    An empty YAML file yields the defaults.

    Args:
        config_path: .yaml, .yml or .json file

    Returns:
        Validated CLIConfig

    Raises:
        FileNotFoundError: If the file is missing
        ValueError: If the file cannot be parsed or holds invalid settings
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    config_format = _config_format(path)
    text = path.read_text(encoding='utf-8')

    try:
        data = json.loads(text) if config_format == 'json' else yaml.safe_load(text)
    except (yaml.YAMLError, json.JSONDecodeError) as e:
        raise ValueError(f"Cannot parse {path.name}: {e}") from e

    if data is None:
        data = {}
    elif not isinstance(data, dict):
        raise ValueError(f"{path.name} must contain a mapping, got {type(data).__name__}")

    try:
        config = CLIConfig.from_dict(data)
        config.validate()
    except TypeError as e:
        raise ValueError(f"Invalid settings in {path.name}: {e}") from e

    logger.info(f"Loaded configuration from: {config_path}")
    return config


def save_config(config: CLIConfig, config_path: str, format: str = "yaml") -> None:
    """
    Write settings to a file, creating parent directories.

    Args:
        config: Settings to write
        config_path: Destination path
        format: "yaml" or "json"

    Raises:
        ValueError: If format is unsupported
    """
    config_format = format.lower()
    if config_format not in ('yaml', 'json'):
        raise ValueError(f"Unsupported format: {format}")

    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w', encoding='utf-8') as f:
        _dump(config.to_dict(), f, config_format)

    logger.info(f"Saved configuration to: {config_path}")


def get_default_config_path() -> Path:
    """
    First existing settings file among the standard locations.

    Looks in the working directory, then ``~/.config/faceoverlay``, then the
    home directory. Returns the working-directory path when none exists.
    """
    candidates = [
        Path.cwd() / "faceoverlay.yaml",
        Path.home() / ".config" / "faceoverlay" / "config.yaml",
        Path.home() / ".faceoverlay.yaml"
    ]
    return next((path for path in candidates if path.exists()), candidates[0])


def create_sample_config(output_path: str) -> None:
    """Write a commented YAML settings file holding the defaults."""
    defaults = PipelineConfig()

    data = CLIConfig().to_dict()
    data['pipeline'] = {key: getattr(defaults, key) for key in SAMPLE_PIPELINE_KEYS}

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'w', encoding='utf-8') as f:
        f.write("# faceoverlay settings\n")
        f.write(f"# preset: one of {', '.join(PIPELINE_PRESETS)}\n")
        f.write("# pipeline: overrides applied on top of the preset\n\n")
        _dump(data, f, 'yaml')

    logger.info(f"Created sample configuration: {output_path}")
