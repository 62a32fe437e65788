# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""Configuration loader for the face touch monitor.

Loads configuration from YAML file with environment variable substitution.
"""

import dataclasses
import os
import re
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# Default config file locations (in order of priority)
CONFIG_PATHS = [
    "config.local.yaml",  # Local overrides (not in git)
    "config.yaml",        # Default config
]

INACTIVE_SOUND_POLICIES = ("skip", "block")


@dataclass
class CameraConfig:
    """Webcam configuration."""
    device_index: int = 0
    width: int = 640
    height: int = 480
    # Poll interval while waiting for the first decodable frame
    first_frame_poll_ms: int = 50


@dataclass
class ModelConfig:
    """Embedding model configuration."""
    path: str = "models/mobilenet_v2.onnx"
    input_size: int = 224
    providers: List[str] = field(default_factory=lambda: ["CPUExecutionProvider"])


@dataclass
class ClassifierConfig:
    """Nearest-neighbour classifier configuration."""
    k: int = 3


@dataclass
class TrainingConfig:
    """Training batch configuration."""
    sample_count: int = 50
    sampling_interval_ms: int = 50


@dataclass
class InferenceConfig:
    """Inference loop configuration."""
    touch_confidence_threshold: float = 0.8
    # Fallback cycle interval (~60 Hz display refresh)
    interval_ms: int = 16
    max_consecutive_failures: int = 3


@dataclass
class SoundConfig:
    """Local alert sound configuration."""
    enabled: bool = True
    sound_file: str = "sounds/alert.wav"
    volume: int = 90


@dataclass
class NotificationConfig:
    """Notification configuration."""
    enabled: bool = True
    cooldown_ms: int = 3000
    title: str = "Hands off your face!"
    body: str = "You touched your face."
    webhook_url: str = ""
    history_size: int = 20


@dataclass
class AlertingConfig:
    """Alerting configuration container."""
    sound: SoundConfig = field(default_factory=SoundConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    # What a touch does to the sound gate while the UI is in the background
    inactive_sound_policy: str = "skip"
    # Extra quiet period after each alert sound finishes
    sound_cooldown_ms: int = 0


@dataclass
class WebConfig:
    """Local control surface configuration."""
    host: str = "127.0.0.1"
    port: int = 8000
    auto_initialize: bool = False


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    file: str = "logs/facetouch.log"
    max_size_mb: int = 10
    backup_count: int = 5


@dataclass
class Config:
    """Main configuration container.

    This is the root configuration object containing all settings.
    """
    mock_mode: bool = False
    camera: CameraConfig = field(default_factory=CameraConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    training: TrainingConfig = field(default_factory=TrainingConfig)
    inference: InferenceConfig = field(default_factory=InferenceConfig)
    alerting: AlertingConfig = field(default_factory=AlertingConfig)
    web: WebConfig = field(default_factory=WebConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Internal: base path for resolving relative paths
    _base_path: Path = field(default_factory=Path.cwd)

    def resolve_path(self, path: str) -> Path:
        """Resolve a path relative to the config file location."""
        p = Path(path)
        if p.is_absolute():
            return p
        return self._base_path / p


@dataclass(frozen=True)
class SessionSettings:
    """Tunables a session reads at initialize() time.

    Built from Config, then optionally overridden per initialize() call.
    """
    training_sample_count: int = 50
    sampling_interval_ms: int = 50
    touch_confidence_threshold: float = 0.8
    notification_cooldown_ms: int = 3000
    inference_interval_ms: int = 16
    max_consecutive_failures: int = 3

    @classmethod
    def from_config(cls, config: Config) -> "SessionSettings":
        return cls(
            training_sample_count=config.training.sample_count,
            sampling_interval_ms=config.training.sampling_interval_ms,
            touch_confidence_threshold=config.inference.touch_confidence_threshold,
            notification_cooldown_ms=config.alerting.notification.cooldown_ms,
            inference_interval_ms=config.inference.interval_ms,
            max_consecutive_failures=config.inference.max_consecutive_failures,
        )

    def with_overrides(self, **overrides: Any) -> "SessionSettings":
        """Return a copy with the given fields replaced.

        None values are ignored so optional request fields can be passed through.

        Raises:
            ValueError: On unknown setting names or out-of-range values
        """
        known = {f.name for f in dataclasses.fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise ValueError(f"Unknown session settings: {', '.join(sorted(unknown))}")

        changes = {k: v for k, v in overrides.items() if v is not None}
        settings = dataclasses.replace(self, **changes)
        settings.validate()
        return settings

    def validate(self) -> None:
        """Raise ValueError if any tunable is out of range."""
        if self.training_sample_count < 1:
            raise ValueError("training_sample_count must be at least 1")
        if self.sampling_interval_ms < 0:
            raise ValueError("sampling_interval_ms must not be negative")
        if not 0.0 <= self.touch_confidence_threshold <= 1.0:
            raise ValueError("touch_confidence_threshold must be 0-1")
        if self.notification_cooldown_ms < 0:
            raise ValueError("notification_cooldown_ms must not be negative")
        if self.inference_interval_ms < 0:
            raise ValueError("inference_interval_ms must not be negative")
        if self.max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be at least 1")


def _substitute_env_vars(value: Any) -> Any:
    """Recursively substitute ${VAR} patterns with environment variables.

    Args:
        value: Value to process (can be str, dict, list, or other)

    Returns:
        Value with environment variables substituted
    """
    if isinstance(value, str):
        # Pattern matches ${VAR_NAME}
        pattern = r'\$\{([^}]+)\}'

        def replace_env(match):
            var_name = match.group(1)
            env_value = os.environ.get(var_name, "")
            if not env_value:
                logger.warning(f"Environment variable {var_name} not set")
            return env_value

        return re.sub(pattern, replace_env, value)

    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}

    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]

    return value


def _dict_to_dataclass(cls, data: Optional[Dict[str, Any]]):
    """Convert a dictionary to a dataclass, handling nested structures.

    Args:
        cls: The dataclass type to create
        data: Dictionary of values

    Returns:
        Instance of cls populated with data
    """
    if data is None:
        return cls()

    kwargs = {}
    for f in dataclasses.fields(cls):
        if f.name.startswith('_') or f.name not in data:
            continue

        value = data[f.name]
        default = cls.__dataclass_fields__[f.name]

        # Handle nested dataclasses (default_factory builds the section type)
        nested_type = None
        if default.default_factory is not dataclasses.MISSING:
            sample = default.default_factory()
            if dataclasses.is_dataclass(sample):
                nested_type = type(sample)

        if nested_type is not None and isinstance(value, dict):
            kwargs[f.name] = _dict_to_dataclass(nested_type, value)
        else:
            kwargs[f.name] = value

    unknown = set(data) - {f.name for f in dataclasses.fields(cls)}
    for name in sorted(unknown):
        logger.warning(f"Ignoring unknown config key in {cls.__name__}: {name}")

    return cls(**kwargs)


def load_config(config_path: Optional[str] = None, base_path: Optional[Path] = None) -> Config:
    """Load configuration from YAML file.

    Args:
        config_path: Path to config file. If None, searches default locations.
        base_path: Base path for resolving relative paths. Defaults to cwd.

    Returns:
        Config object with all settings loaded

    Raises:
        FileNotFoundError: If no config file is found
        yaml.YAMLError: If config file is invalid YAML
    """
    # Load .env file if present
    env_path = Path(base_path or Path.cwd()) / ".env"
    if env_path.exists():
        load_dotenv(env_path)
        logger.debug(f"Loaded environment from {env_path}")

    # Find config file
    if config_path:
        config_file = Path(config_path)
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        base = base_path or Path.cwd()
        config_file = None
        for path in CONFIG_PATHS:
            candidate = base / path
            if candidate.exists():
                config_file = candidate
                break

        if config_file is None:
            raise FileNotFoundError(
                f"No config file found. Searched: {', '.join(CONFIG_PATHS)}"
            )

    logger.info(f"Loading config from {config_file}")

    # Load YAML
    with open(config_file, 'r') as f:
        raw_config = yaml.safe_load(f)

    if raw_config is None:
        raw_config = {}

    # Substitute environment variables
    config_data = _substitute_env_vars(raw_config)

    # Check for MOCK_HARDWARE env var override
    if os.environ.get("MOCK_HARDWARE", "").lower() in ("true", "1", "yes"):
        logger.info("MOCK_HARDWARE environment variable set - enabling mock mode")
        config_data["mock_mode"] = True

    # Convert to Config dataclass
    config = _dict_to_dataclass(Config, config_data)
    config._base_path = config_file.parent

    _validate_config(config)

    return config


def _validate_config(config: Config) -> None:
    """Validate configuration settings, clamping where possible.

    Args:
        config: Config object to validate

    Raises:
        ValueError: If a setting is invalid and cannot be clamped
    """
    if config.training.sample_count < 1:
        raise ValueError("training.sample_count must be at least 1")

    if config.training.sampling_interval_ms < 0:
        logger.warning("training.sampling_interval_ms must be positive, using 0")
        config.training.sampling_interval_ms = 0

    threshold = config.inference.touch_confidence_threshold
    if threshold < 0.0 or threshold > 1.0:
        logger.warning("inference.touch_confidence_threshold must be 0-1, clamping to valid range")
        config.inference.touch_confidence_threshold = max(0.0, min(1.0, threshold))

    if config.inference.max_consecutive_failures < 1:
        logger.warning("inference.max_consecutive_failures must be at least 1, using 1")
        config.inference.max_consecutive_failures = 1

    if config.classifier.k < 1:
        logger.warning("classifier.k must be at least 1, using 1")
        config.classifier.k = 1

    if config.alerting.notification.cooldown_ms < 0:
        logger.warning("alerting.notification.cooldown_ms must be positive, using 0")
        config.alerting.notification.cooldown_ms = 0

    if config.alerting.inactive_sound_policy not in INACTIVE_SOUND_POLICIES:
        raise ValueError(
            f"alerting.inactive_sound_policy must be one of {', '.join(INACTIVE_SOUND_POLICIES)}"
        )

    # Validate audio volume
    if config.alerting.sound.volume < 0 or config.alerting.sound.volume > 100:
        logger.warning("alerting.sound.volume must be 0-100, clamping to valid range")
        config.alerting.sound.volume = max(0, min(100, config.alerting.sound.volume))
