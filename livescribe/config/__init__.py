"""Simple YAML configuration loader for LiveScribe."""

import copy
import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional
import logging

from pydantic import ValidationError

from ..errors import ConfigurationError
from ..models.session import SessionConfig
from .presets import DEFAULT_PRESET, PRESETS, Preset, get_preset

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "livescribe.yaml"

DEFAULTS: Dict[str, Any] = {
    "session": {
        "preset": DEFAULT_PRESET,
    },
    "recognition": {
        "backend": "deepgram",
    },
    "deepgram": {
        "url": "wss://api.deepgram.com/v1/listen",
        "api_key_env": "DEEPGRAM_API_KEY",
        "connect_timeout_seconds": 10.0,
        "close_timeout_seconds": 5.0,
    },
    "google_cloud": {
        "language": "en-US",
        "model": "latest_long",
    },
    "audio": {
        "chunk_size": 1024,
        "device_index": None,
    },
    "logging": {
        "level": "INFO",
        "file_path": "data/logs/livescribe.log",
        "console_output": False,
    },
}


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class LiveScribeConfig:
    """LiveScribe configuration loader."""

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration loader.

        Args:
            config_path: Path to YAML config file. If None, uses livescribe.yaml
                        in the current directory when present, else built-in defaults.

        Raises:
            ConfigurationError: If an explicit file is missing or the YAML is invalid
        """
        if config_path:
            self.config_file: Optional[Path] = Path(config_path)
            if not self.config_file.exists():
                raise ConfigurationError(f"Configuration file not found: {self.config_file}")
        elif Path(DEFAULT_CONFIG_FILE).exists():
            self.config_file = Path(DEFAULT_CONFIG_FILE)
        else:
            self.config_file = None

        if self.config_file is None:
            logger.info("No configuration file found, using defaults")
            self.config = copy.deepcopy(DEFAULTS)
        else:
            logger.info(f"Loading configuration from: {self.config_file}")
            self.config = _deep_merge(DEFAULTS, self._load_config())

    def _load_config(self) -> Dict[str, Any]:
        """Load and parse YAML configuration file."""
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError("Invalid YAML in configuration file", str(e)) from e
        except OSError as e:
            raise ConfigurationError("Failed to read configuration file", str(e)) from e

        if config is None:
            config = {}
        if not isinstance(config, dict):
            raise ConfigurationError("Configuration file must contain a mapping",
                                     f"got {type(config).__name__}")

        # Resolve relative paths
        self._resolve_paths(config)

        logger.info("Configuration loaded successfully")
        return config

    def _resolve_paths(self, config: Dict[str, Any]) -> None:
        """Resolve relative paths in configuration relative to config file location."""
        config_dir = self.config_file.parent

        for section, key in (("google_cloud", "credentials_path"), ("logging", "file_path")):
            value = config.get(section, {}).get(key) if isinstance(config.get(section), dict) else None
            if value and not os.path.isabs(value):
                config[section][key] = str(config_dir / value)

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation (e.g., 'deepgram.url').

        Args:
            key_path: Dot-separated key path (e.g., 'google_cloud.credentials_path')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        keys = key_path.split('.')
        value = self.config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def set(self, key_path: str, value: Any) -> None:
        """Set configuration value using dot notation.

        Args:
            key_path: Dot-separated path to config value (e.g., 'session.preset')
            value: Value to set
        """
        keys = key_path.split('.')
        config_dict = self.config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if not isinstance(config_dict.get(key), dict):
                config_dict[key] = {}
            config_dict = config_dict[key]

        config_dict[keys[-1]] = value
        logger.debug(f"Configuration key '{key_path}' set to: {value}")

    def get_preset(self, preset_name: Optional[str] = None) -> Preset:
        """Resolve the preset to use, from the argument or `session.preset`."""
        return get_preset(preset_name or self.get('session.preset', DEFAULT_PRESET))

    def get_session_config(self, preset_name: Optional[str] = None) -> SessionConfig:
        """Build the immutable session configuration.

        Preset values are overlaid with any field set directly under `session`.

        Raises:
            ConfigurationError: If the preset is unknown or a field is invalid
        """
        preset = self.get_preset(preset_name)
        overrides = {key: value for key, value in self.get('session', {}).items()
                     if key != 'preset'}
        try:
            session_config = SessionConfig(**{**preset.session, **overrides})
        except ValidationError as e:
            raise ConfigurationError("Invalid session configuration", str(e)) from e

        logger.info(f"Session config ({preset.name}): {session_config.model_dump()}")
        return session_config

    def get_backend(self) -> str:
        backend = self.get('recognition.backend', 'deepgram')
        if backend not in ('deepgram', 'google'):
            raise ConfigurationError(f"Unknown recognition backend '{backend}'",
                                     "expected 'deepgram' or 'google'")
        return backend

    def get_deepgram_api_key(self) -> Optional[str]:
        """Deepgram API key from `deepgram.api_key`, else the environment."""
        api_key = self.get('deepgram.api_key')
        if api_key:
            return api_key
        return os.environ.get(self.get('deepgram.api_key_env', 'DEEPGRAM_API_KEY'))

    def get_google_credentials_path(self) -> Optional[str]:
        """Google credentials path, falling back to GOOGLE_APPLICATION_CREDENTIALS."""
        creds_path = self.get('google_cloud.credentials_path') or os.environ.get('GOOGLE_APPLICATION_CREDENTIALS')
        if not creds_path:
            return None
        return str(Path(creds_path).absolute())


__all__ = [
    'DEFAULTS',
    'LiveScribeConfig',
    'PRESETS',
    'Preset',
    'get_preset',
]
