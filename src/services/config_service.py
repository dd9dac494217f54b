"""
Configuration Service Module

Manages application configuration read/write.
"""

from typing import Any, Dict, Optional
from pathlib import Path
import copy
import os
import sys
import yaml
import threading
import logging

logger = logging.getLogger(__name__)


class ConfigService:
    """
    Configuration Service - Singleton Pattern

    Built-in defaults deep-merged with a user YAML file.

    Usage Example:
        config = ConfigService()

        # Get configuration
        volume = config.get("playback.default_volume", 0.7)

        # Set configuration
        config.set("playback.normalization.enabled", True)
        config.save()
    """

    _instance: Optional['ConfigService'] = None
    _lock = threading.Lock()

    def __new__(cls, config_path: str = None) -> 'ConfigService':
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self, config_path: str = None):
        if self._initialized:
            return

        # A custom path is used for both loading and saving (supports test isolation)
        if config_path:
            self._user_config_path = Path(config_path)
        else:
            self._user_config_path = self._get_user_config_path()

        self._config: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._initialized = True

        self._load()

    @staticmethod
    def _get_user_config_path() -> Path:
        """Get user configuration file path (platform-specific)"""
        if sys.platform == "win32":
            base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        elif sys.platform == "darwin":
            base = Path.home() / "Library" / "Application Support"
        else:
            base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))
        return base / "musicqueue" / "config.yaml"

    @property
    def path(self) -> Path:
        return self._user_config_path

    def _load(self) -> None:
        """Load defaults and merge the user configuration over them"""
        self._config = self._get_default_config()

        if self._user_config_path.exists():
            try:
                with open(self._user_config_path, 'r', encoding='utf-8') as f:
                    user_config = yaml.safe_load(f) or {}
                    self._deep_merge(self._config, user_config)
            except (OSError, yaml.YAMLError) as e:
                logger.warning("Failed to load user configuration: %s", e)

    def _deep_merge(self, base: Dict, override: Dict) -> None:
        """Deep merge dictionaries, override overwrites base"""
        for key, value in override.items():
            if key in base and isinstance(base[key], dict) and isinstance(value, dict):
                self._deep_merge(base[key], value)
            else:
                base[key] = value

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration"""
        return {
            'app': {
                'name': 'musicqueue',
                'version': '1.0.0',
            },
            'audio': {
                'backend': 'miniaudio',
                'poll_interval': 0.25,      # Engine tick interval (seconds)
            },
            'playback': {
                'default_volume': 0.7,
                'playback_rate': 1.0,
                'normalization': {
                    'enabled': False,
                    'ramp_seconds': 0.5,
                    'min_gain': 0.1,
                    'max_gain': 3.0,
                    'sample_seconds': 0.15,  # Length of each analysis sample
                },
            },
            'library': {
                'root': str(Path.home() / "Music" / "musicqueue"),
            },
            'storage': {
                'state_db': '',             # Empty: platform data directory
            },
        }

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Supports dot-separated nested keys, e.g., "playback.default_volume".
        """
        with self._lock:
            value = self._config
            try:
                for k in key.split('.'):
                    value = value[k]
                return value
            except (KeyError, TypeError):
                return default

    def set(self, key: str, value: Any) -> None:
        """
        Set a configuration value.

        Args:
            key: Configuration key (dot-separated)
            value: Configuration value
        """
        with self._lock:
            keys = key.split('.')
            config = self._config

            # Navigate to the parent node
            for k in keys[:-1]:
                if not isinstance(config.get(k), dict):
                    config[k] = {}
                config = config[k]

            config[keys[-1]] = value

    def get_all(self) -> Dict[str, Any]:
        """Get all configurations."""
        with self._lock:
            return copy.deepcopy(self._config)

    def save(self) -> bool:
        """
        Save configuration to the user configuration file.

        Returns:
            bool: True if saving was successful.
        """
        try:
            self._user_config_path.parent.mkdir(parents=True, exist_ok=True)

            with self._lock:
                with open(self._user_config_path, 'w', encoding='utf-8') as f:
                    yaml.safe_dump(self._config, f, allow_unicode=True, default_flow_style=False)
            logger.debug("Configuration saved to: %s", self._user_config_path)
            return True
        except (OSError, yaml.YAMLError) as e:
            logger.error("Failed to save configuration: %s", e)
            return False

    def reload(self) -> bool:
        """Reload configuration from disk"""
        try:
            self._load()
            return True
        except Exception as e:
            logger.error("Failed to reload configuration: %s", e)
            return False

    def reset(self) -> None:
        """Reset to default configuration."""
        with self._lock:
            self._config = self._get_default_config()

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (for testing only)."""
        with cls._lock:
            cls._instance = None
