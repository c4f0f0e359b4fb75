"""
load the config from config.yaml and .env
"""

import copy
import os
from pathlib import Path
from typing import Any, Dict

import yaml
from dotenv import load_dotenv

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "config.yaml"

DEFAULTS: Dict[str, Any] = {
    'mongodb': {
        'uri': 'mongodb://localhost:27017',
        'database': 'wpackagist',
        'collections': {'packages': 'packages'},
        'inactive_window_days': 90,
        'refetch_after_days': 7,
    },
    'fetcher': {
        'concurrent': 10,
        'user_agent': 'wpackagist-updater/1.0',
        'timeout': 30.0,
        'max_redirects': 5,
        'max_response_size': 10 * 1024 * 1024,
        'ca_bundle': 'data/cacert.pem',
        'ca_bundle_platforms': ['win'],
    },
    'logging': {
        'level': 'INFO',
        'format': 'console',
    },
}


class ConfigError(ValueError):
    """Raised for a missing or invalid configuration."""


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Config:
    """Configuration loader that reads from config.yaml and environment variables."""

    def __init__(self, config_path: str = None, load_env_file: bool = True):
        """Initialize configuration loader.

        Args:
            config_path: Path to config.yaml file. If None, looks for config.yaml
                        at the project root and falls back to the built-in
                        defaults when it is absent.
            load_env_file: Read a .env file into the environment before applying overrides.
        """
        self.explicit_path = config_path is not None
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        self.config_path = Path(config_path)
        if load_env_file:
            load_dotenv()
        self._config = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file and override with environment variables."""
        try:
            with open(self.config_path, 'r') as f:
                config = yaml.safe_load(f) or {}
        except FileNotFoundError:
            if self.explicit_path:
                raise ConfigError(f"Configuration file not found: {self.config_path}")
            config = {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in configuration file: {e}")

        if not isinstance(config, dict):
            raise ConfigError(f"Configuration file must contain a mapping: {self.config_path}")

        config = _merge(DEFAULTS, config)
        config = self._apply_env_overrides(config)
        self._validate(config)
        return config

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Apply environment variable overrides to configuration."""
        env_mappings = {
            'MONGODB_URI': ('mongodb', 'uri'),
            'MONGODB_DATABASE': ('mongodb', 'database'),
            'FETCHER_CONCURRENT': ('fetcher', 'concurrent'),
            'FETCHER_USER_AGENT': ('fetcher', 'user_agent'),
            'FETCHER_TIMEOUT': ('fetcher', 'timeout'),
            'FETCHER_CA_BUNDLE': ('fetcher', 'ca_bundle'),
            'LOG_LEVEL': ('logging', 'level'),
            'LOG_FORMAT': ('logging', 'format'),
        }

        for env_var, config_path in env_mappings.items():
            env_value = os.getenv(env_var)
            if env_value is not None:
                current = config
                for key in config_path[:-1]:
                    if key not in current:
                        current[key] = {}
                    current = current[key]

                final_key = config_path[-1]
                current[final_key] = self._convert_env_value(env_value)

        return config

    def _convert_env_value(self, value: str):
        """Convert environment variable string to appropriate Python type."""
        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'

        try:
            return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def _validate(self, config: Dict[str, Any]):
        concurrent = config['fetcher'].get('concurrent')
        if isinstance(concurrent, bool) or not isinstance(concurrent, int) or concurrent < 1:
            raise ConfigError(f"fetcher.concurrent must be a positive integer, got {concurrent!r}")

    def get(self, *keys, default=None):
        """Get configuration value using dot notation.

        Args:
            *keys: Configuration keys (e.g., 'fetcher', 'concurrent')
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        current = self._config
        for key in keys:
            if isinstance(current, dict) and key in current:
                current = current[key]
            else:
                return default
        return current

    def as_dict(self) -> Dict[str, Any]:
        return copy.deepcopy(self._config)

    @property
    def mongodb(self) -> Dict[str, Any]:
        """Get MongoDB configuration."""
        return self.get('mongodb', default={})

    @property
    def fetcher(self) -> Dict[str, Any]:
        """Get HTTP fetcher configuration."""
        return self.get('fetcher', default={})

    @property
    def logging(self) -> Dict[str, Any]:
        """Get logging configuration."""
        return self.get('logging', default={})
