"""
Configuration management for the photo frame.
Loads and validates settings from YAML files.
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_CONFIG_PATH = Path(__file__).parent / "default_config.yaml"


class Config:
    """Manages application configuration from YAML files."""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_path: Path to config file. If None, uses the packaged default_config.yaml
        """
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Config file not found: {self.config_path}")

        with open(self.config_path, 'r') as f:
            self._config = yaml.safe_load(f) or {}

        # Apply environment variable overrides
        self._apply_env_overrides()

    def _apply_env_overrides(self) -> None:
        """Override config values from environment variables."""
        if 'PHOTOFRAME_SERVER_URL' in os.environ:
            self.set('server.url', os.environ['PHOTOFRAME_SERVER_URL'])

        if 'PHOTOFRAME_CACHE_DIR' in os.environ:
            self.set('cache.dir', os.environ['PHOTOFRAME_CACHE_DIR'])

        if 'PHOTOFRAME_SETTINGS_DIR' in os.environ:
            self.set('settings.dir', os.environ['PHOTOFRAME_SETTINGS_DIR'])

        if 'PHOTOFRAME_STORAGE' in os.environ:
            self.set('server.storage', os.environ['PHOTOFRAME_STORAGE'])

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'cache.max_items')
            default: Default value if key not found

        Returns:
            Configuration value or default

        Example:
            >>> config = Config()
            >>> config.get('display.page_size')
            15
        """
        keys = key.split('.')
        value = self._config

        for k in keys:
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key (e.g., 'server.url')
            value: Value to set
        """
        keys = key.split('.')
        config = self._config

        # Navigate to the parent key
        for k in keys[:-1]:
            if not isinstance(config.get(k), dict):
                config[k] = {}
            config = config[k]

        config[keys[-1]] = value

    def save(self, path: Optional[str] = None) -> None:
        """
        Save configuration to YAML file.

        Args:
            path: Path to save to. If None, uses original config_path
        """
        save_path = Path(path) if path else self.config_path

        with open(save_path, 'w') as f:
            yaml.dump(self._config, f, default_flow_style=False, indent=2)

    @property
    def server_url(self) -> str:
        """Get the upload server origin."""
        return self.get('server.url', 'http://localhost:3000')

    @property
    def cache_db_path(self) -> Path:
        """Get the full path of the cache database file."""
        cache_dir = Path(os.path.expanduser(self.get('cache.dir', '~/.photoframe/cache')))
        return cache_dir / self.get('cache.db_file', 'photos.db')

    @property
    def settings_dir(self) -> Path:
        """Get the directory holding settings.json."""
        return Path(os.path.expanduser(self.get('settings.dir', '~/.photoframe')))

    def __repr__(self) -> str:
        """String representation."""
        return f"Config(path={self.config_path})"


# Global config instance (can be imported by other modules)
_global_config: Optional[Config] = None


def get_config(config_path: Optional[str] = None) -> Config:
    """
    Get the global configuration instance.

    Args:
        config_path: Path to config file (only used on first call)

    Returns:
        Config instance
    """
    global _global_config

    if _global_config is None:
        _global_config = Config(config_path)

    return _global_config
