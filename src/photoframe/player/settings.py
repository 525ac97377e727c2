"""
User settings for the photo frame, persisted as settings.json.
Loaded once at startup and saved on every change from the settings panel.
"""

import json
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

from photoframe.common.logger import setup_logger

logger = setup_logger(__name__)

# Allowed slide interval range in seconds
MIN_INTERVAL_SECONDS = 10
MAX_INTERVAL_SECONDS = 35

DEFAULT_SETTINGS: Dict[str, Any] = {
    'background_image': '',
    'background_color': '#000000',
    'qr_overlay_image': '',
    'slide_interval_seconds': MIN_INTERVAL_SECONDS,
    'qr_caption_top': '',
    'qr_caption_bottom': '',
    'server_url': '',
}


def clamp_interval(
    seconds: Any,
    minimum: int = MIN_INTERVAL_SECONDS,
    maximum: int = MAX_INTERVAL_SECONDS
) -> int:
    """
    Clamp a slide interval to [minimum, maximum] whole seconds.

    Raises:
        ValueError: If seconds is not a number
    """
    try:
        value = float(seconds)
    except (TypeError, ValueError):
        raise ValueError(f"Slide interval must be a number, got {seconds!r}")
    return int(round(max(minimum, min(maximum, value))))


class FrameSettings:
    """Manages the settings.json file of the photo frame."""

    FILENAME = "settings.json"

    def __init__(
        self,
        settings_dir: Optional[str] = None,
        on_changed: Optional[Callable[['FrameSettings', Iterable[str]], None]] = None
    ):
        """
        Args:
            settings_dir: Directory holding settings.json (in-memory only if None)
            on_changed: Callback(settings, changed_keys) after update()
        """
        self.settings_dir = Path(settings_dir) if settings_dir else None
        self.on_changed = on_changed
        self._settings: Dict[str, Any] = dict(DEFAULT_SETTINGS)

        if self.settings_dir is not None:
            self.load()

    @property
    def path(self) -> Optional[Path]:
        if self.settings_dir is None:
            return None
        return self.settings_dir / self.FILENAME

    def load(self) -> None:
        """Load settings from disk, keeping defaults for missing or invalid values."""
        self._settings = dict(DEFAULT_SETTINGS)
        if self.path is None or not self.path.exists():
            return

        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Failed to read %s, using defaults: %s", self.path, e)
            return

        if not isinstance(data, dict):
            logger.error("Ignoring %s: expected a JSON object", self.path)
            return

        for key, value in data.items():
            if key in DEFAULT_SETTINGS:
                self._settings[key] = value

        try:
            self._settings['slide_interval_seconds'] = clamp_interval(
                self._settings['slide_interval_seconds']
            )
        except ValueError as e:
            logger.warning("%s - using default interval", e)
            self._settings['slide_interval_seconds'] = DEFAULT_SETTINGS['slide_interval_seconds']

    def save(self) -> None:
        """Save settings to disk (no-op for in-memory settings)."""
        if self.path is None:
            return
        self.settings_dir.mkdir(parents=True, exist_ok=True)
        with open(self.path, 'w') as f:
            json.dump(self._settings, f, indent=2)

    def update(self, **fields: Any) -> Dict[str, Any]:
        """
        Change one or more settings, persist them and notify the listener.

        Returns:
            The fields that actually changed

        Raises:
            ValueError: On unknown keys or an invalid interval
        """
        unknown = set(fields) - set(DEFAULT_SETTINGS)
        if unknown:
            raise ValueError(f"Unknown settings: {', '.join(sorted(unknown))}")

        if 'slide_interval_seconds' in fields:
            fields['slide_interval_seconds'] = clamp_interval(fields['slide_interval_seconds'])

        changed = {
            key: value for key, value in fields.items()
            if self._settings.get(key) != value
        }
        if not changed:
            return {}

        self._settings.update(changed)
        self.save()
        logger.info("Settings updated: %s", ", ".join(sorted(changed)))

        if self.on_changed:
            try:
                self.on_changed(self, list(changed))
            except Exception as e:
                logger.error("Error in settings change callback: %s", e)

        return changed

    # Accessors

    @property
    def background_image(self) -> str:
        return self._settings['background_image']

    @property
    def background_color(self) -> str:
        return self._settings['background_color']

    @property
    def qr_overlay_image(self) -> str:
        return self._settings['qr_overlay_image']

    @property
    def slide_interval_seconds(self) -> int:
        """Seconds between slideshow pages, always within [10, 35]."""
        return self._settings['slide_interval_seconds']

    @property
    def qr_caption_top(self) -> str:
        return self._settings['qr_caption_top']

    @property
    def qr_caption_bottom(self) -> str:
        return self._settings['qr_caption_bottom']

    @property
    def server_url(self) -> str:
        """Last known server origin."""
        return self._settings['server_url']

    def to_dict(self) -> Dict[str, Any]:
        """Get a copy of all settings."""
        return dict(self._settings)

    def __repr__(self) -> str:
        """String representation."""
        return f"FrameSettings(path={self.path})"
