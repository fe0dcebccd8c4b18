"""Persist SMTP settings as JSON."""

import json
import logging
import threading
from pathlib import Path
from typing import Optional, Union

from .models import TransportConfig

logger = logging.getLogger(__name__)


class SettingsStore:
    """Saves and loads a TransportConfig in a JSON file."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def save(self, config: TransportConfig) -> bool:
        with self._lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.path.write_text(json.dumps(config.to_dict(), indent=2), encoding="utf-8")
            except OSError as e:
                logger.error("Failed to save SMTP settings to %s: %s", self.path, e)
                return False
        logger.info("SMTP settings saved to %s", self.path)
        return True

    def load(self) -> Optional[TransportConfig]:
        with self._lock:
            if not self.path.exists():
                logger.info("No saved settings file found at %s", self.path)
                return None
            try:
                data = json.loads(self.path.read_text(encoding="utf-8"))
                config = TransportConfig.from_dict(data)
            except (OSError, ValueError, TypeError, AttributeError) as e:
                logger.error("Failed to load SMTP settings from %s: %s", self.path, e)
                return None
        logger.info("SMTP settings loaded from %s", self.path)
        return config

    def exists(self) -> bool:
        return self.path.exists()

    def delete(self) -> bool:
        with self._lock:
            if not self.path.exists():
                return False
            try:
                self.path.unlink()
            except OSError as e:
                logger.error("Failed to delete saved settings %s: %s", self.path, e)
                return False
        logger.info("Saved settings deleted from %s", self.path)
        return True
