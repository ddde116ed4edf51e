from __future__ import annotations
from pathlib import Path
import fcntl
import os
from typing import Any, Dict
import yaml

from rentguard.configuration.moderation_settings import ModerationSettings
from rentguard.util.logger import get_logger

logger = get_logger("app_configuration")


CONFIG_PATH = Path(os.getenv("RENTGUARD_CONFIG", "./config/app_config.yml")).resolve()


class AppConfig:
    """File-lock based accessor around the YAML-based application configuration.

    The class caches contents of ``./config/app_config.yml`` (or the path in
    ``RENTGUARD_CONFIG``), exposes dictionary-like access helpers, and
    resolves moderation tuning through :class:`ModerationSettings`. Uses fcntl
    file locks for safe concurrent access across processes.
    """

    def __init__(self, config_path: Path) -> None:
        self.config_path = config_path
        self._data: Dict[str, Any] = {}
        self.reload()

    # --------------------------
    # Private helpers
    # --------------------------
    def load_from_disk(self) -> Dict[str, Any]:
        try:
            with self.config_path.open("r", encoding="utf-8") as f:
                fcntl.flock(f.fileno(), fcntl.LOCK_SH)
                try:
                    data = yaml.safe_load(f)
                finally:
                    fcntl.flock(f.fileno(), fcntl.LOCK_UN)
                return data if isinstance(data, dict) else {}
        except FileNotFoundError:
            logger.warning("[APP CONFIGURATION] Config file %s not found, using defaults.", self.config_path)
        except (OSError, yaml.YAMLError) as exc:
            logger.error("[APP CONFIGURATION] Failed to load config %s: %s", self.config_path, exc)
        return {}

    # --------------------------
    # Public API
    # --------------------------
    def reload(self) -> Dict[str, Any]:
        """Reload configuration from disk and return the loaded mapping.

        Returns the raw mapping that was loaded (an empty dict on error).
        """
        self._data = self.load_from_disk()
        return self._data

    @property
    def data(self) -> Dict[str, Any]:
        """Return the current cached configuration mapping.

        The returned dict is the internal cache (shallow reference). Callers
        should not mutate it; use get(...) or the provided properties instead.
        """
        return self._data

    def get(self, key: str, default: Any = None) -> Any:
        """Safe lookup for top-level configuration keys."""
        return self._data.get(key, default)

    # --------------------------
    # High-level shortcuts
    # --------------------------
    @property
    def moderation(self) -> ModerationSettings:
        """Return the moderation section wrapped in a ModerationSettings helper."""
        settings = self._data.get("moderation", {})
        if not isinstance(settings, dict):
            settings = {}
        return ModerationSettings(settings)

    @property
    def database_path(self) -> Path:
        """Return the SQLite database path. Default is ``./data/rentguard.db``."""
        database = self._data.get("database", {})
        value = database.get("path") if isinstance(database, dict) else None
        return Path(value or "./data/rentguard.db").resolve()


# Shared application-wide configuration instance
app_config = AppConfig(CONFIG_PATH)
