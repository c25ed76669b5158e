"""Settings: global configuration for resourcedeps"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

ENV_PREFIX = "RESOURCEDEPS_"


def resourcedeps_home() -> Path:
    """~/.resourcedeps on every platform"""
    return Path.home() / ".resourcedeps"


def default_db_path() -> str:
    return str(resourcedeps_home() / "store" / "resourcedeps.sqlite")


@dataclass
class Settings:
    """Settings: global configuration"""

    db_path: str = field(default_factory=default_db_path)
    max_graph_depth: int = 50  # Guard against runaway expansion of corrupted data
    busy_timeout_ms: int = 5000  # How long writers wait for the SQLite write lock
    log_level: str = "INFO"
    dependents_max_limit: int = 100

    # WebUI
    webui_host: str = "127.0.0.1"
    webui_port: int = 8090

    def to_dict(self) -> Dict:
        """Convert to dictionary"""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> "Settings":
        """Create from dictionary, ignoring unknown keys"""
        defaults = cls()
        return cls(
            db_path=data.get("db_path", defaults.db_path),
            max_graph_depth=int(data.get("max_graph_depth", defaults.max_graph_depth)),
            busy_timeout_ms=int(data.get("busy_timeout_ms", defaults.busy_timeout_ms)),
            log_level=data.get("log_level", defaults.log_level),
            dependents_max_limit=int(data.get("dependents_max_limit", defaults.dependents_max_limit)),
            webui_host=data.get("webui_host", defaults.webui_host),
            webui_port=int(data.get("webui_port", defaults.webui_port)),
        )

    def apply_env(self, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """Override fields from RESOURCEDEPS_* environment variables"""
        environ = os.environ if environ is None else environ

        if environ.get(f"{ENV_PREFIX}DB_PATH"):
            self.db_path = environ[f"{ENV_PREFIX}DB_PATH"]
        if environ.get(f"{ENV_PREFIX}LOG_LEVEL"):
            self.log_level = environ[f"{ENV_PREFIX}LOG_LEVEL"].upper()
        if environ.get(f"{ENV_PREFIX}MAX_GRAPH_DEPTH"):
            self.max_graph_depth = int(environ[f"{ENV_PREFIX}MAX_GRAPH_DEPTH"])
        return self


class SettingsManager:
    """Manage settings persistence"""

    def __init__(self, settings_path: Optional[Path] = None):
        """Initialize settings manager

        Args:
            settings_path: JSON file (default: ~/.resourcedeps/settings.json)
        """
        self.settings_path = Path(settings_path) if settings_path else resourcedeps_home() / "settings.json"

    def load(self) -> Settings:
        """Load settings from file, falling back to defaults"""
        if not self.settings_path.exists():
            return Settings()

        try:
            with open(self.settings_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return Settings.from_dict(data)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load settings from {self.settings_path}: {e}")
            return Settings()

    def save(self, settings: Settings) -> None:
        """Save settings to file"""
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.settings_path, "w", encoding="utf-8") as f:
            json.dump(settings.to_dict(), f, indent=2)


def load_settings(settings_path: Optional[Path] = None) -> Settings:
    """Load settings with environment overrides applied"""
    return SettingsManager(settings_path).load().apply_env()
