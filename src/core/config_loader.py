import json
import logging
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Type, TypeVar

from core.models.config_data import (
    ConnectivityConfig,
    IngestionConfig,
    LivenessConfig,
    StorageConfig,
    configData,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _section(cls: Type[T], raw: Dict[str, Any]) -> T:
    """Build a config section, ignoring unknown keys and keeping defaults for missing ones."""
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        logger.warning(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return cls(**{k: v for k, v in raw.items() if k in known})


class ConfigLoader:
    """Loads and manages ingestion configuration from JSON file."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(ConfigLoader, cls).__new__(cls)
            cls._instance._config = configData()
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if not self._initialized:
            self.load_config()
            self._initialized = True

    @staticmethod
    def get_project_root() -> Path:
        return Path(__file__).parent.parent.parent

    @classmethod
    def get_config_path(cls) -> Path:
        """Get the path to the roadpulse_config.json file."""
        return cls.get_project_root() / "config" / "roadpulse_config.json"

    def load_config(self):
        """Load configuration from JSON file."""
        config_path = self.get_config_path()

        # Start from defaults so a broken file never leaves us without config
        self._config = configData()

        if not config_path.exists():
            logger.error(f"Configuration file not found: {config_path}")
            return

        try:
            with open(config_path, 'r') as f:
                json_data = json.load(f)
            self._config = configData(
                liveness=_section(LivenessConfig, json_data.get("liveness", {})),
                connectivity=_section(ConnectivityConfig, json_data.get("connectivity", {})),
                ingestion=_section(IngestionConfig, json_data.get("ingestion", {})),
                storage=_section(StorageConfig, json_data.get("storage", {})),
            )
            logger.info(f"Configuration loaded from {config_path}")

        except json.JSONDecodeError as e:
            logger.error(f"Failed to parse configuration file: {e}")
            self._config = configData()

        except (TypeError, AttributeError) as e:
            logger.error(f"Invalid configuration structure: {e}")
            self._config = configData()

    def get_liveness_config(self) -> LivenessConfig:
        return self._config.liveness

    def get_connectivity_config(self) -> ConnectivityConfig:
        return self._config.connectivity

    def get_ingestion_config(self) -> IngestionConfig:
        return self._config.ingestion

    def get_storage_config(self) -> StorageConfig:
        return self._config.storage

    def resolve_storage_path(self) -> Path:
        """Storage path from config, relative paths anchored at the project root."""
        path = Path(self._config.storage.path)
        if not path.is_absolute():
            path = self.get_project_root() / path
        return path

    def reload_config(self):
        """Reload configuration from file."""
        self.load_config()
        logger.info("Configuration reloaded")


# Global singleton instance
config_loader = ConfigLoader()
