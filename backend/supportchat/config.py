"""Support chat application configuration.

Loads settings from a single YAML file:
  * supportchat.settings.yaml: non-secret configuration

The path can be overridden with the SUPPORTCHAT_SETTINGS environment
variable. A missing file is not an error; every section has defaults.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("supportchat.settings.yaml")
SETTINGS_ENV_VAR = "SUPPORTCHAT_SETTINGS"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 3000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if value.upper() not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return value.lower()


class StoreSettings(BaseModel):
    db_path: str = "supportchat.duckdb"


class ChatSettings(BaseModel):
    """Real-time chat behaviour.

    Attributes:
        admin_username: Username of the single admin created on start-up.
        lock_edit_after_delete: Reject edits of soft-deleted messages.
        history_limit: Maximum number of messages sent on join (0 = all).
    """
    admin_username:         str  = "admin"
    lock_edit_after_delete: bool = True
    history_limit:          int  = 0


class UploadSettings(BaseModel):
    directory:        str = "uploads"
    url_prefix:       str = "/uploads"
    max_file_size_mb: int = 5

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


class AppSettings(BaseModel):
    server:  ServerSettings  = Field(default_factory=ServerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    store:   StoreSettings   = Field(default_factory=StoreSettings)
    chat:    ChatSettings    = Field(default_factory=ChatSettings)
    uploads: UploadSettings  = Field(default_factory=UploadSettings)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------

_config: Optional[AppSettings] = None


def load_settings(path: Optional[Path] = None) -> AppSettings:
    """Load settings from YAML into a single *AppSettings* object."""
    if path is None:
        path = Path(os.environ.get(SETTINGS_ENV_VAR, SETTINGS_FILE))
    settings_data = _load_yaml(path)

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, store=%s, uploads=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.store.db_path,
        app_settings.uploads.directory,
    )
    return app_settings


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def set_config(config: AppSettings) -> None:
    """Replace the process-wide settings (tests and embedding)."""
    global _config
    _config = config


def reset_config() -> None:
    global _config
    _config = None
