"""ZeroLink relay configuration.

Loads settings from two YAML files:
  * zerolink.settings.yaml: non-secret configuration
  * zerolink.secrets.yaml: secrets (never committed)

Both files are optional and every field has a default, except that the JWT
verifier will not start with the placeholder secret: set
``jwt.secret_key`` in zerolink.secrets.yaml or select the remote verifier.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("zerolink.settings.yaml")
SECRETS_FILE  = Path("zerolink.secrets.yaml")


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


# Shipped default; build_verifier refuses to run with it
PLACEHOLDER_JWT_SECRET = "change-me-in-production"


class JWTSecrets(BaseModel):
    secret_key: str           = PLACEHOLDER_JWT_SECRET
    algorithm:  str           = "HS256"
    audience:   Optional[str] = None


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:            str       = "0.0.0.0"
    port:            int       = 5000
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class LoggingSettings(BaseModel):
    level: str = "info"


class AuthSettings(BaseModel):
    """How WebSocket and REST bearer tokens are verified."""
    verifier:               Literal["jwt", "remote"] = "jwt"
    verify_url:             str                      = ""
    verify_timeout_seconds: float                    = 5.0

    @field_validator("verify_timeout_seconds")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("verify_timeout_seconds must be positive")
        return value


class StorageSettings(BaseModel):
    db_path: str = "zerolink.duckdb"


class UploadSettings(BaseModel):
    upload_dir:          str           = "uploads"
    max_file_size_bytes: int           = 10 * 1024 * 1024
    allowed_mime_types:  List[str]     = Field(
        default_factory=lambda: [
            "image/jpeg",
            "image/png",
            "image/gif",
            "video/mp4",
            "video/webm",
        ]
    )
    public_base_url:     Optional[str] = None


class AppSettings(BaseModel):
    server:   ServerSettings  = Field(default_factory=ServerSettings)
    logging:  LoggingSettings = Field(default_factory=LoggingSettings)
    auth:     AuthSettings    = Field(default_factory=AuthSettings)
    storage:  StorageSettings = Field(default_factory=StorageSettings)
    uploads:  UploadSettings  = Field(default_factory=UploadSettings)
    secrets:  Secrets         = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def load_settings(
    settings_file: Path = SETTINGS_FILE,
    secrets_file: Path = SECRETS_FILE,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_data = _load_yaml(settings_file)
    secrets_data  = _load_yaml(secrets_file)

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    logger.info(
        "Settings loaded (server=%s:%s, verifier=%s, db_path=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.auth.verifier,
        app_settings.storage.db_path,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_settings()
    return _config


def set_config(config: Optional[AppSettings]) -> None:
    """Replace (or clear, with None) the cached settings."""
    global _config
    _config = config
