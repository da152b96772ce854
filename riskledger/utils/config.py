from __future__ import annotations

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    trade_db_file: str = Field(default="data/risk_management.db", description="SQLite trade ledger path")
    preferences_file: str = Field(default="data/preferences.json", description="Primary key-value store path")
    local_backup_file: str = Field(default="data/local_backup.json", description="Secondary backup tier path")
    export_dir: str = Field(default="data/exports", description="Directory for exported backup files")

    trade_store_backend: str = Field(default="sqlite", description="Trade store backend: sqlite or memory")
    platform_persistence: str = Field(default="mirrored", description="Backup tier strategy: native or mirrored")
    backup_version: str = Field(default="1.0.0", description="Version stamped on backup snapshots")

    max_retries: int = Field(default=3, description="Maximum attempts for a storage operation")
    retry_delay: float = Field(default=0.1, description="Base retry delay in seconds")
    storage_init_timeout: float = Field(default=30.0, description="Storage initialization timeout in seconds")

    log_level: str = Field(default="INFO", description="Logging level")
    log_file: str = Field(default="logs/riskledger.log", description="Log file path")

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reload_settings() -> Settings:
    global _settings
    _settings = Settings()
    return _settings
