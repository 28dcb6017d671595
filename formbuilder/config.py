"""Configuration utilities for the Form Builder service.

This module loads application configuration with the following rules:
- Primary source: `formbuilder_config.json` at the project root.
- Overrides: environment variables, then optional text files under `config/`.
- Validation: Pydantic models enforce required fields and value constraints.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator


CONFIG_DIR = Path("config")
ROOT_CONFIG = Path("formbuilder_config.json")
logger = logging.getLogger(__name__)


def _read_config_file(rel_path: str) -> Optional[str]:
    path = CONFIG_DIR / rel_path
    try:
        if path.exists():
            return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read override %s: %s", path, e)
        return None
    return None


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)


def _as_bool(text: object) -> bool:
    return str(text).strip().lower() in {"true", "1", "yes"}


class DatabaseConfig(BaseModel):
    dsn: str
    auto_migrate: bool = Field(default=True)

    @field_validator("dsn")
    @classmethod
    def dsn_must_be_non_empty(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("database.dsn must be a non-empty string")
        return v


class CsvConfig(BaseModel):
    import_max_bytes: int = Field(gt=0)


class IdentityConfig(BaseModel):
    user_header: str = "X-User-Id"
    role_header: str = "X-User-Role"

    @field_validator("user_header", "role_header")
    @classmethod
    def header_must_be_non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("identity header names must be non-empty")
        return v.strip()


class LoggingConfig(BaseModel):
    level: str = "INFO"
    sql_level: str = "WARNING"

    @field_validator("level", "sql_level")
    @classmethod
    def level_must_be_known(cls, v: str) -> str:
        name = v.strip().upper()
        if name not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level {v!r}")
        return name


class AppConfig(BaseModel):
    database: DatabaseConfig
    csv: CsvConfig
    identity: IdentityConfig
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _read_json_file(path: Path) -> dict:
    try:
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("Failed to read JSON config %s: %s", path, e)
    return {}


def load_config() -> AppConfig:
    """Load configuration with validation.

    Precedence (highest first):
    1) Environment variables
    2) Text files in `config/` (optional)
    3) formbuilder_config.json at project root
    4) Safe defaults for development
    """

    base = _read_json_file(ROOT_CONFIG)

    def _base(path: str, default: Optional[str] = None) -> Optional[str]:
        cur: object = base
        for key in path.split("."):
            if not isinstance(cur, dict) or key not in cur:
                return default
            cur = cur[key]
        return str(cur) if cur is not None else default

    dsn = (
        _env("TEST_DATABASE_URL")
        or _env("DATABASE_URL")
        or _read_config_file("database.url")
        or _base("database.dsn")
        or "sqlite+pysqlite:///:memory:"
    )
    auto_migrate_text = (
        _env("AUTO_APPLY_MIGRATIONS") or _read_config_file("database.auto_migrate") or _base("database.auto_migrate", "true")
    )

    import_max_bytes_text = (
        _env("CSV_IMPORT_MAX_BYTES") or _read_config_file("csv.import.max_bytes") or _base("csv.import_max_bytes", "5242880")
    )

    user_header = _env("IDENTITY_USER_HEADER") or _read_config_file("identity.user_header") or _base("identity.user_header", "X-User-Id")
    role_header = _env("IDENTITY_ROLE_HEADER") or _read_config_file("identity.role_header") or _base("identity.role_header", "X-User-Role")
    log_level = _env("LOG_LEVEL") or _read_config_file("logging.level") or _base("logging.level", "INFO")
    sql_log_level = _env("SQL_LOG_LEVEL") or _base("logging.sql_level", "WARNING")

    try:
        return AppConfig(
            database=DatabaseConfig(dsn=dsn, auto_migrate=_as_bool(auto_migrate_text)),
            csv=CsvConfig(import_max_bytes=int(str(import_max_bytes_text).strip())),
            identity=IdentityConfig(user_header=str(user_header), role_header=str(role_header)),
            logging=LoggingConfig(level=str(log_level), sql_level=str(sql_log_level)),
        )
    except (PydanticValidationError, ValueError) as e:
        logger.error("Invalid application configuration: %s", e)
        raise


_CONFIG: AppConfig | None = None


def get_config() -> AppConfig:
    global _CONFIG
    if _CONFIG is None:
        _CONFIG = load_config()
    return _CONFIG


def reset_config_cache() -> None:
    global _CONFIG
    _CONFIG = None


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "CsvConfig",
    "IdentityConfig",
    "LoggingConfig",
    "load_config",
    "get_config",
    "reset_config_cache",
]
