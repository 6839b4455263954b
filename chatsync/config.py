# chatsync/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()

SERVICE_NAME = "NeuralChatbot API"
SERVICE_VERSION = "7.0"

# field limits (mirror the column sizes in models.py)
MAX_USER_ID_LEN = 64
MAX_WORD_LEN = 128
MAX_TAG_LEN = 64
MAX_PATTERN_LEN = 500
MAX_RESPONSE_LEN = 5000

# integer column ranges (INTEGER freq, BIGINT epoch-ms timestamp)
MAX_FREQ = 2**31 - 1
MAX_TIMESTAMP = 2**63 - 1

# request bodies above this are refused before parsing
MAX_BODY_BYTES = 10 * 1024 * 1024

# read projections
VOCAB_LOAD_LIMIT = 5000
SNAPSHOT_TOP_VOCAB = 200
DEFAULT_HISTORY_LIMIT = 100
MAX_HISTORY_LIMIT = 500
ANALYTICS_WINDOW_DAYS = 30
GLOBAL_TOP_SCRIPTS = 10
GLOBAL_TOP_WORDS = 20


@dataclass
class Settings:
    database_url: str
    host: str = "0.0.0.0"
    port: int = 3000
    pool_size: int = 10
    pool_timeout: int = 5
    db_echo: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    expose_error_details: bool = False
    max_body_bytes: int = MAX_BODY_BYTES


class SettingsError(RuntimeError):
    pass


def _get_env_int(name: str, default: int, *, minimum: Optional[int] = None) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        value = default
    else:
        try:
            value = int(raw)
        except ValueError as exc:
            raise SettingsError(f"Environment variable {name} must be an integer") from exc
    if minimum is not None and value < minimum:
        raise SettingsError(f"Environment variable {name} must be >= {minimum}")
    return value


def _get_env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    lowered = raw.strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise SettingsError(f"Environment variable {name} must be a boolean value")


def _get_env_list(name: str, default: List[str]) -> List[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise SettingsError("DATABASE_URL is not set")

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    if log_level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise SettingsError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")

    return Settings(
        database_url=database_url,
        host=os.getenv("HOST", "0.0.0.0"),
        port=_get_env_int("PORT", 3000, minimum=1),
        pool_size=_get_env_int("DB_POOL_SIZE", 10, minimum=1),
        pool_timeout=_get_env_int("DB_POOL_TIMEOUT", 5, minimum=1),
        db_echo=_get_env_bool("DB_ECHO", False),
        log_level=log_level,
        cors_origins=_get_env_list("CORS_ORIGINS", ["*"]),
        expose_error_details=_get_env_bool("EXPOSE_ERROR_DETAILS", False),
        max_body_bytes=_get_env_int("MAX_BODY_BYTES", MAX_BODY_BYTES, minimum=1),
    )
