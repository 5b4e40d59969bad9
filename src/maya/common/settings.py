"""
Settings and logging bootstrap.

Configuration is environment-driven: every config dataclass reads its
defaults from environment variables, and ``load_settings`` loads a ``.env``
file first so local development matches deployment.

Environment Variables:
- MAYA_LOG_LEVEL: Root log level (default: INFO)
- MAYA_ORCHESTRATOR_TIMEOUT_SECONDS: Global request budget (default: 30)
- MAYA_ORCHESTRATOR_MAX_RETRIES: Retries per capability (default: 2)
- MAYA_STUB_UNREGISTERED: Stub unknown capabilities (default: true)
- MAYA_ENABLE_RESULT_CACHE: Cache provider results (default: true)
- MAYA_CACHE_FRESHNESS_SECONDS: Local freshness window (default: 300)
- MAYA_CACHE_TTL_SECONDS: Default TTL for cached results (default: 300)
- MAYA_CACHE_REMOTE_SYNC: Enable remote write-through (default: true)
- MAYA_CACHE_REMOTE_TIMEOUT_SECONDS: Remote read budget (default: 2)
- JSONBIN_API_KEY: API key for the JSONbin remote tier (optional)

Example:
    from src.maya.common.settings import configure_logging, load_settings

    settings = load_settings()
    configure_logging(settings.log_level)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def env_bool(name: str, default: bool) -> bool:
    """Read a boolean environment variable ("true"/"false")."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"Environment variable {name} must be a number, got {raw!r}",
            details={"variable": name},
            cause=e,
        )


def env_int(name: str, default: int) -> int:
    return int(env_float(name, default))


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging once at process start.

    Args:
        level: Log level name; falls back to MAYA_LOG_LEVEL, then INFO
    """
    level_name = (level or os.getenv("MAYA_LOG_LEVEL", "INFO")).upper()
    numeric = logging.getLevelName(level_name)
    if not isinstance(numeric, int):
        raise ConfigurationError(
            f"Unknown log level: {level_name}",
            details={"level": level_name},
        )
    logging.basicConfig(level=numeric, format=LOG_FORMAT)


@dataclass
class Settings:
    """Process-wide settings bundle."""

    log_level: str = field(default_factory=lambda: os.getenv("MAYA_LOG_LEVEL", "INFO"))
    jsonbin_api_key: Optional[str] = field(
        default_factory=lambda: os.getenv("JSONBIN_API_KEY") or None
    )
    jsonbin_base_url: str = field(
        default_factory=lambda: os.getenv("JSONBIN_BASE_URL", "https://api.jsonbin.io/v3")
    )


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Load ``.env`` (if present) and build the settings bundle.

    Variables already set in the process environment win over the file.
    """
    if env_file:
        loaded = load_dotenv(env_file)
    else:
        loaded = load_dotenv()
    if loaded:
        logger.debug(f"Loaded environment from {env_file or '.env'}")
    return Settings()


__all__ = [
    "LOG_FORMAT",
    "Settings",
    "configure_logging",
    "env_bool",
    "env_float",
    "env_int",
    "load_settings",
]
