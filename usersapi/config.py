"""Environment-driven configuration for the users service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8080
DEFAULT_SHUTDOWN_GRACE_SECONDS = 5.0
PRODUCTION_ENV = "prod"

_LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


class ConfigurationError(ValueError):
    """Raised when the environment does not describe a runnable service."""


def project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def resolve_static_dir(env_value: Optional[str]) -> Path:
    """Resolve the directory that backs the static file mount."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (project_root() / "static").resolve(strict=False)


def _parse_port(value: Optional[str]) -> int:
    if value is None or not value.strip():
        return DEFAULT_PORT
    try:
        port = int(value.strip())
    except ValueError as exc:
        raise ConfigurationError(f"APP_PORT must be an integer, got {value!r}") from exc
    if not 1 <= port <= 65535:
        raise ConfigurationError(f"APP_PORT must be between 1 and 65535, got {port}")
    return port


def _parse_grace(value: Optional[str]) -> float:
    if value is None or not value.strip():
        return DEFAULT_SHUTDOWN_GRACE_SECONDS
    try:
        grace = float(value.strip())
    except ValueError as exc:
        raise ConfigurationError(
            f"SHUTDOWN_GRACE_SECONDS must be a number, got {value!r}"
        ) from exc
    if grace < 0:
        raise ConfigurationError("SHUTDOWN_GRACE_SECONDS must not be negative")
    return grace


def _parse_log_level(value: Optional[str]) -> str:
    level = (value or "").strip().upper() or "INFO"
    if level not in _LOG_LEVELS:
        raise ConfigurationError(
            f"LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, got {value!r}"
        )
    return level


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the HTTP service."""

    database_url: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    static_dir: Path = project_root() / "static"
    shutdown_grace_seconds: float = DEFAULT_SHUTDOWN_GRACE_SECONDS
    log_level: str = "INFO"
    environment: Optional[str] = None

    @staticmethod
    def from_env(environ: Mapping[str, str]) -> "Settings":
        """Build :class:`Settings` from an environment mapping."""

        database_url = (environ.get("DATABASE_URL") or "").strip()
        if not database_url:
            raise ConfigurationError("DATABASE_URL is not set")

        host = (environ.get("APP_HOST") or "").strip() or DEFAULT_HOST
        environment = (environ.get("ENV") or "").strip() or None

        return Settings(
            database_url=database_url,
            host=host,
            port=_parse_port(environ.get("APP_PORT")),
            static_dir=resolve_static_dir(environ.get("STATIC_DIR")),
            shutdown_grace_seconds=_parse_grace(environ.get("SHUTDOWN_GRACE_SECONDS")),
            log_level=_parse_log_level(environ.get("LOG_LEVEL")),
            environment=environment,
        )


def load_dotenv_unless_production(env_file: Optional[Path] = None) -> bool:
    """Load ``.env`` values unless ``ENV`` says we are running in production.

    Variables that are already set win over the file. Returns ``True`` when a
    file was found and read.
    """

    if os.getenv("ENV", "").strip() == PRODUCTION_ENV:
        return False
    if env_file is None:
        env_file = project_root() / ".env"
        if not env_file.exists():
            env_file = Path.cwd() / ".env"
    return load_dotenv(env_file, override=False)


def load_settings(*, load_env_file: bool = True) -> Settings:
    """Read settings from the process environment."""

    if load_env_file:
        load_dotenv_unless_production()
    return Settings.from_env(os.environ)


__all__ = [
    "ConfigurationError",
    "Settings",
    "load_dotenv_unless_production",
    "load_settings",
    "resolve_static_dir",
]
