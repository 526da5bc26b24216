"""YAML / environment configuration loader for MOTD Responder."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ListenConfig:
    """TCP listener settings."""

    host: str = ""  # empty = all interfaces
    port: int = 25565
    backlog: int = 100
    handshake_timeout_seconds: float = 2.0


@dataclass(frozen=True)
class StatusConfig:
    """What the server list shows, and what a joining player is told.

    ``motd`` and ``kick_message`` are either plain text (with § colour
    codes) or a JSON chat component starting with ``{``.
    """

    motd: str = "§eHello World!"
    kick_message: str = "§cNot available"
    protocol_name: str = ""
    protocol_version: int = 0
    max_players: int = 0
    online_players: int = 0
    favicon: str = ""  # data: URI, path to a PNG, or raw base64


@dataclass(frozen=True)
class LoggingConfig:
    """Logging destination and rotation settings."""

    level: str = "INFO"
    file: str = ""  # empty = stderr only
    max_bytes: int = 10_485_760  # 10 MB
    backup_count: int = 5


@dataclass(frozen=True)
class AppConfig:
    """Top-level application configuration."""

    listen: ListenConfig = field(default_factory=ListenConfig)
    status: StatusConfig = field(default_factory=StatusConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ConfigError(Exception):
    """Raised when the configuration is invalid or incomplete."""


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

# env var → (section, key)
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "LISTEN_HOST": ("listen", "host"),
    "LISTEN_PORT": ("listen", "port"),
    "LISTEN_BACKLOG": ("listen", "backlog"),
    "HANDSHAKE_TIMEOUT": ("listen", "handshake_timeout_seconds"),
    "MOTD": ("status", "motd"),
    "KICK_MESSAGE": ("status", "kick_message"),
    "PROTOCOL_NAME": ("status", "protocol_name"),
    "PROTOCOL_VERSION": ("status", "protocol_version"),
    "MAX_PLAYERS": ("status", "max_players"),
    "ONLINE_PLAYERS": ("status", "online_players"),
    "FAVICON": ("status", "favicon"),
    "LOG_LEVEL": ("logging", "level"),
    "LOG_FILE": ("logging", "file"),
}


def _get(data: Mapping[str, Any], key: str, expected_type: type, default: Any = None) -> Any:
    """Retrieve *key* from *data*, coerce to *expected_type*, fallback to *default*."""
    value = data.get(key, default)
    if value is None:
        return default
    try:
        return expected_type(value)
    except (ValueError, TypeError) as exc:
        raise ConfigError(
            f"Config key '{key}': cannot convert {value!r} to {expected_type.__name__}"
        ) from exc


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"Config section '{name}' must be a YAML mapping.")
    return value


def _load_listen(raw: dict[str, Any]) -> ListenConfig:
    cfg = ListenConfig(
        host=_get(raw, "host", str, ListenConfig.host),
        port=_get(raw, "port", int, ListenConfig.port),
        backlog=_get(raw, "backlog", int, ListenConfig.backlog),
        handshake_timeout_seconds=_get(
            raw, "handshake_timeout_seconds", float, ListenConfig.handshake_timeout_seconds
        ),
    )
    if not 1 <= cfg.port <= 65535:
        raise ConfigError(f"listen.port must be between 1 and 65535, got {cfg.port}.")
    if cfg.backlog < 1:
        raise ConfigError(f"listen.backlog must be at least 1, got {cfg.backlog}.")
    if cfg.handshake_timeout_seconds <= 0:
        raise ConfigError(
            f"listen.handshake_timeout_seconds must be positive, got {cfg.handshake_timeout_seconds}."
        )
    return cfg


def _load_status(raw: dict[str, Any]) -> StatusConfig:
    cfg = StatusConfig(
        motd=_get(raw, "motd", str, StatusConfig.motd),
        kick_message=_get(raw, "kick_message", str, StatusConfig.kick_message),
        protocol_name=_get(raw, "protocol_name", str, StatusConfig.protocol_name),
        protocol_version=_get(raw, "protocol_version", int, StatusConfig.protocol_version),
        max_players=_get(raw, "max_players", int, StatusConfig.max_players),
        online_players=_get(raw, "online_players", int, StatusConfig.online_players),
        favicon=_get(raw, "favicon", str, StatusConfig.favicon),
    )
    if cfg.max_players < 0 or cfg.online_players < 0:
        raise ConfigError("status.max_players and status.online_players must not be negative.")
    return cfg


def _load_logging(raw: dict[str, Any]) -> LoggingConfig:
    cfg = LoggingConfig(
        level=_get(raw, "level", str, LoggingConfig.level).upper(),
        file=_get(raw, "file", str, LoggingConfig.file),
        max_bytes=_get(raw, "max_bytes", int, LoggingConfig.max_bytes),
        backup_count=_get(raw, "backup_count", int, LoggingConfig.backup_count),
    )
    if not isinstance(logging.getLevelName(cfg.level), int):
        raise ConfigError(f"logging.level: unknown level '{cfg.level}'.")
    return cfg


def _read_yaml(path: Path) -> dict[str, Any]:
    if not path.is_file():
        raise ConfigError(f"Configuration file not found: {path}")

    try:
        with path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse YAML config: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError("Config root must be a YAML mapping (dict).")
    return raw


def _apply_env(raw: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Return a copy of *raw* with environment overrides merged in.

    Empty variables are ignored, so ``MOTD=`` keeps the YAML value.
    """
    merged = {name: dict(_section(raw, name)) for name in ("listen", "status", "logging")}
    for var, (section, key) in ENV_OVERRIDES.items():
        value = env.get(var)
        if value:
            merged[section][key] = value
    return merged


def load_config(path: str | Path | None = None, env: Mapping[str, str] | None = None) -> AppConfig:
    """Load and validate configuration.

    Parameters
    ----------
    path:
        Optional YAML config file.  Without one, defaults are used.
    env:
        Environment to read overrides from (defaults to ``os.environ``).
        Overrides win over values from the file.

    Raises
    ------
    ConfigError
        If the file is missing, unparseable, or semantically invalid.
    """
    raw = _read_yaml(Path(path)) if path is not None else {}
    merged = _apply_env(raw, os.environ if env is None else env)

    return AppConfig(
        listen=_load_listen(merged["listen"]),
        status=_load_status(merged["status"]),
        logging=_load_logging(merged["logging"]),
    )

