"""Logging setup for MOTD Responder.

Configures:
- A StreamHandler on stderr (captured by journald / docker logs).
- An optional RotatingFileHandler when a log file is configured.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .config import LoggingConfig

LOG_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(cfg: LoggingConfig) -> None:
    """Configure the root logger based on the application config.

    Handlers installed by an earlier ``logging.basicConfig`` call are
    replaced, so calling this after the bootstrap logging is safe.

    Parameters
    ----------
    cfg:
        Logging configuration (level, optional file path, rotation settings).
    """
    level = getattr(logging, cfg.level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(level)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # -- stderr handler -------------------------------------------------------
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(level)
    stderr_handler.setFormatter(formatter)
    root.addHandler(stderr_handler)

    # -- File handler (rotated) -----------------------------------------------
    if not cfg.file:
        return

    Path(cfg.file).parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        filename=cfg.file,
        maxBytes=cfg.max_bytes,
        backupCount=cfg.backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)
