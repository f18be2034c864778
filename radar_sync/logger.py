"""Logger compartido de radar-sync.

Todos los módulos importan ``logger`` desde aquí. La configuración se aplica una
única vez: salida por consola y, si ``LOG_DIR`` está definido, un fichero con
rotación diaria a medianoche.
"""
from __future__ import annotations

import logging
import os
import sys
from logging.handlers import TimedRotatingFileHandler

from radar_sync.config import settings

LOGGER_NAME = "radar_sync"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(threadName)s %(name)s: %(message)s"


def setup_logger(
    name: str = LOGGER_NAME,
    level: str | int | None = None,
    log_dir: str | None = None,
) -> logging.Logger:
    """Crea (o devuelve ya configurado) el logger principal del servicio."""

    log = logging.getLogger(name)
    if getattr(log, "_radar_sync_configured", False):
        return log

    log.setLevel(level or settings.log_level)
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    log.addHandler(console)

    target_dir = log_dir or settings.log_dir
    if target_dir:
        os.makedirs(target_dir, exist_ok=True)
        file_handler = TimedRotatingFileHandler(
            os.path.join(target_dir, "radar-sync.log"),
            when="midnight",
            backupCount=settings.log_keep_days,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        log.addHandler(file_handler)

    log._radar_sync_configured = True  # type: ignore[attr-defined]
    return log


logger = setup_logger()
