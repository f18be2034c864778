"""Punto de entrada ejecutable del servicio.

Ejecuta este módulo con `python -m radar_sync.main`; leerá la configuración del
entorno o del `.env` y pondrá en marcha la ingesta del FTP, la vinculación de
localizaciones y el precalentamiento de la caché de filtros.
"""
from __future__ import annotations

from radar_sync.logger import logger  # noqa: F401 - inicializa configuración global
from radar_sync.worker import run_worker


def main() -> None:
    run_worker()


if __name__ == "__main__":
    main()
