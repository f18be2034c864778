"""Ciclo de ingesta: FTP -> parser -> caché de localizaciones -> BD -> publicación."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from radar_sync.exceptions import PersistenceError
from radar_sync.highways import register_discoveries
from radar_sync.ingest.ftp_sync import RemoteFile, RemoteFileSynchronizer
from radar_sync.ingest.location_cache import LocationCache
from radar_sync.ingest.parser import parse_file
from radar_sync.logger import logger
from radar_sync.models import Detection
from radar_sync.publisher.publisher import DetectionPublisher


@dataclass
class IngestionReport:
    files: int = 0
    detections: int = 0
    linked: int = 0
    warned_lines: int = 0
    saved: int = 0
    elapsed_ms: int = 0


def save_detections(session: Session, detections: Sequence[Detection]) -> list[Detection]:
    """Guarda el lote completo en una única transacción.

    Ante cualquier error de base de datos se hace rollback del lote entero y
    se lanza ``PersistenceError``.
    """

    if not detections:
        return []
    try:
        session.add_all(detections)
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("[INGEST][ERROR] Error guardando lote de %s detecciones: %s", len(detections), exc)
        raise PersistenceError(f"Error guardando {len(detections)} detecciones: {exc}") from exc
    logger.info("[INGEST] Guardadas %s detecciones", len(detections))
    return list(detections)


class IngestionService:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        synchronizer: RemoteFileSynchronizer,
        publisher: Optional[DetectionPublisher] = None,
    ) -> None:
        self.session_factory = session_factory
        self.synchronizer = synchronizer
        self.publisher = publisher

    def submit_batch(self, session: Session, detections: Sequence[Detection]) -> list[Detection]:
        """Persiste el lote y, después del commit, lo entrega al publicador sin esperar."""

        saved = save_detections(session, detections)
        if saved and self.publisher is not None:
            try:
                self.publisher.submit(saved)
            except Exception:
                logger.exception("[INGEST][ERROR] No se pudo lanzar la publicación del lote")
        return saved

    def _register_domain(self, session: Session, detections: Sequence[Detection]) -> None:
        """Añade al dominio las rodovias y kms del lote; un fallo aquí no afecta a lo guardado."""

        discoveries: dict[str, set[str]] = {}
        for detection in detections:
            discoveries.setdefault(detection.highway, set()).add(detection.km)
        try:
            register_discoveries(session, discoveries)
        except PersistenceError as exc:
            logger.warning("[INGEST] No se pudo actualizar el dominio de rodovias: %s", exc)

    def _discard_downloads(self, downloaded: Sequence[RemoteFile]) -> None:
        """Borra los ficheros del ciclo para que el siguiente los vuelva a descargar."""

        for remote in downloaded:
            if remote.local_path is None:
                continue
            try:
                remote.local_path.unlink(missing_ok=True)
                logger.info("[INGEST] Fichero %s eliminado para reprocesarlo en el próximo ciclo", remote.name)
            except OSError as exc:
                logger.error("[INGEST][ERROR] No se pudo eliminar %s: %s", remote.local_path, exc)

    def run_cycle(self) -> IngestionReport:
        started = time.monotonic()
        report = IngestionReport()
        logger.info("[INGEST] Iniciando verificación de ficheros en el FTP")

        downloaded = self.synchronizer.sync()
        report.files = len(downloaded)
        if not downloaded:
            report.elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.info("[INGEST] Ciclo finalizado sin ficheros nuevos en %sms", report.elapsed_ms)
            return report

        session = self.session_factory()
        try:
            cache = LocationCache.load(session)

            detections: list[Detection] = []
            for remote in downloaded:
                logger.info("[INGEST] Procesando fichero: %s", remote.name)
                try:
                    parsed = parse_file(remote.local_path)
                except OSError as exc:
                    logger.error("[INGEST][ERROR] Fallo leyendo el fichero local %s: %s", remote.local_path, exc)
                    self._discard_downloads([remote])
                    continue
                detections.extend(parsed.detections)
                report.warned_lines += parsed.warned_skips

            report.detections = len(detections)
            report.linked = cache.resolve(detections)

            if detections:
                try:
                    report.saved = len(self.submit_batch(session, detections))
                except PersistenceError:
                    self._discard_downloads(downloaded)
                    raise
                self._register_domain(session, detections)
            else:
                logger.info("[INGEST] Ningún registro válido en los ficheros nuevos")
        finally:
            session.close()

        report.elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            "[INGEST] Ciclo completado: ficheros=%s detecciones=%s vinculadas=%s avisos=%s guardadas=%s duración=%sms",
            report.files,
            report.detections,
            report.linked,
            report.warned_lines,
            report.saved,
            report.elapsed_ms,
        )
        return report
