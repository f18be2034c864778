"""Job de vinculación diferida de detecciones con su localización.

Recorre por lotes las detecciones con ``location_id`` nulo y las empareja con
``locations`` por (rodovia, km) normalizados o, en su defecto, por praça. La
actualización solo escribe sobre filas que siguen a NULL, así que repetir el
job nunca cambia una vinculación existente.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from sqlalchemy import bindparam, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from radar_sync.config import settings
from radar_sync.exceptions import LinkageBatchError
from radar_sync.ingest.normalizer import highway_km_key, normalize_key
from radar_sync.logger import logger
from radar_sync.models import Detection, Location


@dataclass(frozen=True)
class PendingDetection:
    id: int
    highway: Optional[str]
    km: Optional[str]
    plaza: Optional[str]


@dataclass
class LinkageReport:
    batches: int = 0
    scanned: int = 0
    linked: int = 0
    elapsed_ms: int = 0


class LocationMatcher:
    """Índices normalizados de ``locations`` para emparejar en memoria."""

    def __init__(self, locations: Sequence[Location]) -> None:
        self.by_highway_km: dict[tuple[str, str], int] = {}
        self.by_plaza: dict[str, int] = {}
        for location in sorted(locations, key=lambda loc: loc.id):
            key = highway_km_key(location.highway, location.km)
            if key is not None:
                self.by_highway_km.setdefault(key, location.id)
            plaza_key = normalize_key(location.plaza)
            if plaza_key:
                self.by_plaza.setdefault(plaza_key, location.id)

    def __len__(self) -> int:
        return len(self.by_highway_km) + len(self.by_plaza)

    def match(self, pending: PendingDetection) -> Optional[int]:
        key = highway_km_key(pending.highway, pending.km)
        if key is not None and key in self.by_highway_km:
            return self.by_highway_km[key]
        plaza_key = normalize_key(pending.plaza)
        if plaza_key:
            return self.by_plaza.get(plaza_key)
        return None


class LocationLinkageJob:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        batch_size: int = 5000,
        pause_seconds: float = 0.5,
        max_iterations: int = 200,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size debe ser mayor que cero")
        self.session_factory = session_factory
        self.batch_size = batch_size
        self.pause_seconds = pause_seconds
        self.max_iterations = max_iterations
        self.sleep = sleep

    @classmethod
    def from_settings(cls, session_factory: Callable[[], Session]) -> "LocationLinkageJob":
        return cls(
            session_factory=session_factory,
            batch_size=settings.linkage_batch_size,
            pause_seconds=settings.linkage_pause_seconds,
            max_iterations=settings.linkage_max_iterations,
        )

    def _load_matcher(self, session: Session) -> LocationMatcher:
        return LocationMatcher(session.scalars(select(Location)).all())

    def _select_batch(self, session: Session, after_id: int) -> list[PendingDetection]:
        rows = session.execute(
            select(Detection.id, Detection.highway, Detection.km, Detection.plaza)
            .where(Detection.location_id.is_(None), Detection.id > after_id)
            .order_by(Detection.id)
            .limit(self.batch_size)
        ).all()
        return [PendingDetection(*row) for row in rows]

    def _apply_batch(self, session: Session, matches: list[dict]) -> int:
        """Aplica las vinculaciones del lote en la transacción abierta por la selección."""

        if not matches:
            session.commit()
            return 0
        table = Detection.__table__
        stmt = (
            table.update()
            .where(table.c.id == bindparam("detection_id"), table.c.location_id.is_(None))
            .values(location_id=bindparam("new_location_id"))
        )
        result = session.connection().execute(stmt, matches)
        session.commit()
        if result.rowcount is None or result.rowcount < 0:
            return len(matches)
        return result.rowcount

    def run(self) -> LinkageReport:
        """Vacía el backlog de detecciones sin localización.

        Termina cuando un lote devuelve menos de ``batch_size`` filas o al
        alcanzar ``max_iterations``. Cualquier error aborta solo esta ejecución.
        """

        started = time.monotonic()
        report = LinkageReport()
        logger.info("[LINK] Iniciando job de vinculación de localizaciones")

        session = self.session_factory()
        try:
            matcher = self._load_matcher(session)
            if not len(matcher):
                logger.info("[LINK] No hay localizaciones de referencia; nada que vincular")
                return report

            last_id = 0
            while report.batches < self.max_iterations:
                batch = self._select_batch(session, last_id)
                if not batch:
                    break
                report.batches += 1
                report.scanned += len(batch)
                last_id = batch[-1].id

                matches = []
                for pending in batch:
                    location_id = matcher.match(pending)
                    if location_id is not None:
                        matches.append({"detection_id": pending.id, "new_location_id": location_id})

                try:
                    linked = self._apply_batch(session, matches)
                except SQLAlchemyError as exc:
                    session.rollback()
                    raise LinkageBatchError(f"Error aplicando lote {report.batches}: {exc}") from exc
                report.linked += linked
                logger.debug(
                    "[LINK] Lote %s: revisadas=%s vinculadas=%s", report.batches, len(batch), linked
                )

                if len(batch) < self.batch_size:
                    break
                if report.batches >= self.max_iterations:
                    logger.warning("[LINK] Alcanzado el máximo de %s lotes por ejecución", self.max_iterations)
                    break
                self.sleep(self.pause_seconds)
        except SQLAlchemyError as exc:
            session.rollback()
            raise LinkageBatchError(f"Error consultando detecciones pendientes: {exc}") from exc
        finally:
            session.close()
            report.elapsed_ms = int((time.monotonic() - started) * 1000)

        if report.linked:
            logger.info(
                "[LINK] %s detecciones vinculadas a su localización en %s lotes (%sms)",
                report.linked,
                report.batches,
                report.elapsed_ms,
            )
        else:
            logger.info(
                "[LINK] Job ejecutado en %sms. Ningún vínculo nuevo necesario (revisadas=%s)",
                report.elapsed_ms,
                report.scanned,
            )
        return report

