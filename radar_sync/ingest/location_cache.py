"""Caché en memoria praça -> localización para un ciclo de ingesta.

Se construye entera al inicio de cada ciclo y no se modifica después; cada
ejecución tiene la suya, así que ciclos solapados no comparten estado.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from radar_sync.ingest.normalizer import normalize_key
from radar_sync.logger import logger
from radar_sync.models import Detection, Location


class LocationCache:
    def __init__(self, by_plaza: Mapping[str, int]) -> None:
        self._by_plaza = MappingProxyType(dict(by_plaza))

    @classmethod
    def from_locations(cls, locations: Iterable[Location]) -> "LocationCache":
        by_plaza: dict[str, int] = {}
        for location in sorted(locations, key=lambda loc: loc.id):
            if location.plaza is None:
                continue
            key = normalize_key(location.plaza)
            if key and key not in by_plaza:
                by_plaza[key] = location.id
        return cls(by_plaza)

    @classmethod
    def load(cls, session: Session) -> "LocationCache":
        """Lee todas las localizaciones; ante error devuelve una caché vacía.

        Con la caché vacía las detecciones se guardan sin ``location_id`` y el
        job de vinculación las completa más tarde.
        """

        logger.info("[INGEST] Cargando caché de localizaciones desde base de datos")
        try:
            cache = cls.from_locations(session.scalars(select(Location)).all())
        except Exception as exc:
            session.rollback()
            logger.error("[INGEST][ERROR] Error cargando caché de localizaciones: %s", exc)
            return cls({})
        logger.info("[INGEST] Caché de localizaciones cargada: %s praças", len(cache))
        return cache

    def __len__(self) -> int:
        return len(self._by_plaza)

    def lookup(self, plaza: Optional[str]) -> Optional[int]:
        key = normalize_key(plaza)
        if not key:
            return None
        return self._by_plaza.get(key)

    def resolve(self, detections: Iterable[Detection]) -> int:
        """Asigna ``location_id`` por praça a las detecciones que aún no lo tienen.

        Devuelve cuántas quedaron vinculadas.
        """

        linked = 0
        for detection in detections:
            if detection.location_id is not None:
                continue
            location_id = self.lookup(detection.plaza)
            if location_id is not None:
                detection.location_id = location_id
                linked += 1
        return linked
