"""Metadatos de filtros (rodovias, praças, kms, sentidos) y lecturas cache-aside."""
from __future__ import annotations

import re
from datetime import date, timedelta
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.orm import Session

from radar_sync.cache.store import CacheStore
from radar_sync.config import settings
from radar_sync.logger import logger
from radar_sync.models import Detection, Location

FILTER_COLUMNS = {
    "highways": Detection.highway,
    "plazas": Detection.plaza,
    "kms": Detection.km,
    "directions": Detection.direction,
}

_KM_NUMBER = re.compile(r"\d+(?:[.,]\d+)?")


class FilterMetadata(BaseModel):
    highways: list[str] = Field(default_factory=list)
    plazas: list[str] = Field(default_factory=list)
    kms: list[str] = Field(default_factory=list)
    directions: list[str] = Field(default_factory=list)


class LocationView(BaseModel):
    id: int
    concessionaire: Optional[str] = None
    highway: Optional[str] = None
    km: Optional[str] = None
    plaza: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None


def km_sort_key(km: str) -> tuple[float, str]:
    """Orden numérico por el tramo anterior a ``+``; lo no numérico va al final."""

    match = _KM_NUMBER.search(km.split("+", 1)[0])
    if not match:
        return float("inf"), km
    return float(match.group().replace(",", ".")), km


def kms_cache_key(highway: str) -> str:
    return f"{settings.cache_kms_key}::{highway}"


def distinct_values(session: Session, field: str, since: date) -> list[str]:
    """Valores distintos no vacíos de ``field`` en detecciones desde ``since``."""

    column = FILTER_COLUMNS[field]
    values = session.scalars(
        select(column).where(Detection.date >= since, column.is_not(None), column != "").distinct()
    ).all()
    if field == "kms":
        return sorted(values, key=km_sort_key)
    return sorted(values)


def distinct_kms_for_highway(session: Session, highway: str, since: date) -> list[str]:
    values = session.scalars(
        select(Detection.km)
        .where(
            Detection.highway == highway,
            Detection.date >= since,
            Detection.km.is_not(None),
            Detection.km != "",
        )
        .distinct()
    ).all()
    return sorted(values, key=km_sort_key)


def filter_since(today: Optional[date] = None) -> date:
    return (today or date.today()) - timedelta(days=settings.filter_window_days)


class FilterReader:
    """Lecturas para la API: se sirve de caché y, si falta, se calcula y se guarda."""

    def __init__(self, session_factory: Callable[[], Session], cache: CacheStore) -> None:
        self.session_factory = session_factory
        self.cache = cache

    def _cached(self, key: str, ttl_seconds: int, compute: Callable[[Session], Any]) -> Any:
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        logger.debug("[CACHE] Fallo de caché para %s; consultando base de datos", key)
        session = self.session_factory()
        try:
            value = compute(session)
        finally:
            session.close()
        self.cache.put(key, value, ttl_seconds)
        return value

    def get_filter_metadata(self) -> FilterMetadata:
        def compute(session: Session) -> dict:
            since = filter_since()
            return FilterMetadata(
                **{field: distinct_values(session, field, since) for field in FILTER_COLUMNS}
            ).model_dump()

        raw = self._cached(settings.cache_filters_key, settings.cache_filters_ttl_seconds, compute)
        return FilterMetadata.model_validate(raw)

    def get_kms_for_highway(self, highway: str) -> list[str]:
        return self._cached(
            kms_cache_key(highway),
            settings.cache_kms_ttl_seconds,
            lambda session: distinct_kms_for_highway(session, highway, filter_since()),
        )

    def list_locations(self) -> list[LocationView]:
        def compute(session: Session) -> list[dict]:
            locations = session.scalars(select(Location).order_by(Location.id)).all()
            return [
                LocationView(
                    id=loc.id,
                    concessionaire=loc.concessionaire,
                    highway=loc.highway,
                    km=loc.km,
                    plaza=loc.plaza,
                    latitude=loc.latitude,
                    longitude=loc.longitude,
                ).model_dump()
                for loc in locations
            ]

        raw = self._cached(settings.cache_locations_key, settings.cache_locations_ttl_seconds, compute)
        return [LocationView.model_validate(item) for item in raw]
